"""
Passkeys (WebAuthn)
===================

Registration and authentication ceremonies built on py_webauthn. The
challenge of each ceremony is stored as a verification record for a few
minutes; its id travels in the `passkey_challenge` cookie (and in the
response body for non-browser clients).
"""

import json
import logging
from typing import Optional, Dict, Any, List

from webauthn import (
    generate_registration_options,
    verify_registration_response,
    generate_authentication_options,
    verify_authentication_response,
    options_to_json,
    base64url_to_bytes,
)
from webauthn.helpers import bytes_to_base64url
from webauthn.helpers.structs import (
    AuthenticatorAttachment,
    AuthenticatorSelectionCriteria,
    AuthenticatorTransport,
    PublicKeyCredentialDescriptor,
    ResidentKeyRequirement,
    UserVerificationRequirement,
)

from src.auth.errors import APIError
from src.auth.sessions import (
    complete_sign_in, notify_new_login, session_payload,
    store_verification, find_verification, delete_verification, load_json,
)
from src.database.models import UserModel, PasskeyModel
from src.utils.config_loader import ConfigLoader
from src.utils.helpers import random_string

logger = logging.getLogger(__name__)

CHALLENGE_PREFIX = "passkey:"


def _transports(raw: Optional[str]) -> Optional[List[AuthenticatorTransport]]:
    if not raw:
        return None
    known = {t.value for t in AuthenticatorTransport}
    return [AuthenticatorTransport(t) for t in raw.split(",") if t in known]


class PasskeyService:
    """WebAuthn registration and sign-in"""

    def __init__(self, db_manager, config: Optional[Dict[str, Any]] = None):
        cfg = ConfigLoader()
        self.db_manager = db_manager
        self.config = config if config is not None else cfg.get_passkey_config()
        self.rp_id = self.config.get("rp_id", "localhost")
        self.rp_name = self.config.get("rp_name") or cfg.get("app.name", "Nog")
        self.origin = self.config.get("origin") or cfg.get("app.url", "http://localhost:3000")
        self.challenge_expires_in = int(self.config.get("challenge_expires_in", 300))

    def _store_challenge(self, db, challenge: bytes, user_id: Optional[str]) -> str:
        challenge_id = random_string(32)
        store_verification(
            db,
            f"{CHALLENGE_PREFIX}{challenge_id}",
            {"challenge": bytes_to_base64url(challenge), "user_id": user_id},
            self.challenge_expires_in,
        )
        return challenge_id

    def consume_challenge(self, challenge_id: Optional[str]) -> Dict[str, Any]:
        """Load and delete a stored challenge; each one can be tried once"""
        if not challenge_id:
            raise APIError(400, "CHALLENGE_NOT_FOUND")
        identifier = f"{CHALLENGE_PREFIX}{challenge_id}"
        with self.db_manager.session_context() as db:
            record = find_verification(db, identifier)
            if record is None:
                raise APIError(400, "CHALLENGE_NOT_FOUND")
            data = load_json(record)
            delete_verification(db, identifier)
        return data

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def generate_registration_options(self, user_id: str,
                                      authenticator_attachment: Optional[str] = None) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            user = db.get(UserModel, user_id)
            if user is None:
                raise APIError(404, "USER_NOT_FOUND")

            exclude = [
                PublicKeyCredentialDescriptor(id=base64url_to_bytes(p.credential_id), transports=_transports(p.transports))
                for p in user.passkeys
            ]
            selection = AuthenticatorSelectionCriteria(
                resident_key=ResidentKeyRequirement.PREFERRED,
                user_verification=UserVerificationRequirement.PREFERRED,
            )
            if authenticator_attachment:
                selection.authenticator_attachment = AuthenticatorAttachment(authenticator_attachment)

            options = generate_registration_options(
                rp_id=self.rp_id,
                rp_name=self.rp_name,
                user_id=user.id.encode("utf-8"),
                user_name=user.email,
                user_display_name=user.name or user.email,
                exclude_credentials=exclude,
                authenticator_selection=selection,
            )
            challenge_id = self._store_challenge(db, options.challenge, user.id)

        return {"options": json.loads(options_to_json(options)), "challenge_id": challenge_id}

    def verify_registration(self, user_id: str, response: Dict[str, Any], challenge_id: Optional[str],
                            name: Optional[str] = None) -> Dict[str, Any]:
        data = self.consume_challenge(challenge_id)
        if data.get("user_id") != user_id:
            raise APIError(400, "CHALLENGE_NOT_FOUND")

        with self.db_manager.session_context() as db:
            try:
                verification = verify_registration_response(
                    credential=response,
                    expected_challenge=base64url_to_bytes(data["challenge"]),
                    expected_rp_id=self.rp_id,
                    expected_origin=self.origin,
                    require_user_verification=False,
                )
            except Exception as e:
                logger.warning(f"Passkey registration failed for user {user_id}: {e}")
                raise APIError(400, "FAILED_TO_VERIFY_REGISTRATION")

            transports = (response.get("response") or {}).get("transports") or []
            passkey = PasskeyModel(
                name=name,
                user_id=user_id,
                credential_id=bytes_to_base64url(verification.credential_id),
                public_key=bytes_to_base64url(verification.credential_public_key),
                counter=verification.sign_count,
                device_type=getattr(verification.credential_device_type, "value", None),
                backed_up=bool(verification.credential_backed_up),
                transports=",".join(transports) or None,
                aaguid=verification.aaguid,
            )
            db.add(passkey)
            db.flush()
            logger.info(f"🔑 Passkey registered for user {user_id}")
            return passkey.to_dict()

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def generate_authentication_options(self, user_id: Optional[str] = None) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            allow = []
            if user_id:
                passkeys = db.query(PasskeyModel).filter(PasskeyModel.user_id == user_id).all()
                allow = [
                    PublicKeyCredentialDescriptor(id=base64url_to_bytes(p.credential_id), transports=_transports(p.transports))
                    for p in passkeys
                ]
            options = generate_authentication_options(
                rp_id=self.rp_id,
                allow_credentials=allow,
                user_verification=UserVerificationRequirement.PREFERRED,
            )
            challenge_id = self._store_challenge(db, options.challenge, user_id)
        return {"options": json.loads(options_to_json(options)), "challenge_id": challenge_id}

    def verify_authentication(self, response: Dict[str, Any], challenge_id: Optional[str],
                              ip_address: Optional[str] = None, user_agent: Optional[str] = None) -> Dict[str, Any]:
        data = self.consume_challenge(challenge_id)

        with self.db_manager.session_context() as db:
            credential_id = response.get("id") or response.get("rawId")
            passkey = db.query(PasskeyModel).filter(PasskeyModel.credential_id == credential_id).first()
            if passkey is None:
                raise APIError(401, "PASSKEY_NOT_FOUND")
            # A challenge issued for one user only accepts that user's passkeys
            if data.get("user_id") and data["user_id"] != passkey.user_id:
                logger.warning(f"Passkey {passkey.id} offered against a challenge for another user")
                raise APIError(401, "PASSKEY_NOT_FOUND")

            try:
                verification = verify_authentication_response(
                    credential=response,
                    expected_challenge=base64url_to_bytes(data["challenge"]),
                    expected_rp_id=self.rp_id,
                    expected_origin=self.origin,
                    credential_public_key=base64url_to_bytes(passkey.public_key),
                    credential_current_sign_count=passkey.counter,
                    require_user_verification=False,
                )
            except Exception as e:
                logger.warning(f"Passkey authentication failed: {e}")
                raise APIError(400, "AUTHENTICATION_FAILED")

            passkey.counter = verification.new_sign_count
            user = passkey.user
            session = complete_sign_in(db, user, "passkey", ip_address, user_agent)
            result = session_payload(session, user)
        notify_new_login(user, ip_address, user_agent)
        return result

    # ------------------------------------------------------------------
    # Management
    # ------------------------------------------------------------------

    def _owned(self, db, user_id: str, passkey_id: str) -> PasskeyModel:
        passkey = db.get(PasskeyModel, passkey_id)
        if passkey is None or passkey.user_id != user_id:
            raise APIError(404, "PASSKEY_NOT_FOUND")
        return passkey

    def list_user_passkeys(self, user_id: str) -> List[Dict[str, Any]]:
        with self.db_manager.session_context() as db:
            passkeys = (
                db.query(PasskeyModel)
                .filter(PasskeyModel.user_id == user_id)
                .order_by(PasskeyModel.created_at.desc())
                .all()
            )
            return [p.to_dict() for p in passkeys]

    def update_passkey(self, user_id: str, passkey_id: str, name: str) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            passkey = self._owned(db, user_id, passkey_id)
            passkey.name = name
            return {"passkey": passkey.to_dict()}

    def delete_passkey(self, user_id: str, passkey_id: str) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            db.delete(self._owned(db, user_id, passkey_id))
        return {"status": True}
