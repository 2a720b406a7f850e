"""
Two-Factor Authentication
=========================

TOTP (pyotp) with single-use backup codes. Secrets and codes are stored
Fernet-encrypted under a key derived from `security.secret_key`; rotating
that key makes existing enrolments unreadable.

Enabling is a two-step flow: `enable` issues the secret and backup codes,
and the first successful `verify_totp` from a signed-in user switches
`two_factor_enabled` on. During sign-in, `verify_totp` / `verify_backup_code`
consume the attempt token handed out by `AuthService.sign_in_email`. A sign-in
attempt accepts `allowed_attempts` wrong codes before it is thrown away.
"""

import base64
import json
import logging
from typing import Optional, Dict, Any, List

import pyotp
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from src.auth.errors import APIError
from src.auth.security import SecurityService
from src.auth.service import TWO_FACTOR_PREFIX, get_credential_account
from src.auth.sessions import (
    complete_sign_in, notify_new_login, session_payload, find_verification, delete_verification, load_json,
    save_verification_data,
)
from src.database.models import UserModel, TwoFactorModel
from src.utils.config_loader import ConfigLoader
from src.utils.helpers import random_string

logger = logging.getLogger(__name__)

BACKUP_CODE_ALPHABET = "abcdefghijklmnopqrstuvwxyz0123456789"
DEFAULT_ALLOWED_ATTEMPTS = 5
KEY_INFO = b"nog-auth two-factor secrets"


def _fernet() -> Fernet:
    secret = ConfigLoader().get_security_config().get("secret_key") or ""
    key = HKDF(algorithm=hashes.SHA256(), length=32, salt=None, info=KEY_INFO).derive(secret.encode("utf-8"))
    return Fernet(base64.urlsafe_b64encode(key))


def seal(plaintext: str) -> str:
    return _fernet().encrypt(plaintext.encode("utf-8")).decode("utf-8")


def unseal(token: str) -> str:
    try:
        return _fernet().decrypt(token.encode("utf-8")).decode("utf-8")
    except InvalidToken:
        logger.error("❌ Stored two-factor data cannot be decrypted (security.secret_key changed?)")
        raise APIError(500, "TWO_FACTOR_SECRET_UNREADABLE")


def generate_backup_codes(amount: int = 10, length: int = 10) -> List[str]:
    """Codes look like `abcde-12345`"""
    half = length // 2
    codes = []
    for _ in range(amount):
        raw = random_string(length, BACKUP_CODE_ALPHABET)
        codes.append(f"{raw[:half]}-{raw[half:]}")
    return codes


class TwoFactorService:
    """TOTP enrolment and verification"""

    def __init__(self, db_manager, config: Optional[Dict[str, Any]] = None):
        cfg = ConfigLoader()
        self.db_manager = db_manager
        self.config = config if config is not None else (cfg.get_auth_config().get("two_factor") or {})
        self.issuer = self.config.get("issuer") or cfg.get("app.name", "Nog")
        self.backup_codes_amount = int(self.config.get("backup_codes_amount", 10))
        self.backup_code_length = int(self.config.get("backup_code_length", 10))
        self.allowed_attempts = int(self.config.get("allowed_attempts", DEFAULT_ALLOWED_ATTEMPTS))

    def _check_password(self, db, user: UserModel, password: str):
        account = get_credential_account(db, user.id)
        if account is None or not SecurityService.verify_password(password, account.password):
            raise APIError(400, "INVALID_PASSWORD")

    def _get_user(self, db, user_id: str) -> UserModel:
        user = db.get(UserModel, user_id)
        if user is None:
            raise APIError(404, "USER_NOT_FOUND")
        return user

    def _totp(self, record: TwoFactorModel) -> pyotp.TOTP:
        return pyotp.TOTP(unseal(record.secret))

    def _totp_uri(self, user: UserModel, secret: str) -> str:
        return pyotp.TOTP(secret).provisioning_uri(name=user.email, issuer_name=self.issuer)

    def _backup_codes(self, record: TwoFactorModel) -> List[str]:
        return json.loads(unseal(record.backup_codes))

    # ------------------------------------------------------------------

    def enable(self, user_id: str, password: str) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            user = self._get_user(db, user_id)
            self._check_password(db, user, password)

            secret = pyotp.random_base32()
            codes = generate_backup_codes(self.backup_codes_amount, self.backup_code_length)
            record = db.query(TwoFactorModel).filter(TwoFactorModel.user_id == user.id).first()
            if record is None:
                record = TwoFactorModel(user_id=user.id)
                db.add(record)
            record.secret = seal(secret)
            record.backup_codes = seal(json.dumps(codes))
            logger.info(f"🔐 Two-factor secret issued for {user.email}")
            return {"totp_uri": self._totp_uri(user, secret), "backup_codes": codes}

    def get_totp_uri(self, user_id: str, password: str) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            user = self._get_user(db, user_id)
            self._check_password(db, user, password)
            record = db.query(TwoFactorModel).filter(TwoFactorModel.user_id == user.id).first()
            if record is None:
                raise APIError(400, "TWO_FACTOR_NOT_ENABLED")
            return {"totp_uri": self._totp_uri(user, unseal(record.secret))}

    def disable(self, user_id: str, password: str) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            user = self._get_user(db, user_id)
            self._check_password(db, user, password)
            db.query(TwoFactorModel).filter(TwoFactorModel.user_id == user.id).delete(synchronize_session=False)
            user.two_factor_enabled = False
            logger.info(f"🔓 Two-factor disabled for {user.email}")
        return {"status": True}

    def generate_backup_codes(self, user_id: str, password: str) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            user = self._get_user(db, user_id)
            self._check_password(db, user, password)
            record = db.query(TwoFactorModel).filter(TwoFactorModel.user_id == user.id).first()
            if record is None or not user.two_factor_enabled:
                raise APIError(400, "TWO_FACTOR_NOT_ENABLED")
            codes = generate_backup_codes(self.backup_codes_amount, self.backup_code_length)
            record.backup_codes = seal(json.dumps(codes))
        return {"status": True, "backup_codes": codes}

    # ------------------------------------------------------------------

    def _resolve_attempt(self, db, attempt_token: Optional[str]):
        if not attempt_token:
            raise APIError(401, "INVALID_TWO_FACTOR_COOKIE")
        record = find_verification(db, f"{TWO_FACTOR_PREFIX}{attempt_token}")
        if record is None:
            raise APIError(401, "INVALID_TWO_FACTOR_COOKIE")
        data = load_json(record)
        user = db.get(UserModel, data.get("user_id"))
        if user is None:
            raise APIError(401, "INVALID_TWO_FACTOR_COOKIE")
        return user, record, data

    def _reject_attempt(self, db, user: UserModel, record, data: Dict[str, Any], code: str):
        """Count a wrong code against the sign-in attempt, committing before the error is raised"""
        data["attempts"] = int(data.get("attempts", 0)) + 1
        if data["attempts"] >= self.allowed_attempts:
            db.delete(record)
            db.commit()
            logger.warning(f"⚠️  Two-factor sign-in for {user.email} dropped after {data['attempts']} wrong codes")
            raise APIError(429, "TOO_MANY_ATTEMPTS")
        save_verification_data(db, record, data)
        raise APIError(401, code)

    def _finish_sign_in(self, db, user, attempt_token, remember_me, ip_address, user_agent):
        delete_verification(db, f"{TWO_FACTOR_PREFIX}{attempt_token}")
        session = complete_sign_in(db, user, "email", ip_address, user_agent, remember_me)
        return session_payload(session, user, remember_me=remember_me)

    def verify_totp(
        self,
        code: str,
        user_id: Optional[str] = None,
        attempt_token: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Verify a TOTP code

        With `user_id` (signed-in user) this confirms enrolment. With
        `attempt_token` it completes a pending sign-in and returns a session.
        """
        with self.db_manager.session_context() as db:
            attempt_record = data = None
            if user_id is not None:
                user = self._get_user(db, user_id)
            else:
                user, attempt_record, data = self._resolve_attempt(db, attempt_token)

            record = db.query(TwoFactorModel).filter(TwoFactorModel.user_id == user.id).first()
            if record is None:
                raise APIError(400, "TWO_FACTOR_NOT_ENABLED")
            if not self._totp(record).verify(code, valid_window=1):
                if attempt_record is not None:
                    self._reject_attempt(db, user, attempt_record, data, "INVALID_CODE")
                raise APIError(401, "INVALID_CODE")

            if user_id is not None:
                if not user.two_factor_enabled:
                    user.two_factor_enabled = True
                    logger.info(f"🔐 Two-factor enabled for {user.email}")
                return {"status": True, "token": None, "user": user.to_dict()}

            remember_me = bool(data.get("remember_me", True))
            result = self._finish_sign_in(db, user, attempt_token, remember_me, ip_address, user_agent)
        notify_new_login(user, ip_address, user_agent)
        return result

    def verify_backup_code(
        self,
        code: str,
        attempt_token: Optional[str],
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            user, attempt_record, data = self._resolve_attempt(db, attempt_token)
            record = db.query(TwoFactorModel).filter(TwoFactorModel.user_id == user.id).first()
            if record is None:
                raise APIError(400, "TWO_FACTOR_NOT_ENABLED")

            codes = self._backup_codes(record)
            normalized = (code or "").strip().lower()
            if normalized not in codes:
                self._reject_attempt(db, user, attempt_record, data, "INVALID_BACKUP_CODE")
            codes.remove(normalized)
            record.backup_codes = seal(json.dumps(codes))
            logger.info(f"🔐 Backup code used by {user.email} ({len(codes)} left)")

            remember_me = bool(data.get("remember_me", True))
            result = self._finish_sign_in(db, user, attempt_token, remember_me, ip_address, user_agent)
        notify_new_login(user, ip_address, user_agent)
        return result
