"""
Authentication Service
======================

Email/password sign-up and sign-in, sessions, email verification, password
reset and change, profile updates, email change, account deletion and
linked-account management.
"""

from typing import Optional, Dict, Any, List
from urllib.parse import urlencode
import logging

import jwt

from src.auth.errors import APIError
from src.auth.models import CREDENTIAL_PROVIDER, PROFILE_FIELDS
from src.auth.security import SecurityService
from src.auth.sessions import (
    create_session,
    resolve_session,
    complete_sign_in,
    notify_new_login,
    session_payload,
    store_verification,
    find_verification,
    delete_verification,
    ensure_not_banned,
)
from src.database.models import UserModel, SessionModel, AccountModel
from src.services import email_service
from src.utils.config_loader import ConfigLoader
from src.utils.helpers import random_string, parse_user_agent, is_trusted_url
from src.utils.time import now_utc

logger = logging.getLogger(__name__)

RESET_PASSWORD_PREFIX = "reset-password:"
TWO_FACTOR_PREFIX = "2fa:"


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def check_password_length(password: str, min_length: int = 8, max_length: int = 128):
    if password is None or len(password) < min_length:
        raise APIError(400, "PASSWORD_TOO_SHORT")
    if len(password) > max_length:
        raise APIError(400, "PASSWORD_TOO_LONG")


def check_redirect_url(url: Optional[str], trusted_origins, code: str = "INVALID_CALLBACK_URL") -> Optional[str]:
    """Refuse callback and redirect URLs pointing outside the trusted origins"""
    if not is_trusted_url(url, trusted_origins):
        logger.warning(f"⚠️  Rejected redirect target: {url}")
        raise APIError(403, code)
    return url


def get_credential_account(db, user_id: str) -> Optional[AccountModel]:
    return (
        db.query(AccountModel)
        .filter(AccountModel.user_id == user_id, AccountModel.provider_id == CREDENTIAL_PROVIDER)
        .first()
    )


def upsert_credential_account(db, user: UserModel, password: str) -> AccountModel:
    hashed = SecurityService.hash_password(password)
    account = get_credential_account(db, user.id)
    if account:
        account.password = hashed
    else:
        account = AccountModel(
            account_id=user.id,
            provider_id=CREDENTIAL_PROVIDER,
            user_id=user.id,
            password=hashed,
        )
        db.add(account)
    return account


class AuthService:
    """Authentication service"""

    def __init__(self, db_manager, auth_config: Optional[Dict[str, Any]] = None):
        cfg = ConfigLoader()
        self.db_manager = db_manager
        self.config = auth_config if auth_config is not None else cfg.get_auth_config()
        self.app_url = cfg.get("app.url", "http://localhost:3000").rstrip("/")
        self.api_url = cfg.get("app.api_url", "http://localhost:8000").rstrip("/")
        self.trusted_origins = cfg.get_trusted_origins()
        self.reset_expires_in = int(cfg.get("security.reset_password_expire_seconds", 3600))

        self.min_password_length = int(self.config.get("min_password_length", 8))
        self.max_password_length = int(self.config.get("max_password_length", 128))
        self.require_email_verification = bool(self.config.get("require_email_verification", True))
        self.send_verification_on_sign_up = bool(self.config.get("send_verification_on_sign_up", True))
        self.auto_sign_in_after_verification = bool(self.config.get("auto_sign_in_after_verification", True))
        self.default_role = self.config.get("default_role", "user")
        self.two_factor_expires_in = int((self.config.get("two_factor") or {}).get("attempt_expires_in", 600))

    def check_password_length(self, password: str):
        check_password_length(password, self.min_password_length, self.max_password_length)

    def check_callback_url(self, url: Optional[str], code: str = "INVALID_CALLBACK_URL") -> Optional[str]:
        return check_redirect_url(url, self.trusted_origins, code)

    def redirect_target(self, url: Optional[str], fallback: Optional[str] = None) -> str:
        """`url` when it stays on a trusted origin, else `fallback` (the app URL by default)"""
        if url and is_trusted_url(url, self.trusted_origins):
            return url
        return fallback or self.app_url

    def _get_user(self, db, user_id: str) -> UserModel:
        user = db.get(UserModel, user_id)
        if user is None:
            raise APIError(404, "USER_NOT_FOUND")
        return user

    # ------------------------------------------------------------------
    # Email verification
    # ------------------------------------------------------------------

    def verification_url(self, token: str, callback_url: Optional[str] = None) -> str:
        params = {"token": token}
        if callback_url:
            params["callbackURL"] = callback_url
        return f"{self.api_url}/api/v1/auth/verify-email?{urlencode(params)}"

    def _send_verification(self, user: UserModel, callback_url: Optional[str] = None):
        token = SecurityService.create_email_verification_token(user.email)
        email_service.send_verification_email(user, self.verification_url(token, callback_url))

    def send_verification_email(self, email: str, callback_url: Optional[str] = None) -> Dict[str, Any]:
        self.check_callback_url(callback_url)
        email = normalize_email(email)
        with self.db_manager.session_context() as db:
            user = db.query(UserModel).filter(UserModel.email == email).first()
        if user is None:
            # No enumeration of registered addresses
            return {"status": True}
        if user.email_verified:
            raise APIError(400, "EMAIL_ALREADY_VERIFIED")
        self._send_verification(user, callback_url)
        return {"status": True}

    def verify_email(self, token: str, ip_address: Optional[str] = None,
                     user_agent: Optional[str] = None) -> Dict[str, Any]:
        try:
            payload = SecurityService.decode_token(token, expected_type="email-verification")
        except jwt.ExpiredSignatureError:
            raise APIError(400, "TOKEN_EXPIRED")
        except jwt.InvalidTokenError:
            raise APIError(400, "INVALID_TOKEN")

        with self.db_manager.session_context() as db:
            user = db.query(UserModel).filter(UserModel.email == payload.get("email")).first()
            if user is None:
                raise APIError(401, "USER_NOT_FOUND")

            update_to = payload.get("update_to")
            if update_to:
                if db.query(UserModel).filter(UserModel.email == update_to, UserModel.id != user.id).first():
                    raise APIError(422, "USER_ALREADY_EXISTS")
                logger.info(f"📧 Email change confirmed: {user.email} -> {update_to}")
                user.email = update_to
                user.email_verified = True
                user.updated_by = update_to
                db.flush()
                return {"status": True, "user": user.to_dict(), "token": None}

            if user.email_verified:
                return {"status": True, "user": user.to_dict(), "token": None}

            user.email_verified = True
            logger.info(f"✅ Email verified for {user.email}")

            result = {"status": True, "user": user.to_dict(), "token": None}
            if self.auto_sign_in_after_verification:
                session = complete_sign_in(db, user, "email", ip_address, user_agent)
                result = session_payload(session, user, status=True)
        if result.get("token"):
            notify_new_login(user, ip_address, user_agent)
        return result

    # ------------------------------------------------------------------
    # Sign up / sign in / sign out
    # ------------------------------------------------------------------

    def sign_up_email(
        self,
        name: str,
        email: str,
        password: str,
        image: Optional[str] = None,
        callback_url: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        actor_email: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Register a new user with an email/password credential

        Returns:
            {"user": ..., "token": None} when verification is required,
            otherwise a session payload
        """
        email = normalize_email(email)
        self.check_callback_url(callback_url)
        self.check_password_length(password)

        with self.db_manager.session_context() as db:
            if db.query(UserModel).filter(UserModel.email == email).first():
                raise APIError(422, "USER_ALREADY_EXISTS")

            user = UserModel(
                name=name.strip(),
                email=email,
                image=image,
                role=self.default_role,
                created_by=actor_email,
                updated_by=actor_email,
            )
            db.add(user)
            db.flush()
            upsert_credential_account(db, user, password)

            if self.require_email_verification:
                result = {"user": user.to_dict(), "token": None}
            else:
                session = create_session(db, user, ip_address, user_agent)
                user.last_login_method = "email"
                result = session_payload(session, user)

        logger.info(f"✅ User registered: {email}")
        email_service.send_welcome_email(user)
        if self.require_email_verification or self.send_verification_on_sign_up:
            self._send_verification(user, callback_url)
        return result

    def sign_in_email(
        self,
        email: str,
        password: str,
        remember_me: bool = True,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        callback_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        email = normalize_email(email)
        self.check_callback_url(callback_url)
        unverified_user = None

        with self.db_manager.session_context() as db:
            user = db.query(UserModel).filter(UserModel.email == email).first()
            if user is None:
                logger.warning(f"Failed login attempt for {email}")
                raise APIError(401, "INVALID_EMAIL_OR_PASSWORD")

            account = get_credential_account(db, user.id)
            if account is None or not SecurityService.verify_password(password, account.password):
                logger.warning(f"Failed login attempt for {email}")
                raise APIError(401, "INVALID_EMAIL_OR_PASSWORD")

            if self.require_email_verification and not user.email_verified:
                unverified_user = user
                result = None
            elif user.two_factor_enabled:
                # Second factor still required; no session yet
                ensure_not_banned(user)
                attempt = random_string(32)
                store_verification(
                    db,
                    f"{TWO_FACTOR_PREFIX}{attempt}",
                    {"user_id": user.id, "remember_me": remember_me},
                    self.two_factor_expires_in,
                )
                result = {"two_factor_redirect": True, "two_factor_token": attempt, "remember_me": remember_me}
            else:
                session = complete_sign_in(db, user, "email", ip_address, user_agent, remember_me)
                result = session_payload(session, user, redirect=bool(callback_url), url=callback_url,
                                         remember_me=remember_me)

        if unverified_user is not None:
            self._send_verification(unverified_user, callback_url)
            raise APIError(403, "EMAIL_NOT_VERIFIED")

        if result.get("token"):
            notify_new_login(user, ip_address, user_agent)
        return result

    def sign_out(self, token: Optional[str]) -> Dict[str, Any]:
        if token:
            with self.db_manager.session_context() as db:
                db.query(SessionModel).filter(SessionModel.token == token).delete(synchronize_session=False)
        return {"success": True}

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def get_session(self, token: Optional[str]) -> Optional[Dict[str, Any]]:
        with self.db_manager.session_context() as db:
            session = resolve_session(db, token)
            if session is None:
                return None
            return {"session": session.to_dict(), "user": session.user.to_dict()}

    def list_sessions(self, user_id: str, current_token: Optional[str] = None) -> List[Dict[str, Any]]:
        with self.db_manager.session_context() as db:
            # Listing is read-only: no refresh, no cleanup
            sessions = (
                db.query(SessionModel)
                .filter(SessionModel.user_id == user_id, SessionModel.expires_at > now_utc())
                .order_by(SessionModel.created_at.desc())
                .all()
            )
            return [
                {
                    **s.to_dict(),
                    "device": parse_user_agent(s.user_agent, s.ip_address),
                    "current": s.token == current_token,
                }
                for s in sessions
            ]

    def revoke_session(self, user_id: str, token: str) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            db.query(SessionModel).filter(
                SessionModel.user_id == user_id, SessionModel.token == token
            ).delete(synchronize_session=False)
        return {"status": True}

    def revoke_sessions(self, user_id: str) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            db.query(SessionModel).filter(SessionModel.user_id == user_id).delete(synchronize_session=False)
        return {"status": True}

    def revoke_other_sessions(self, user_id: str, current_token: str) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            db.query(SessionModel).filter(
                SessionModel.user_id == user_id, SessionModel.token != current_token
            ).delete(synchronize_session=False)
        return {"status": True}

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    def request_password_reset(self, email: str, redirect_to: Optional[str] = None) -> Dict[str, Any]:
        self.check_callback_url(redirect_to, "INVALID_REDIRECT_URL")
        email = normalize_email(email)
        with self.db_manager.session_context() as db:
            user = db.query(UserModel).filter(UserModel.email == email).first()
            token = None
            if user is not None:
                token = random_string(24)
                store_verification(db, f"{RESET_PASSWORD_PREFIX}{token}", user.id, self.reset_expires_in)

        if user is not None:
            base = redirect_to or f"{self.app_url}/reset-password"
            separator = "&" if "?" in base else "?"
            email_service.send_reset_password_email(user, f"{base}{separator}{urlencode({'token': token})}")
            logger.info(f"🔑 Password reset requested for {email}")
        else:
            logger.info(f"Password reset requested for unknown email {email}")

        return {
            "status": True,
            "message": "If this email exists in our system, check your email for the reset link",
        }

    def reset_password(self, token: str, new_password: str) -> Dict[str, Any]:
        self.check_password_length(new_password)
        identifier = f"{RESET_PASSWORD_PREFIX}{token}"
        with self.db_manager.session_context() as db:
            record = find_verification(db, identifier)
            if record is None:
                raise APIError(400, "INVALID_TOKEN")
            user = self._get_user(db, record.value)
            upsert_credential_account(db, user, new_password)
            delete_verification(db, identifier)
            db.query(SessionModel).filter(SessionModel.user_id == user.id).delete(synchronize_session=False)

        logger.info(f"🔑 Password reset for {user.email}")
        email_service.send_password_changed_email(user)
        return {"status": True}

    def change_password(
        self,
        user_id: str,
        current_password: str,
        new_password: str,
        revoke_other_sessions: bool = False,
        current_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        self.check_password_length(new_password)
        with self.db_manager.session_context() as db:
            user = self._get_user(db, user_id)
            account = get_credential_account(db, user.id)
            if account is None:
                raise APIError(400, "CREDENTIAL_ACCOUNT_NOT_FOUND")
            if not SecurityService.verify_password(current_password, account.password):
                raise APIError(400, "INVALID_PASSWORD")
            account.password = SecurityService.hash_password(new_password)
            if revoke_other_sessions and current_token:
                db.query(SessionModel).filter(
                    SessionModel.user_id == user.id, SessionModel.token != current_token
                ).delete(synchronize_session=False)
            result = {"user": user.to_dict(), "token": current_token}

        email_service.send_password_changed_email(user)
        return result

    def set_password(self, user_id: str, new_password: str) -> Dict[str, Any]:
        """Add a password to an account that only signs in through providers"""
        self.check_password_length(new_password)
        with self.db_manager.session_context() as db:
            user = self._get_user(db, user_id)
            if get_credential_account(db, user.id) is not None:
                raise APIError(400, "PASSWORD_ALREADY_SET")
            upsert_credential_account(db, user, new_password)
        return {"status": True}

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def update_user(self, user_id: str, fields: Dict[str, Any], actor_email: Optional[str] = None) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            user = self._get_user(db, user_id)
            for name, value in fields.items():
                if name in PROFILE_FIELDS:
                    setattr(user, name, value)
            user.updated_by = actor_email or user.email
            db.flush()
            return {"status": True, "user": user.to_dict()}

    def change_email(self, user_id: str, new_email: str, callback_url: Optional[str] = None) -> Dict[str, Any]:
        self.check_callback_url(callback_url)
        new_email = normalize_email(new_email)
        with self.db_manager.session_context() as db:
            user = self._get_user(db, user_id)
            if new_email == user.email:
                raise APIError(400, "INVALID_EMAIL", "Email is the same")
            if db.query(UserModel).filter(UserModel.email == new_email).first():
                raise APIError(422, "USER_ALREADY_EXISTS")

            if not user.email_verified:
                user.email = new_email
                user.updated_by = new_email
                return {"status": True, "user": user.to_dict()}

            current_email = user.email

        token = SecurityService.create_email_verification_token(current_email, update_to=new_email)
        email_service.send_change_email_verification(user, new_email, self.verification_url(token, callback_url))
        return {"status": True}

    def delete_user(self, user_id: str, password: Optional[str] = None) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            user = self._get_user(db, user_id)
            account = get_credential_account(db, user.id)
            if account is not None and not SecurityService.verify_password(password or "", account.password):
                raise APIError(400, "INVALID_PASSWORD")
            db.delete(user)
        logger.info(f"🗑️  User deleted: {user.email}")
        return {"success": True, "message": "User deleted"}

    # ------------------------------------------------------------------
    # Linked accounts
    # ------------------------------------------------------------------

    def list_accounts(self, user_id: str) -> List[Dict[str, Any]]:
        with self.db_manager.session_context() as db:
            accounts = db.query(AccountModel).filter(AccountModel.user_id == user_id).all()
            return [a.to_dict() for a in accounts]

    def unlink_account(self, user_id: str, provider_id: str, account_id: Optional[str] = None) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            accounts = db.query(AccountModel).filter(AccountModel.user_id == user_id).all()
            if len(accounts) <= 1:
                raise APIError(400, "FAILED_TO_UNLINK_LAST_ACCOUNT")
            target = next(
                (
                    a for a in accounts
                    if a.provider_id == provider_id and (account_id is None or a.account_id == account_id)
                ),
                None,
            )
            if target is None:
                raise APIError(400, "ACCOUNT_NOT_FOUND")
            db.delete(target)
        return {"status": True}
