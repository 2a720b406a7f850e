"""
Session Store
=============

Creation, lookup and sign-in completion for opaque session tokens, plus the
short-lived verification records every auth flow keeps in the database.
"""

import json
import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from src.auth.errors import APIError
from src.auth.security import SecurityService
from src.database.models import SessionModel, UserModel, VerificationModel
from src.services import email_service
from src.utils.config_loader import ConfigLoader
from src.utils.helpers import parse_user_agent
from src.utils.time import now_utc, ensure_aware, is_expired

logger = logging.getLogger(__name__)

DEFAULT_SESSION_EXPIRES_IN = 60 * 60 * 24 * 7
DEFAULT_SESSION_UPDATE_AGE = 60 * 60 * 24


def _auth_cfg() -> Dict[str, Any]:
    return ConfigLoader().get_auth_config()


def create_session(
    db: Session,
    user: UserModel,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    expires_in: Optional[int] = None,
    impersonated_by: Optional[str] = None,
    remember_me: bool = True,
) -> SessionModel:
    if expires_in is None:
        expires_in = int(_auth_cfg().get("session_expires_in", DEFAULT_SESSION_EXPIRES_IN))
    session = SessionModel(
        token=SecurityService.generate_session_token(),
        user_id=user.id,
        expires_at=now_utc() + timedelta(seconds=expires_in),
        ip_address=ip_address,
        user_agent=user_agent,
        impersonated_by=impersonated_by,
        remember_me=remember_me,
    )
    db.add(session)
    db.flush()
    return session


def resolve_session(db: Session, token: Optional[str]) -> Optional[SessionModel]:
    """
    Find a live session by token.

    Expired sessions are deleted and reported as absent. Remembered sessions
    older than `session_update_age` get their expiry pushed forward.
    """
    if not token:
        return None
    session = db.query(SessionModel).filter(SessionModel.token == token).first()
    if session is None:
        return None

    if is_expired(session.expires_at):
        db.delete(session)
        return None

    cfg = _auth_cfg()
    expires_in = int(cfg.get("session_expires_in", DEFAULT_SESSION_EXPIRES_IN))
    update_age = int(cfg.get("session_update_age", DEFAULT_SESSION_UPDATE_AGE))
    # Impersonation and remember-me-off sessions keep their fixed lifetime
    if session.remember_me and not session.impersonated_by:
        refresh_after = ensure_aware(session.expires_at) - timedelta(seconds=expires_in) + timedelta(seconds=update_age)
        if now_utc() >= refresh_after:
            session.expires_at = now_utc() + timedelta(seconds=expires_in)
            session.updated_at = now_utc()
    return session


def ensure_not_banned(user: UserModel):
    """Raise BANNED_USER for banned users; lift bans whose expiry has passed."""
    if not user.banned:
        return
    if user.ban_expires is not None and is_expired(user.ban_expires):
        logger.info(f"Ban expired for {user.email}, lifting")
        user.banned = False
        user.ban_reason = None
        user.ban_expires = None
        return
    raise APIError(403, "BANNED_USER")


def complete_sign_in(
    db: Session,
    user: UserModel,
    method: str,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    remember_me: bool = True,
) -> SessionModel:
    """Create the session for a fully authenticated user and record the login method"""
    ensure_not_banned(user)
    expires_in = None
    if not remember_me:
        expires_in = int(_auth_cfg().get("remember_me_disabled_expires_in", 60 * 60 * 24))
    session = create_session(db, user, ip_address, user_agent, expires_in=expires_in, remember_me=remember_me)
    user.last_login_method = method
    logger.info(f"✅ Signed in {user.email} via {method}")
    return session


def notify_new_login(user: UserModel, ip_address: Optional[str], user_agent: Optional[str]):
    email_service.send_new_login_email(user, parse_user_agent(user_agent, ip_address))


def session_payload(session: SessionModel, user: UserModel, **extra) -> Dict[str, Any]:
    payload = {
        "token": session.token,
        "session": session.to_dict(),
        "user": user.to_dict(),
    }
    payload.update(extra)
    return payload


# ============================================================================
# Verification records
# ============================================================================

def store_verification(db: Session, identifier: str, value: Any, expires_in: int) -> VerificationModel:
    if not isinstance(value, str):
        value = json.dumps(value)
    record = VerificationModel(
        identifier=identifier,
        value=value,
        expires_at=now_utc() + timedelta(seconds=int(expires_in)),
    )
    db.add(record)
    db.flush()
    return record


def find_verification(db: Session, identifier: str) -> Optional[VerificationModel]:
    """
    Latest live record for `identifier`.

    Expired records are removed and committed right away, so the removal
    survives the error the caller raises next. Call this before the
    transaction has other pending writes.
    """
    record = (
        db.query(VerificationModel)
        .filter(VerificationModel.identifier == identifier)
        .order_by(VerificationModel.created_at.desc())
        .first()
    )
    if record is None:
        return None
    if is_expired(record.expires_at):
        db.query(VerificationModel).filter(
            VerificationModel.identifier == identifier,
            VerificationModel.expires_at <= now_utc(),
        ).delete(synchronize_session=False)
        db.commit()
        return None
    return record


def save_verification_data(db: Session, record: VerificationModel, value: Dict[str, Any]):
    """Rewrite a record's JSON value and commit it, ahead of an error the caller raises"""
    record.value = json.dumps(value)
    db.commit()


def delete_verification(db: Session, identifier: str) -> int:
    return (
        db.query(VerificationModel)
        .filter(VerificationModel.identifier == identifier)
        .delete(synchronize_session=False)
    )


def load_json(record: VerificationModel) -> Dict[str, Any]:
    try:
        return json.loads(record.value)
    except ValueError:
        return {}
