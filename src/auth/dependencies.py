"""
Authentication Dependencies
============================

Dependency injection for authentication: session resolution from the
`session_token` cookie or a Bearer header, admin and permission guards,
request metadata and service factories.
"""

from fastapi import Depends, Request, Response
from fastapi.security import HTTPBearer
from fastapi.security import HTTPAuthorizationCredentials
from typing import Optional, Callable
import logging

from src.admin.service import AdminService
from src.auth.errors import APIError
from src.auth.oauth import OAuthService
from src.auth.passkey import PasskeyService
from src.auth.service import AuthService
from src.auth.sessions import resolve_session
from src.auth.two_factor import TwoFactorService
from src.database import get_db_manager
from src.rbac.service import RBACService
from src.utils.config_loader import ConfigLoader
from src.utils.helpers import split_roles

logger = logging.getLogger(__name__)

SESSION_COOKIE = "session_token"
ADMIN_SESSION_COOKIE = "admin_session"
TWO_FACTOR_COOKIE = "two_factor"
PASSKEY_CHALLENGE_COOKIE = "passkey_challenge"

security = HTTPBearer(auto_error=False)


def get_session_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[str]:
    """Bearer header wins over the cookie"""
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(SESSION_COOKIE)


async def get_current_user_optional(token: Optional[str] = Depends(get_session_token)) -> Optional[dict]:
    """Get current user if authenticated, otherwise None"""
    if not token:
        return None
    with get_db_manager().session_context() as db:
        session = resolve_session(db, token)
        if session is None:
            return None
        user = session.user
        return {
            "user_id": user.id,
            "email": user.email,
            "name": user.name,
            "role": user.role,
            "roles": split_roles(user.role),
            "token": session.token,
            "impersonated_by": session.impersonated_by,
            "session": session.to_dict(),
            "user": user.to_dict(),
        }


async def get_current_user(current_user: Optional[dict] = Depends(get_current_user_optional)) -> dict:
    """
    Get the signed-in user from the session token

    Usage:
        @router.get("/profile")
        async def get_profile(current_user: dict = Depends(get_current_user)):
            return current_user["user"]
    """
    if current_user is None:
        raise APIError(401, "UNAUTHORIZED")
    return current_user


def admin_roles() -> list:
    return ConfigLoader().get_auth_config().get("admin_roles") or ["admin"]


def is_admin(current_user: dict) -> bool:
    allowed = set(admin_roles())
    return any(role in allowed for role in current_user.get("roles") or [])


async def require_admin(current_user: dict = Depends(get_current_user)) -> dict:
    if not is_admin(current_user):
        logger.warning(f"⚠️  Admin access denied for {current_user['email']}")
        raise APIError(403, "FORBIDDEN")
    return current_user


def require_permission(permission_key: str) -> Callable:
    """
    Dependency factory granting access only to users holding `permission_key`

    Usage:
        @router.get("/reports", dependencies=[Depends(require_permission("report:read"))])
    """

    async def checker(current_user: dict = Depends(get_current_user)) -> dict:
        rbac = get_rbac_service()
        with rbac.db_manager.session_context() as db:
            allowed = rbac.user_has_permission(db, current_user["user_id"], permission_key)
        if not allowed:
            logger.warning(f"⚠️  {current_user['email']} lacks permission {permission_key}")
            raise APIError(403, "PERMISSION_DENIED")
        return current_user

    return checker


def get_client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def get_user_agent(request: Request) -> Optional[str]:
    return request.headers.get("user-agent")


def set_cookie(response: Response, name: str, value: str, max_age: Optional[int] = None):
    response.set_cookie(
        name,
        value,
        max_age=max_age,
        httponly=True,
        samesite="lax",
        secure=bool(ConfigLoader().get_auth_config().get("cookie_secure", False)),
        path="/",
    )


def set_session_cookie(response: Response, payload: dict):
    """Set the session cookie when the payload carries a session"""
    token = payload.get("token")
    if not token:
        return
    max_age = None
    if payload.get("remember_me", True):
        max_age = int(ConfigLoader().get_auth_config().get("session_expires_in", 604800))
    set_cookie(response, SESSION_COOKIE, token, max_age)


def get_auth_service() -> AuthService:
    return AuthService(get_db_manager())


def get_two_factor_service() -> TwoFactorService:
    return TwoFactorService(get_db_manager())


def get_passkey_service() -> PasskeyService:
    return PasskeyService(get_db_manager())


def get_oauth_service() -> OAuthService:
    return OAuthService(get_db_manager())


def get_admin_service() -> AdminService:
    return AdminService(get_db_manager())


def get_rbac_service() -> RBACService:
    return RBACService(get_db_manager())
