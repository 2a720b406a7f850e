"""
Admin endpoints (`/auth/admin`) and their extensions (`/auth/admin-plus`).

Every route requires a session whose user holds an admin role.
"""

from typing import Optional
import logging

from fastapi import APIRouter, Depends, Request, Response

from src.api.v1.schemas import (
    UserIdRequest,
    AdminCreateUserRequest,
    SetRoleRequest,
    BanUserRequest,
    SessionTokenRequest,
    SetUserPasswordRequest,
    AdminUpdateUserRequest,
)
from src.auth.dependencies import (
    SESSION_COOKIE,
    ADMIN_SESSION_COOKIE,
    get_current_user,
    require_admin,
    get_client_ip,
    get_user_agent,
    get_admin_service,
    set_cookie,
    set_session_cookie,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/auth/admin", tags=["admin"])
plus_router = APIRouter(prefix="/api/v1/auth/admin-plus", tags=["admin-plus"])


@router.get("/list-users")
async def list_users(
    search_value: Optional[str] = None,
    search_field: Optional[str] = "email",
    search_operator: Optional[str] = "contains",
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    sort_by: Optional[str] = None,
    sort_direction: Optional[str] = None,
    filter_field: Optional[str] = None,
    filter_operator: Optional[str] = None,
    filter_value: Optional[str] = None,
    admin: dict = Depends(require_admin),
):
    return get_admin_service().list_users(
        search_value, search_field, search_operator, limit, offset,
        sort_by, sort_direction, filter_field, filter_operator, filter_value,
    )


@router.post("/create-user")
async def create_user(body: AdminCreateUserRequest, admin: dict = Depends(require_admin)):
    return get_admin_service().create_user(
        body.email, body.password, body.name, body.role, body.data, actor_email=admin["email"]
    )


@router.post("/set-role")
async def set_role(body: SetRoleRequest, admin: dict = Depends(require_admin)):
    return get_admin_service().set_role(body.user_id, body.role, actor_email=admin["email"])


@router.post("/ban-user")
async def ban_user(body: BanUserRequest, admin: dict = Depends(require_admin)):
    return get_admin_service().ban_user(admin["user_id"], body.user_id, body.ban_reason, body.ban_expires_in)


@router.post("/unban-user")
async def unban_user(body: UserIdRequest, admin: dict = Depends(require_admin)):
    return get_admin_service().unban_user(body.user_id)


@router.post("/impersonate-user")
async def impersonate_user(body: UserIdRequest, request: Request, response: Response,
                           admin: dict = Depends(require_admin)):
    result = get_admin_service().impersonate_user(
        admin["user_id"], admin["token"], body.user_id, get_client_ip(request), get_user_agent(request)
    )
    set_cookie(response, SESSION_COOKIE, result["token"])
    set_cookie(response, ADMIN_SESSION_COOKIE, result["admin_session"])
    return result


@router.post("/stop-impersonating")
async def stop_impersonating(request: Request, response: Response, current_user: dict = Depends(get_current_user)):
    result = get_admin_service().stop_impersonating(
        current_user["token"], request.cookies.get(ADMIN_SESSION_COOKIE)
    )
    response.delete_cookie(ADMIN_SESSION_COOKIE, path="/")
    set_session_cookie(response, result)
    return result


@router.post("/list-user-sessions")
async def list_user_sessions(body: UserIdRequest, admin: dict = Depends(require_admin)):
    return get_admin_service().list_user_sessions(body.user_id)


@router.post("/revoke-user-session")
async def revoke_user_session(body: SessionTokenRequest, admin: dict = Depends(require_admin)):
    return get_admin_service().revoke_user_session(body.session_token)


@router.post("/revoke-user-sessions")
async def revoke_user_sessions(body: UserIdRequest, admin: dict = Depends(require_admin)):
    return get_admin_service().revoke_user_sessions(body.user_id)


@router.post("/remove-user")
async def remove_user(body: UserIdRequest, admin: dict = Depends(require_admin)):
    return get_admin_service().remove_user(admin["user_id"], body.user_id)


@router.post("/set-user-password")
async def set_user_password(body: SetUserPasswordRequest, admin: dict = Depends(require_admin)):
    return get_admin_service().set_user_password(body.user_id, body.new_password)


@router.post("/update-user")
async def update_user(body: AdminUpdateUserRequest, admin: dict = Depends(require_admin)):
    return get_admin_service().update_user(body.user_id, body.data, actor_email=admin["email"])


# ============================================================================
# admin-plus
# ============================================================================

@plus_router.post("/remove-password")
async def remove_password(body: UserIdRequest, admin: dict = Depends(require_admin)):
    return get_admin_service().remove_password(body.user_id)


@plus_router.post("/user-has-credential-account")
async def user_has_credential_account(body: UserIdRequest, admin: dict = Depends(require_admin)):
    return get_admin_service().user_has_credential_account(body.user_id)


@plus_router.post("/set-credential-password")
async def set_credential_password(body: SetUserPasswordRequest, admin: dict = Depends(require_admin)):
    return get_admin_service().set_credential_password(body.user_id, body.new_password)


@plus_router.get("/list-users")
async def list_users_advanced(
    search_value: Optional[str] = None,
    search_field: Optional[str] = "email",
    search_operator: Optional[str] = "contains",
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    sort_by: Optional[str] = None,
    sort_direction: Optional[str] = None,
    filters: Optional[str] = None,
    admin: dict = Depends(require_admin),
):
    return get_admin_service().list_users_advanced(
        search_value, search_field, search_operator, limit, offset, sort_by, sort_direction, filters
    )
