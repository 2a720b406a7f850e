"""
RBAC endpoints
==============

Roles, permissions, assignments and permission checks. Reads are GET with
query parameters, writes are POST with a JSON body. Every endpoint requires
an admin except `has-permission`, which answers for the caller.

Endpoints listed in `rbac.disabled_endpoints` answer 404.
"""

from typing import Optional, Callable
import logging

from fastapi import APIRouter, Depends

from src.api.v1.schemas import (
    RoleCreateRequest,
    RoleUpdateRequest,
    PermissionCreateRequest,
    PermissionUpdateRequest,
    RoleIdRequest,
    PermissionIdRequest,
    RolePermissionRequest,
    UserRoleRequest,
    CheckPermissionRequest,
    HasPermissionRequest,
    SetUserRolesRequest,
    RBACUpdateUserRequest,
)
from src.auth.dependencies import get_current_user, require_admin, get_rbac_service
from src.auth.errors import APIError
from src.rbac.service import RBACService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/auth/rbac", tags=["rbac"])


def endpoint(name: str) -> Callable:
    """
    Resolve the service for `name`, refusing endpoints disabled in config

    Routes declare it ahead of their auth guard, so a disabled endpoint
    answers 404 whoever calls it.
    """

    def dependency() -> RBACService:
        service = get_rbac_service()
        if service.options.is_disabled(name):
            raise APIError(404, "NOT_FOUND", "Not found")
        return service

    return dependency


# ============================================================================
# Roles
# ============================================================================

@router.get("/list-roles")
async def list_roles(
    search_value: Optional[str] = None,
    search_field: Optional[str] = "name",
    search_operator: Optional[str] = "contains",
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    sort_by: Optional[str] = None,
    sort_direction: Optional[str] = None,
    service: RBACService = Depends(endpoint("list-roles")),
    admin: dict = Depends(require_admin),
):
    return service.list_roles(search_value, search_field, search_operator, limit, offset, sort_by, sort_direction)


@router.get("/get-role")
async def get_role(
    role_id: str,
    service: RBACService = Depends(endpoint("get-role")),
    admin: dict = Depends(require_admin),
):
    return service.get_role(role_id)


@router.post("/create-role")
async def create_role(
    body: RoleCreateRequest,
    service: RBACService = Depends(endpoint("create-role")),
    admin: dict = Depends(require_admin),
):
    return service.create_role(
        body.name, body.key, body.description, body.permission_ids, body.is_active, actor_email=admin["email"]
    )


@router.post("/update-role")
async def update_role(
    body: RoleUpdateRequest,
    service: RBACService = Depends(endpoint("update-role")),
    admin: dict = Depends(require_admin),
):
    return service.update_role(
        body.role_id, body.name, body.key, body.description, body.is_active, body.permission_ids,
        actor_email=admin["email"],
    )


@router.post("/delete-role")
async def delete_role(
    body: RoleIdRequest,
    service: RBACService = Depends(endpoint("delete-role")),
    admin: dict = Depends(require_admin),
):
    return service.delete_role(body.role_id)


@router.get("/get-roles-options")
async def get_roles_options(
    only_active: bool = True,
    service: RBACService = Depends(endpoint("get-roles-options")),
    admin: dict = Depends(require_admin),
):
    return service.get_roles_options(only_active)


@router.get("/get-role-permissions")
async def get_role_permissions(
    role_id: Optional[str] = None,
    role_key: Optional[str] = None,
    search_value: Optional[str] = None,
    search_field: Optional[str] = "name",
    search_operator: Optional[str] = "contains",
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    sort_by: Optional[str] = None,
    sort_direction: Optional[str] = None,
    service: RBACService = Depends(endpoint("get-role-permissions")),
    admin: dict = Depends(require_admin),
):
    return service.get_role_permissions(
        role_id, role_key, search_value, search_field, search_operator, limit, offset, sort_by, sort_direction
    )


@router.get("/get-role-users")
async def get_role_users(
    role_id: str,
    search_value: Optional[str] = None,
    search_operator: Optional[str] = "contains",
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    sort_by: Optional[str] = None,
    sort_direction: Optional[str] = None,
    service: RBACService = Depends(endpoint("get-role-users")),
    admin: dict = Depends(require_admin),
):
    return service.get_role_users(role_id, search_value, search_operator, limit, offset, sort_by, sort_direction)


# ============================================================================
# Permissions
# ============================================================================

@router.get("/list-permissions")
async def list_permissions(
    search_value: Optional[str] = None,
    search_field: Optional[str] = "name",
    search_operator: Optional[str] = "contains",
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    sort_by: Optional[str] = None,
    sort_direction: Optional[str] = None,
    service: RBACService = Depends(endpoint("list-permissions")),
    admin: dict = Depends(require_admin),
):
    return service.list_permissions(
        search_value, search_field, search_operator, limit, offset, sort_by, sort_direction
    )


@router.get("/get-permission")
async def get_permission(
    permission_id: str,
    service: RBACService = Depends(endpoint("get-permission")),
    admin: dict = Depends(require_admin),
):
    return service.get_permission(permission_id)


@router.post("/create-permission")
async def create_permission(
    body: PermissionCreateRequest,
    service: RBACService = Depends(endpoint("create-permission")),
    admin: dict = Depends(require_admin),
):
    return service.create_permission(
        body.name, body.key, body.description, body.role_ids, body.is_active, actor_email=admin["email"]
    )


@router.post("/update-permission")
async def update_permission(
    body: PermissionUpdateRequest,
    service: RBACService = Depends(endpoint("update-permission")),
    admin: dict = Depends(require_admin),
):
    return service.update_permission(
        body.permission_id, body.name, body.key, body.description, body.is_active, body.role_ids,
        actor_email=admin["email"],
    )


@router.post("/delete-permission")
async def delete_permission(
    body: PermissionIdRequest,
    service: RBACService = Depends(endpoint("delete-permission")),
    admin: dict = Depends(require_admin),
):
    return service.delete_permission(body.permission_id)


@router.get("/get-permissions-options")
async def get_permissions_options(
    only_active: bool = True,
    search: Optional[str] = None,
    limit: Optional[int] = None,
    service: RBACService = Depends(endpoint("get-permissions-options")),
    admin: dict = Depends(require_admin),
):
    return service.get_permissions_options(only_active, search, limit)


@router.get("/get-permission-roles")
async def get_permission_roles(
    permission_id: Optional[str] = None,
    permission_key: Optional[str] = None,
    search_value: Optional[str] = None,
    search_field: Optional[str] = "name",
    search_operator: Optional[str] = "contains",
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    sort_by: Optional[str] = None,
    sort_direction: Optional[str] = None,
    service: RBACService = Depends(endpoint("get-permission-roles")),
    admin: dict = Depends(require_admin),
):
    return service.get_permission_roles(
        permission_id, permission_key, search_value, search_field, search_operator,
        limit, offset, sort_by, sort_direction,
    )


# ============================================================================
# Assignments
# ============================================================================

@router.post("/assign-permission-to-role")
async def assign_permission_to_role(
    body: RolePermissionRequest,
    service: RBACService = Depends(endpoint("assign-permission-to-role")),
    admin: dict = Depends(require_admin),
):
    return service.assign_permission_to_role(body.role_id, body.permission_id)


@router.post("/remove-permission-from-role")
async def remove_permission_from_role(
    body: RolePermissionRequest,
    service: RBACService = Depends(endpoint("remove-permission-from-role")),
    admin: dict = Depends(require_admin),
):
    return service.remove_permission_from_role(body.role_id, body.permission_id)


@router.post("/assign-role-to-user")
async def assign_role_to_user(
    body: UserRoleRequest,
    service: RBACService = Depends(endpoint("assign-role-to-user")),
    admin: dict = Depends(require_admin),
):
    return service.assign_role_to_user(body.user_id, body.role_id)


@router.post("/remove-role-from-user")
async def remove_role_from_user(
    body: UserRoleRequest,
    service: RBACService = Depends(endpoint("remove-role-from-user")),
    admin: dict = Depends(require_admin),
):
    return service.remove_role_from_user(body.user_id, body.role_id)


# ============================================================================
# Checks
# ============================================================================

@router.post("/check-permission")
async def check_permission(
    body: CheckPermissionRequest,
    service: RBACService = Depends(endpoint("check-permission")),
    admin: dict = Depends(require_admin),
):
    return service.check_permission(body.user_id, body.permission_key)


@router.post("/has-permission")
async def has_permission(
    body: HasPermissionRequest,
    service: RBACService = Depends(endpoint("has-permission")),
    current_user: dict = Depends(get_current_user),
):
    return service.has_permission(current_user["user_id"], body.permission_key)


# ============================================================================
# Users
# ============================================================================

@router.get("/get-user-roles")
async def get_user_roles(
    user_id: str,
    search_value: Optional[str] = None,
    search_field: Optional[str] = "name",
    search_operator: Optional[str] = "contains",
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    sort_by: Optional[str] = None,
    sort_direction: Optional[str] = None,
    service: RBACService = Depends(endpoint("get-user-roles")),
    admin: dict = Depends(require_admin),
):
    return service.get_user_roles(
        user_id, search_value, search_field, search_operator, limit, offset, sort_by, sort_direction
    )


@router.get("/get-user-permissions")
async def get_user_permissions(
    user_id: str,
    service: RBACService = Depends(endpoint("get-user-permissions")),
    admin: dict = Depends(require_admin),
):
    return service.get_user_permissions(user_id)


@router.post("/set-user-roles")
async def set_user_roles(
    body: SetUserRolesRequest,
    service: RBACService = Depends(endpoint("set-user-roles")),
    admin: dict = Depends(require_admin),
):
    return service.set_user_roles(body.user_id, body.role_ids)


@router.get("/get-users-options")
async def get_users_options(
    only_active: bool = True,
    search: Optional[str] = None,
    limit: Optional[int] = None,
    service: RBACService = Depends(endpoint("get-users-options")),
    admin: dict = Depends(require_admin),
):
    return service.get_users_options(only_active, search, limit)


@router.post("/update-user")
async def update_user(
    body: RBACUpdateUserRequest,
    service: RBACService = Depends(endpoint("update-user")),
    admin: dict = Depends(require_admin),
):
    return service.update_user(body.user_id, body.role_ids, actor_email=admin["email"])
