"""
RBAC Service
============

CRUD over roles and permissions, role<->permission and user<->role
assignments, and permission checks.

Authorization of the caller (signed in, admin role) happens in the API
dependencies; this service only receives the acting user's email for the
audit columns.
"""

import logging
from typing import Optional, Dict, Any, List, Iterable

from sqlalchemy import func

from src.auth.errors import APIError
from src.database.models import Role, Permission, UserRole, RolePermission, UserModel
from src.database.query import apply_search, apply_sort
from src.rbac.options import RBACOptions
from src.rbac.validation import validate_key, resolve_pagination

logger = logging.getLogger(__name__)

ROLE_SORT_FIELDS = ("name", "key", "description", "is_active", "created_at", "updated_at")
PERMISSION_SORT_FIELDS = ROLE_SORT_FIELDS
USER_SORT_FIELDS = ("name", "email", "created_at", "updated_at")
SEARCH_FIELDS = ("name", "key")


class RBACService:
    """Role-based access control operations"""

    def __init__(self, db_manager, options: Optional[RBACOptions] = None):
        self.db_manager = db_manager
        self.options = options or RBACOptions.from_config()

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _page(self, limit, offset):
        return resolve_pagination(limit, offset, self.options.pagination)

    @staticmethod
    def _get_role(db, role_id: str) -> Role:
        role = db.get(Role, role_id) if role_id else None
        if role is None:
            raise APIError(404, "ROLE_NOT_FOUND")
        return role

    @staticmethod
    def _get_permission(db, permission_id: str) -> Permission:
        permission = db.get(Permission, permission_id) if permission_id else None
        if permission is None:
            raise APIError(404, "PERMISSION_NOT_FOUND")
        return permission

    @staticmethod
    def _get_user(db, user_id: str) -> UserModel:
        user = db.get(UserModel, user_id) if user_id else None
        if user is None:
            raise APIError(404, "USER_NOT_FOUND", "User not found.")
        return user

    def _search_listing(self, db, model, search_value, search_field, search_operator,
                        limit, offset, sort_by, sort_direction, sort_fields, base_query=None):
        limit, offset = self._page(limit, offset)
        query = base_query if base_query is not None else db.query(model)
        field = search_field if search_field in SEARCH_FIELDS else "name"
        query = apply_search(query, getattr(model, field), search_operator, search_value)
        total = query.count()
        query = apply_sort(query, model, sort_by, sort_direction, sort_fields, default="name")
        rows = query.offset(offset).limit(limit).all()
        return rows, total, limit, offset

    def _link_permissions(self, db, role: Role, permission_ids: Iterable[str]):
        for permission_id in permission_ids:
            if db.get(Permission, permission_id) is None:
                raise APIError(404, "PERMISSION_NOT_FOUND", f"Permission with id {permission_id} not found")
            db.add(RolePermission(role_id=role.id, permission_id=permission_id))

    def _link_roles(self, db, permission: Permission, role_ids: Iterable[str]):
        for role_id in role_ids:
            if db.get(Role, role_id) is None:
                raise APIError(404, "ROLE_NOT_FOUND", f"Role with id {role_id} not found")
            db.add(RolePermission(role_id=role_id, permission_id=permission.id))

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def list_roles(self, search_value: Optional[str] = None, search_field: Optional[str] = "name",
                   search_operator: Optional[str] = "contains", limit=None, offset=None,
                   sort_by: Optional[str] = None, sort_direction: Optional[str] = None) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            rows, total, limit, offset = self._search_listing(
                db, Role, search_value, search_field, search_operator,
                limit, offset, sort_by, sort_direction, ROLE_SORT_FIELDS,
            )
            return {"roles": [r.to_dict() for r in rows], "total": total, "limit": limit, "offset": offset}

    def get_role(self, role_id: str) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            return {"role": self._get_role(db, role_id).to_dict()}

    def create_role(self, name: str, key: str, description: Optional[str] = None,
                    permission_ids: Optional[List[str]] = None, is_active: bool = True,
                    actor_email: Optional[str] = None) -> Dict[str, Any]:
        key = validate_key("role", key, self.options)
        with self.db_manager.session_context() as db:
            if db.query(Role).filter(Role.key == key).first():
                raise APIError(400, "ROLE_ALREADY_EXISTS")
            role = Role(
                name=name,
                key=key,
                description=description,
                is_active=is_active if is_active is not None else True,
                created_by=actor_email,
                updated_by=actor_email,
            )
            db.add(role)
            db.flush()
            self._link_permissions(db, role, dict.fromkeys(permission_ids or []))
            db.flush()
            logger.info(f"✅ Role created: {key}")
            return {"role": role.to_dict()}

    def update_role(self, role_id: str, name: Optional[str] = None, key: Optional[str] = None,
                    description: Optional[str] = None, is_active: Optional[bool] = None,
                    permission_ids: Optional[List[str]] = None,
                    actor_email: Optional[str] = None) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            role = self._get_role(db, role_id)

            if key and key != role.key:
                key = validate_key("role", key, self.options)
                if db.query(Role).filter(Role.key == key, Role.id != role.id).first():
                    raise APIError(400, "ROLE_ALREADY_EXISTS")
                role.key = key
            if name:
                role.name = name
            if description is not None:
                role.description = description
            if is_active is not None:
                role.is_active = is_active
            role.updated_by = actor_email

            if permission_ids is not None:
                wanted = set(permission_ids)
                current = {rp.permission_id: rp for rp in role.role_permissions}
                for permission_id, link in current.items():
                    if permission_id not in wanted:
                        db.delete(link)
                self._link_permissions(db, role, [p for p in dict.fromkeys(permission_ids) if p not in current])

            db.flush()
            return {"role": role.to_dict()}

    def delete_role(self, role_id: str) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            role = self._get_role(db, role_id)
            db.delete(role)
            logger.info(f"🗑️  Role deleted: {role.key}")
        return {"success": True, "message": "Role deleted successfully"}

    def get_roles_options(self, only_active: bool = True) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            query = db.query(Role)
            if only_active:
                query = query.filter(Role.is_active.is_(True))
            roles = query.order_by(Role.name.asc()).all()
            return {"options": [{"value": r.id, "label": r.name} for r in roles]}

    def get_role_permissions(self, role_id: Optional[str] = None, role_key: Optional[str] = None,
                             search_value: Optional[str] = None, search_field: Optional[str] = "name",
                             search_operator: Optional[str] = "contains", limit=None, offset=None,
                             sort_by: Optional[str] = None, sort_direction: Optional[str] = None) -> Dict[str, Any]:
        if not role_id and not role_key:
            raise APIError(400, "INVALID_ROLE", "Either roleId or roleKey is required.")
        with self.db_manager.session_context() as db:
            if role_id:
                role = self._get_role(db, role_id)
            else:
                role = db.query(Role).filter(Role.key == role_key).first()
                if role is None:
                    raise APIError(404, "ROLE_NOT_FOUND")

            base = (
                db.query(Permission)
                .join(RolePermission, RolePermission.permission_id == Permission.id)
                .filter(RolePermission.role_id == role.id)
            )
            rows, total, limit, offset = self._search_listing(
                db, Permission, search_value, search_field, search_operator,
                limit, offset, sort_by, sort_direction, PERMISSION_SORT_FIELDS, base_query=base,
            )
            return {
                "role": role.to_dict(),
                "permissions": [p.to_dict() for p in rows],
                "total": total,
                "limit": limit,
                "offset": offset,
            }

    def get_role_users(self, role_id: str, search_value: Optional[str] = None,
                       search_operator: Optional[str] = "contains", limit=None, offset=None,
                       sort_by: Optional[str] = None, sort_direction: Optional[str] = None) -> Dict[str, Any]:
        limit, offset = self._page(limit, offset)
        with self.db_manager.session_context() as db:
            role = self._get_role(db, role_id)
            query = (
                db.query(UserModel)
                .join(UserRole, UserRole.user_id == UserModel.id)
                .filter(UserRole.role_id == role.id)
            )
            query = apply_search(query, UserModel.email, search_operator, search_value)
            total = query.count()
            query = apply_sort(query, UserModel, sort_by, sort_direction, USER_SORT_FIELDS, default="email")
            users = query.offset(offset).limit(limit).all()
            return {
                "role": role.to_dict(),
                "users": [{"id": u.id, "name": u.name, "email": u.email, "image": u.image} for u in users],
                "total": total,
                "limit": limit,
                "offset": offset,
            }

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    def list_permissions(self, search_value: Optional[str] = None, search_field: Optional[str] = "name",
                         search_operator: Optional[str] = "contains", limit=None, offset=None,
                         sort_by: Optional[str] = None, sort_direction: Optional[str] = None) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            rows, total, limit, offset = self._search_listing(
                db, Permission, search_value, search_field, search_operator,
                limit, offset, sort_by, sort_direction, PERMISSION_SORT_FIELDS,
            )
            return {"permissions": [p.to_dict() for p in rows], "total": total, "limit": limit, "offset": offset}

    def get_permission(self, permission_id: str) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            return {"permission": self._get_permission(db, permission_id).to_dict()}

    def create_permission(self, name: str, key: str, description: Optional[str] = None,
                          role_ids: Optional[List[str]] = None, is_active: bool = True,
                          actor_email: Optional[str] = None) -> Dict[str, Any]:
        key = validate_key("permission", key, self.options)
        with self.db_manager.session_context() as db:
            if db.query(Permission).filter(Permission.key == key).first():
                raise APIError(400, "PERMISSION_ALREADY_EXISTS")
            permission = Permission(
                name=name,
                key=key,
                description=description,
                is_active=is_active if is_active is not None else True,
                created_by=actor_email,
                updated_by=actor_email,
            )
            db.add(permission)
            db.flush()
            self._link_roles(db, permission, dict.fromkeys(role_ids or []))
            db.flush()
            logger.info(f"✅ Permission created: {key}")
            return {"permission": permission.to_dict()}

    def update_permission(self, permission_id: str, name: Optional[str] = None, key: Optional[str] = None,
                          description: Optional[str] = None, is_active: Optional[bool] = None,
                          role_ids: Optional[List[str]] = None,
                          actor_email: Optional[str] = None) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            permission = self._get_permission(db, permission_id)

            if key and key != permission.key:
                key = validate_key("permission", key, self.options)
                if db.query(Permission).filter(Permission.key == key, Permission.id != permission.id).first():
                    raise APIError(400, "PERMISSION_ALREADY_EXISTS")
                permission.key = key
            if name:
                permission.name = name
            if description is not None:
                permission.description = description
            if is_active is not None:
                permission.is_active = is_active
            permission.updated_by = actor_email

            if role_ids is not None:
                wanted = set(role_ids)
                current = {rp.role_id: rp for rp in permission.role_permissions}
                for role_id, link in current.items():
                    if role_id not in wanted:
                        db.delete(link)
                self._link_roles(db, permission, [r for r in dict.fromkeys(role_ids) if r not in current])

            db.flush()
            return {"permission": permission.to_dict()}

    def delete_permission(self, permission_id: str) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            permission = self._get_permission(db, permission_id)
            db.delete(permission)
            logger.info(f"🗑️  Permission deleted: {permission.key}")
        return {"success": True, "message": "Permission deleted successfully"}

    def get_permissions_options(self, only_active: bool = True, search: Optional[str] = None,
                                limit: Optional[int] = None) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            query = db.query(Permission)
            if only_active:
                query = query.filter(Permission.is_active.is_(True))
            query = apply_search(query, Permission.name, "contains", search)
            query = query.order_by(Permission.name.asc())
            if limit:
                query = query.limit(int(limit))
            return {"options": [{"value": p.id, "label": p.name} for p in query.all()]}

    def get_permission_roles(self, permission_id: Optional[str] = None, permission_key: Optional[str] = None,
                             search_value: Optional[str] = None, search_field: Optional[str] = "name",
                             search_operator: Optional[str] = "contains", limit=None, offset=None,
                             sort_by: Optional[str] = None, sort_direction: Optional[str] = None) -> Dict[str, Any]:
        if not permission_id and not permission_key:
            raise APIError(400, "INVALID_PERMISSION", "Either permissionId or permissionKey is required.")
        with self.db_manager.session_context() as db:
            if permission_id:
                permission = self._get_permission(db, permission_id)
            else:
                permission = db.query(Permission).filter(Permission.key == permission_key).first()
                if permission is None:
                    raise APIError(404, "PERMISSION_NOT_FOUND")

            base = (
                db.query(Role)
                .join(RolePermission, RolePermission.role_id == Role.id)
                .filter(RolePermission.permission_id == permission.id)
            )
            rows, total, limit, offset = self._search_listing(
                db, Role, search_value, search_field, search_operator,
                limit, offset, sort_by, sort_direction, ROLE_SORT_FIELDS, base_query=base,
            )
            return {
                "permission": permission.to_dict(),
                "roles": [r.to_dict() for r in rows],
                "total": total,
                "limit": limit,
                "offset": offset,
            }

    # ------------------------------------------------------------------
    # Assignments
    # ------------------------------------------------------------------

    def assign_permission_to_role(self, role_id: str, permission_id: str) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            role = self._get_role(db, role_id)
            permission = self._get_permission(db, permission_id)
            existing = db.query(RolePermission).filter_by(role_id=role.id, permission_id=permission.id).first()
            if existing:
                return {"success": True, "message": "Permission already assigned to role"}
            db.add(RolePermission(role_id=role.id, permission_id=permission.id))
        return {"success": True, "message": "Permission assigned to role successfully"}

    def remove_permission_from_role(self, role_id: str, permission_id: str) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            role = self._get_role(db, role_id)
            permission = self._get_permission(db, permission_id)
            db.query(RolePermission).filter_by(
                role_id=role.id, permission_id=permission.id
            ).delete(synchronize_session=False)
        return {"success": True, "message": "Permission removed from role successfully"}

    def assign_role_to_user(self, user_id: str, role_id: str) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            user = self._get_user(db, user_id)
            role = self._get_role(db, role_id)
            if db.query(UserRole).filter_by(user_id=user.id, role_id=role.id).first():
                return {"success": True, "message": "Role already assigned to user"}
            db.add(UserRole(user_id=user.id, role_id=role.id))
        return {"success": True, "message": "Role assigned to user successfully"}

    def remove_role_from_user(self, user_id: str, role_id: str) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            user = self._get_user(db, user_id)
            role = self._get_role(db, role_id)
            db.query(UserRole).filter_by(user_id=user.id, role_id=role.id).delete(synchronize_session=False)
        return {"success": True, "message": "Role removed from user successfully"}

    # ------------------------------------------------------------------
    # Permission checks
    # ------------------------------------------------------------------

    def user_has_permission(self, db, user_id: str, permission_key: str) -> bool:
        """True when an active role of the user carries the active permission"""
        count = (
            db.query(func.count(RolePermission.id))
            .join(Permission, Permission.id == RolePermission.permission_id)
            .join(Role, Role.id == RolePermission.role_id)
            .join(UserRole, UserRole.role_id == Role.id)
            .filter(
                UserRole.user_id == user_id,
                Permission.key == permission_key,
                Permission.is_active.is_(True),
                Role.is_active.is_(True),
            )
            .scalar()
        )
        return bool(count)

    def check_permission(self, user_id: str, permission_key: str) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            self._get_user(db, user_id)
            return {"has_permission": self.user_has_permission(db, user_id, permission_key)}

    def has_permission(self, user_id: str, permission_key: str) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            return {"has_permission": self.user_has_permission(db, user_id, permission_key)}

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def get_user_roles(self, user_id: str, search_value: Optional[str] = None, search_field: Optional[str] = "name",
                       search_operator: Optional[str] = "contains", limit=None, offset=None,
                       sort_by: Optional[str] = None, sort_direction: Optional[str] = None) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            user = self._get_user(db, user_id)
            base = (
                db.query(Role)
                .join(UserRole, UserRole.role_id == Role.id)
                .filter(UserRole.user_id == user.id)
            )
            roles, total, limit, offset = self._search_listing(
                db, Role, search_value, search_field, search_operator,
                limit, offset, sort_by, sort_direction, ROLE_SORT_FIELDS, base_query=base,
            )
            return {
                "user": user.to_dict(),
                "roles": [r.to_dict() for r in roles],
                "total": total,
                "limit": limit,
                "offset": offset,
            }

    def get_user_permissions(self, user_id: str) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            user = self._get_user(db, user_id)
            seen = {}
            for user_role in sorted(user.user_roles, key=lambda ur: ur.role.name):
                for link in user_role.role.role_permissions:
                    seen.setdefault(link.permission.id, link.permission)
            return {"permissions": [p.to_dict() for p in seen.values()]}

    def set_user_roles(self, user_id: str, role_ids: List[str]) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            user = self._get_user(db, user_id)
            wanted = list(dict.fromkeys(role_ids or []))
            for role_id in wanted:
                if db.get(Role, role_id) is None:
                    raise APIError(404, "ROLE_NOT_FOUND", f"Role not found.: {role_id}")

            current = {ur.role_id: ur for ur in user.user_roles}
            to_delete = [link for role_id, link in current.items() if role_id not in wanted]
            to_add = [role_id for role_id in wanted if role_id not in current]
            kept = [role_id for role_id in wanted if role_id in current]

            for link in to_delete:
                db.delete(link)
            for role_id in to_add:
                db.add(UserRole(user_id=user.id, role_id=role_id))

        return {
            "success": True,
            "message": "User roles updated successfully",
            "added": len(to_add),
            "removed": len(to_delete),
            "kept": len(kept),
        }

    def get_users_options(self, only_active: bool = True, search: Optional[str] = None,
                          limit: Optional[int] = None) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            query = db.query(UserModel)
            if only_active:
                query = query.filter(UserModel.email_verified.is_(True))
            query = apply_search(query, UserModel.email, "contains", search)
            query = query.order_by(UserModel.email.asc())
            if limit:
                query = query.limit(int(limit))
            return {"options": [{"value": u.id, "label": u.email} for u in query.all()]}

    def update_user(self, user_id: str, role_ids: Optional[List[str]] = None,
                    actor_email: Optional[str] = None) -> Dict[str, Any]:
        if role_ids is not None:
            self.set_user_roles(user_id, role_ids)
        with self.db_manager.session_context() as db:
            user = self._get_user(db, user_id)
            if actor_email:
                user.updated_by = actor_email
            return {"user": user.to_dict()}
