"""Idempotent seeding of the configured permissions and roles."""

import logging
from typing import Optional, Dict

from src.database.models import Role, Permission, RolePermission
from src.rbac.options import RBACOptions
from src.auth.errors import APIError
from src.rbac.validation import validate_key

logger = logging.getLogger(__name__)

SEED_ACTOR = "system"


def _seed_key(key_type: str, item: dict, options: RBACOptions) -> Optional[str]:
    try:
        return validate_key(key_type, item.get("key"), options)
    except APIError as e:
        logger.warning(f"⚠️  Skipping seed {key_type} {item.get('key')!r}: {e.message}")
        return None


def seed_rbac(db_manager, options: Optional[RBACOptions] = None) -> Dict[str, int]:
    """
    Insert missing seed permissions and roles, then link each seed role to
    its listed permissions. Existing rows are never modified.

    Returns:
        Counts of created permissions, roles and links
    """
    options = options or RBACOptions.from_config()
    created = {"permissions": 0, "roles": 0, "links": 0}

    with db_manager.session_context() as db:
        permissions = {}
        for item in options.seed_permissions:
            key = _seed_key("permission", item, options)
            if key is None:
                continue
            permission = db.query(Permission).filter(Permission.key == key).first()
            if permission is None:
                permission = Permission(
                    name=item.get("name") or key,
                    key=key,
                    description=item.get("description"),
                    created_by=SEED_ACTOR,
                    updated_by=SEED_ACTOR,
                )
                db.add(permission)
                db.flush()
                created["permissions"] += 1
            permissions[key] = permission

        for item in options.seed_roles:
            key = _seed_key("role", item, options)
            if key is None:
                continue
            role = db.query(Role).filter(Role.key == key).first()
            if role is None:
                role = Role(
                    name=item.get("name") or key,
                    key=key,
                    description=item.get("description"),
                    created_by=SEED_ACTOR,
                    updated_by=SEED_ACTOR,
                )
                db.add(role)
                db.flush()
                created["roles"] += 1

            linked = {rp.permission_id for rp in role.role_permissions}
            for permission_key in item.get("permissions") or []:
                permission = permissions.get(permission_key) or (
                    db.query(Permission).filter(Permission.key == permission_key).first()
                )
                if permission is None:
                    logger.warning(f"⚠️  Seed role '{key}' references unknown permission '{permission_key}'")
                    continue
                if permission.id in linked:
                    continue
                db.add(RolePermission(role_id=role.id, permission_id=permission.id))
                linked.add(permission.id)
                created["links"] += 1

    if any(created.values()):
        logger.info(
            f"🌱 RBAC seeded: {created['permissions']} permissions, "
            f"{created['roles']} roles, {created['links']} links"
        )
    return created
