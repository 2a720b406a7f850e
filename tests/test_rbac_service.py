import pytest

from conftest import make_user
from src.auth.errors import APIError
from src.database.models import Role, Permission, RolePermission, UserRole
from src.rbac.options import RBACOptions
from src.rbac.seed import seed_rbac
from src.rbac.service import RBACService


@pytest.fixture
def rbac(db_manager):
    return RBACService(db_manager, RBACOptions.from_config())


def _role_id(db_manager, key):
    with db_manager.session_context() as db:
        return db.query(Role).filter(Role.key == key).one().id


def _permission_id(db_manager, key):
    with db_manager.session_context() as db:
        return db.query(Permission).filter(Permission.key == key).one().id


def test_seed_is_idempotent(db_manager):
    again = seed_rbac(db_manager, RBACOptions.from_config())
    assert again == {"permissions": 0, "roles": 0, "links": 0}

    with db_manager.session_context() as db:
        assert db.query(Permission).count() == 6
        assert db.query(Role).count() == 2
        admin = db.query(Role).filter(Role.key == "admin").one()
        assert len(admin.role_permissions) == 6
        assert admin.created_by == "system"


def test_seed_skips_invalid_keys_and_unknown_permissions(db_manager):
    options = RBACOptions.from_config({
        "seed_permissions": [{"name": "Bad", "key": "not a key"}, {"name": "Posts", "key": "post:read"}],
        "seed_roles": [{"name": "Writer", "key": "writer", "permissions": ["post:read", "post:missing"]}],
    })
    created = seed_rbac(db_manager, options)
    assert created == {"permissions": 1, "roles": 1, "links": 1}


def test_create_role_with_permissions(rbac, db_manager):
    read_id = _permission_id(db_manager, "user:read")
    result = rbac.create_role("Support", " support ", "Helpdesk", permission_ids=[read_id, read_id],
                              actor_email="admin@example.com")
    role = result["role"]
    assert role["key"] == "support"
    assert role["is_active"] is True
    assert role["created_by"] == "admin@example.com"

    perms = rbac.get_role_permissions(role_id=role["id"])
    assert [p["key"] for p in perms["permissions"]] == ["user:read"]
    assert perms["total"] == 1


def test_create_role_errors(rbac):
    with pytest.raises(APIError) as exc:
        rbac.create_role("Admin again", "admin")
    assert exc.value.code == "ROLE_ALREADY_EXISTS"

    with pytest.raises(APIError) as exc:
        rbac.create_role("Bad", "bad key")
    assert exc.value.code == "INVALID_ROLE_KEY_FORMAT"

    with pytest.raises(APIError) as exc:
        rbac.create_role("Ghost", "ghost", permission_ids=["missing-id"])
    assert exc.value.status_code == 404
    assert exc.value.message == "Permission with id missing-id not found"


def test_update_role_replaces_permissions(rbac, db_manager):
    role_id = _role_id(db_manager, "editor")
    delete_id = _permission_id(db_manager, "user:delete")
    read_id = _permission_id(db_manager, "user:read")

    result = rbac.update_role(role_id, name="Content editor", permission_ids=[read_id, delete_id],
                              actor_email="admin@example.com")
    assert result["role"]["name"] == "Content editor"
    assert result["role"]["updated_by"] == "admin@example.com"

    keys = sorted(p["key"] for p in rbac.get_role_permissions(role_key="editor")["permissions"])
    assert keys == ["user:delete", "user:read"]

    with pytest.raises(APIError) as exc:
        rbac.update_role(role_id, key="admin")
    assert exc.value.code == "ROLE_ALREADY_EXISTS"


def test_delete_role_cascades_links(rbac, db_manager):
    role_id = _role_id(db_manager, "editor")
    user = make_user(db_manager)
    rbac.assign_role_to_user(user["id"], role_id)

    assert rbac.delete_role(role_id) == {"success": True, "message": "Role deleted successfully"}
    with db_manager.session_context() as db:
        assert db.query(RolePermission).filter(RolePermission.role_id == role_id).count() == 0
        assert db.query(UserRole).filter(UserRole.role_id == role_id).count() == 0

    with pytest.raises(APIError) as exc:
        rbac.get_role(role_id)
    assert exc.value.status_code == 404
    assert exc.value.message == "Role not found."


def test_list_roles_search_sort_and_pagination(rbac):
    rbac.create_role("Billing", "billing")
    rbac.create_role("Auditor", "auditor")

    listing = rbac.list_roles(sort_by="name", sort_direction="asc")
    assert [r["key"] for r in listing["roles"]] == ["admin", "auditor", "billing", "editor"]
    assert listing["total"] == 4
    assert listing["limit"] == 10 and listing["offset"] == 0

    page = rbac.list_roles(limit=2, offset=2, sort_by="key", sort_direction="desc")
    assert [r["key"] for r in page["roles"]] == ["auditor", "admin"]

    found = rbac.list_roles(search_value="BILL", search_field="key")
    assert [r["key"] for r in found["roles"]] == ["billing"]
    starts = rbac.list_roles(search_value="Ed", search_operator="starts_with")
    assert [r["key"] for r in starts["roles"]] == ["editor"]

    with pytest.raises(APIError) as exc:
        rbac.list_roles(sort_by="password")
    assert exc.value.code == "INVALID_SORT_FIELD"


def test_role_permissions_requires_id_or_key(rbac):
    with pytest.raises(APIError) as exc:
        rbac.get_role_permissions()
    assert exc.value.code == "INVALID_ROLE"

    with pytest.raises(APIError) as exc:
        rbac.get_role_permissions(role_key="nobody")
    assert exc.value.code == "ROLE_NOT_FOUND"


def test_permission_crud(rbac, db_manager):
    editor_id = _role_id(db_manager, "editor")
    created = rbac.create_permission("Export reports", "report:export", role_ids=[editor_id])["permission"]
    assert created["key"] == "report:export"

    roles = rbac.get_permission_roles(permission_key="report:export")
    assert [r["key"] for r in roles["roles"]] == ["editor"]

    with pytest.raises(APIError) as exc:
        rbac.create_permission("Dup", "report:export")
    assert exc.value.code == "PERMISSION_ALREADY_EXISTS"

    updated = rbac.update_permission(created["id"], is_active=False, role_ids=[])["permission"]
    assert updated["is_active"] is False
    assert rbac.get_permission_roles(permission_id=created["id"])["total"] == 0

    options = rbac.get_permissions_options(only_active=True)["options"]
    assert created["id"] not in [o["value"] for o in options]
    assert len(rbac.get_permissions_options(only_active=False)["options"]) == 7

    assert rbac.delete_permission(created["id"])["message"] == "Permission deleted successfully"
    with pytest.raises(APIError) as exc:
        rbac.get_permission(created["id"])
    assert exc.value.code == "PERMISSION_NOT_FOUND"


def test_assignment_messages(rbac, db_manager):
    user = make_user(db_manager)
    role_id = _role_id(db_manager, "editor")
    perm_id = _permission_id(db_manager, "user:delete")

    assert rbac.assign_permission_to_role(role_id, perm_id)["message"] == "Permission assigned to role successfully"
    assert rbac.assign_permission_to_role(role_id, perm_id)["message"] == "Permission already assigned to role"
    assert rbac.remove_permission_from_role(role_id, perm_id)["message"] == \
        "Permission removed from role successfully"

    assert rbac.assign_role_to_user(user["id"], role_id)["message"] == "Role assigned to user successfully"
    assert rbac.assign_role_to_user(user["id"], role_id)["message"] == "Role already assigned to user"
    assert rbac.remove_role_from_user(user["id"], role_id)["message"] == "Role removed from user successfully"

    with pytest.raises(APIError) as exc:
        rbac.assign_role_to_user("missing", role_id)
    assert exc.value.message == "User not found."


def test_permission_checks_honor_active_flags(rbac, db_manager):
    user = make_user(db_manager)
    editor_id = _role_id(db_manager, "editor")
    rbac.assign_role_to_user(user["id"], editor_id)

    assert rbac.check_permission(user["id"], "user:update") == {"has_permission": True}
    assert rbac.check_permission(user["id"], "user:delete") == {"has_permission": False}

    rbac.update_permission(_permission_id(db_manager, "user:update"), is_active=False)
    assert rbac.has_permission(user["id"], "user:update") == {"has_permission": False}

    assert rbac.has_permission(user["id"], "user:read") == {"has_permission": True}
    rbac.update_role(editor_id, is_active=False)
    assert rbac.has_permission(user["id"], "user:read") == {"has_permission": False}

    with pytest.raises(APIError):
        rbac.check_permission("missing", "user:read")
    assert rbac.has_permission("missing", "user:read") == {"has_permission": False}


def test_user_roles_and_permissions(rbac, db_manager):
    user = make_user(db_manager)
    admin_id = _role_id(db_manager, "admin")
    editor_id = _role_id(db_manager, "editor")

    result = rbac.set_user_roles(user["id"], [editor_id])
    assert (result["added"], result["removed"], result["kept"]) == (1, 0, 0)

    result = rbac.set_user_roles(user["id"], [editor_id, admin_id])
    assert (result["added"], result["removed"], result["kept"]) == (1, 0, 1)
    assert result["message"] == "User roles updated successfully"

    roles = rbac.get_user_roles(user["id"])
    assert sorted(r["key"] for r in roles["roles"]) == ["admin", "editor"]

    # editor's permissions are a subset of admin's; no duplicates
    perms = rbac.get_user_permissions(user["id"])["permissions"]
    assert len(perms) == 6
    assert len({p["key"] for p in perms}) == 6

    result = rbac.set_user_roles(user["id"], [])
    assert (result["added"], result["removed"], result["kept"]) == (0, 2, 0)

    with pytest.raises(APIError) as exc:
        rbac.set_user_roles(user["id"], ["nope"])
    assert exc.value.message == "Role not found.: nope"


def test_role_users_and_options(rbac, db_manager):
    alice = make_user(db_manager)
    make_user(db_manager, email="bob@example.com", name="Bob", verified=False)
    editor_id = _role_id(db_manager, "editor")
    rbac.assign_role_to_user(alice["id"], editor_id)

    users = rbac.get_role_users(editor_id)
    assert [u["email"] for u in users["users"]] == ["alice@example.com"]
    assert users["role"]["key"] == "editor"

    only_verified = rbac.get_users_options()["options"]
    assert [o["label"] for o in only_verified] == ["alice@example.com"]
    assert len(rbac.get_users_options(only_active=False)["options"]) == 2

    labels = [o["label"] for o in rbac.get_roles_options()["options"]]
    assert labels == ["Administrator", "Editor"]


def test_update_user_sets_roles(rbac, db_manager):
    user = make_user(db_manager)
    editor_id = _role_id(db_manager, "editor")

    result = rbac.update_user(user["id"], [editor_id], actor_email="admin@example.com")
    assert result["user"]["updated_by"] == "admin@example.com"
    assert rbac.get_user_roles(user["id"])["total"] == 1
