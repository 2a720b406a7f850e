import pytest

from src.auth.errors import APIError
from src.rbac.options import RBACOptions, KeyRule, PaginationOptions
from src.rbac.validation import validate_key, is_valid_key, resolve_pagination


@pytest.mark.parametrize("key", ["user:read", "post_comment:write", "  report:export  "])
def test_valid_permission_keys(key):
    assert validate_key("permission", key) == key.strip()


@pytest.mark.parametrize("key,code", [
    ("", "EMPTY_PERMISSION_KEY"),
    ("   ", "EMPTY_PERMISSION_KEY"),
    ("a:", "INVALID_PERMISSION_KEY_LENGTH"),
    ("user-read", "INVALID_PERMISSION_KEY_FORMAT"),
    ("user:read:all", "INVALID_PERMISSION_KEY_FORMAT"),
    ("x" * 40 + ":" + "y" * 20, "INVALID_PERMISSION_KEY_LENGTH"),
])
def test_invalid_permission_keys(key, code):
    with pytest.raises(APIError) as exc:
        validate_key("permission", key)
    assert exc.value.status_code == 400
    assert exc.value.code == code


def test_role_keys():
    assert validate_key("role", "content_editor") == "content_editor"
    assert is_valid_key("role", "admin")
    assert not is_valid_key("role", "ad")
    assert not is_valid_key("role", "super admin")
    assert not is_valid_key("role", "user:read")

    with pytest.raises(APIError) as exc:
        validate_key("role", 42)
    assert exc.value.code == "INVALID_ROLE_KEY"


def test_custom_rule_and_message():
    options = RBACOptions(role_key=KeyRule(min_length=2, max_length=10, pattern=r"^[A-Z]+$",
                                           error_message="Upper-case only"))
    assert validate_key("role", "OPS", options) == "OPS"
    with pytest.raises(APIError) as exc:
        validate_key("role", "ops-team", options)
    assert exc.value.message == "Upper-case only"


def test_resolve_pagination():
    pagination = PaginationOptions(default_limit=10, max_limit=100, default_offset=0)
    assert resolve_pagination(None, None, pagination) == (10, 0)
    assert resolve_pagination(0, "5", pagination) == (10, 5)
    assert resolve_pagination(500, 20, pagination) == (100, 20)
    assert resolve_pagination("abc", -3, pagination) == (10, 0)


def test_options_from_config_section():
    options = RBACOptions.from_config({
        "pagination": {"default_limit": 5, "max_limit": 50},
        "disabled_endpoints": ["delete-role"],
        "seed_roles": [{"name": "Ops", "key": "ops"}],
    })
    assert options.pagination.default_limit == 5
    assert options.pagination.max_limit == 50
    assert options.is_disabled("delete-role")
    assert not options.is_disabled("list-roles")
    assert options.seed_roles[0]["key"] == "ops"
    assert options.permission_key.pattern == r"^[a-z0-9_]+:[a-z0-9_]+$"
