"""Key validation and pagination helpers for the RBAC layer."""

import re
from typing import Any, Optional, Tuple

from src.auth.errors import APIError
from src.rbac.options import RBACOptions, PaginationOptions

DEFAULT_KEY_MESSAGES = {
    "permission": 'Permission key must follow the format "feature:action" (e.g., "user:read", "post:write").',
    "role": 'Role key must contain only letters, numbers, or underscores (e.g., "admin", "editor").',
}


def validate_key(key_type: str, key: Any, options: Optional[RBACOptions] = None) -> str:
    """
    Validate a role or permission key

    Args:
        key_type: "role" or "permission"
        key: Candidate key (surrounding whitespace is ignored)
        options: RBAC options with the rules to apply

    Returns:
        The trimmed key

    Raises:
        APIError: 400 with INVALID_/EMPTY_ codes describing the failure
    """
    options = options or RBACOptions()
    rule = options.permission_key if key_type == "permission" else options.role_key
    label = "Permission" if key_type == "permission" else "Role"
    prefix = key_type.upper()

    if not isinstance(key, str):
        raise APIError(400, f"INVALID_{prefix}_KEY", f"{label} key must be a string")

    key = key.strip()
    if not key:
        raise APIError(400, f"EMPTY_{prefix}_KEY", f"{label} key cannot be empty")

    if len(key) < rule.min_length:
        raise APIError(400, f"INVALID_{prefix}_KEY_LENGTH",
                       f"{label} key must be at least {rule.min_length} characters long")
    if len(key) > rule.max_length:
        raise APIError(400, f"INVALID_{prefix}_KEY_LENGTH",
                       f"{label} key must not exceed {rule.max_length} characters")

    if not re.match(rule.pattern, key, re.IGNORECASE):
        raise APIError(400, f"INVALID_{prefix}_KEY_FORMAT",
                       rule.error_message or DEFAULT_KEY_MESSAGES[key_type])
    return key


def is_valid_key(key_type: str, key: Any, options: Optional[RBACOptions] = None) -> bool:
    try:
        validate_key(key_type, key, options)
        return True
    except APIError:
        return False


def _to_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def resolve_pagination(limit: Any, offset: Any, pagination: Optional[PaginationOptions] = None) -> Tuple[int, int]:
    """`limit` falls back to the default when 0/invalid and is capped at max_limit"""
    pagination = pagination or PaginationOptions()
    resolved_limit = min(_to_int(limit) or pagination.default_limit, pagination.max_limit)
    resolved_offset = _to_int(offset) or pagination.default_offset
    return resolved_limit, max(resolved_offset, 0)
