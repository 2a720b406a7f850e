"""Role-based access control: roles, permissions and their assignments."""

from src.rbac.options import RBACOptions, PaginationOptions, KeyRule
from src.rbac.validation import validate_key, is_valid_key, resolve_pagination
from src.rbac.service import RBACService
from src.rbac.seed import seed_rbac

__all__ = [
    "RBACOptions",
    "PaginationOptions",
    "KeyRule",
    "validate_key",
    "is_valid_key",
    "resolve_pagination",
    "RBACService",
    "seed_rbac",
]
