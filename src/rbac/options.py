"""
RBAC Options
============

Runtime options of the RBAC layer: pagination bounds, key validation rules,
disabled endpoints and seed data. Built from the `rbac` config section.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from src.utils.config_loader import ConfigLoader

PERMISSION_KEY_PATTERN = r"^[a-z0-9_]+:[a-z0-9_]+$"
ROLE_KEY_PATTERN = r"^[a-z0-9_]+$"


@dataclass
class PaginationOptions:
    default_limit: int = 10
    max_limit: int = 100
    default_offset: int = 0


@dataclass
class KeyRule:
    min_length: int = 3
    max_length: int = 50
    pattern: str = ROLE_KEY_PATTERN
    error_message: Optional[str] = None


@dataclass
class RBACOptions:
    pagination: PaginationOptions = field(default_factory=PaginationOptions)
    permission_key: KeyRule = field(default_factory=lambda: KeyRule(pattern=PERMISSION_KEY_PATTERN))
    role_key: KeyRule = field(default_factory=lambda: KeyRule(pattern=ROLE_KEY_PATTERN))
    disabled_endpoints: List[str] = field(default_factory=list)
    seed_permissions: List[Dict[str, Any]] = field(default_factory=list)
    seed_roles: List[Dict[str, Any]] = field(default_factory=list)

    def is_disabled(self, endpoint: str) -> bool:
        return endpoint in self.disabled_endpoints

    @classmethod
    def from_config(cls, section: Optional[Dict[str, Any]] = None) -> "RBACOptions":
        section = section if section is not None else ConfigLoader().get_rbac_config()
        pagination = section.get("pagination") or {}
        validation = section.get("validation") or {}

        def rule(name: str, default_pattern: str) -> KeyRule:
            raw = validation.get(name) or {}
            return KeyRule(
                min_length=int(raw.get("min_length", 3)),
                max_length=int(raw.get("max_length", 50)),
                pattern=raw.get("pattern") or default_pattern,
                error_message=raw.get("error_message"),
            )

        return cls(
            pagination=PaginationOptions(
                default_limit=int(pagination.get("default_limit", 10)),
                max_limit=int(pagination.get("max_limit", 100)),
                default_offset=int(pagination.get("default_offset", 0)),
            ),
            permission_key=rule("permission_key", PERMISSION_KEY_PATTERN),
            role_key=rule("role_key", ROLE_KEY_PATTERN),
            disabled_endpoints=list(section.get("disabled_endpoints") or []),
            seed_permissions=list(section.get("seed_permissions") or []),
            seed_roles=list(section.get("seed_roles") or []),
        )
