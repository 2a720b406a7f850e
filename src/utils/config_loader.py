"""
Configuration Loader
====================

Loads `config/config.yaml` (or the file pointed to by CONFIG_PATH), expands
`${VAR}` / `${VAR:default}` placeholders from the environment and applies a
small set of explicit environment overrides.

Usage:
    cfg = ConfigLoader()
    sec = cfg.get_security_config()
    secret = cfg.get("security.secret_key")
"""

import logging
import os
import re
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "config" / "config.yaml"

_PLACEHOLDER = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::([^}]*))?\}")

# env var -> dotted config key
ENV_OVERRIDES = {
    "DATABASE_URL": "database.url",
    "SECRET_KEY": "security.secret_key",
    "APP_URL": "app.url",
    "TRUSTED_ORIGINS": "app.trusted_origins",
    "SMTP_HOST": "email.smtp_host",
    "SMTP_PORT": "email.smtp_port",
    "SMTP_USER": "email.smtp_user",
    "SMTP_PASSWORD": "email.smtp_password",
    "GOOGLE_CLIENT_ID": "oauth.google.client_id",
    "GOOGLE_CLIENT_SECRET": "oauth.google.client_secret",
    "GITHUB_CLIENT_ID": "oauth.github.client_id",
    "GITHUB_CLIENT_SECRET": "oauth.github.client_secret",
}


def _expand(value: Any) -> Any:
    if isinstance(value, str):
        def repl(match):
            return os.getenv(match.group(1), match.group(2) or "")
        return _PLACEHOLDER.sub(repl, value)
    if isinstance(value, dict):
        return {k: _expand(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand(v) for v in value]
    return value


class ConfigLoader:
    """YAML configuration with environment overrides"""

    def __init__(self, config_path: Optional[str] = None):
        load_dotenv()
        self.config_path = Path(config_path or os.getenv("CONFIG_PATH") or DEFAULT_CONFIG_PATH)
        self.config: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.config_path.exists():
            with open(self.config_path, "r", encoding="utf-8") as fh:
                data = yaml.safe_load(fh) or {}
        else:
            logger.warning(f"⚠️  Config file not found: {self.config_path} (using defaults)")

        data = _expand(data)

        for env_name, dotted in ENV_OVERRIDES.items():
            value = os.getenv(env_name)
            if value:
                self._set(data, dotted, value)
        return data

    @staticmethod
    def _set(data: Dict[str, Any], dotted: str, value: Any):
        node = data
        parts = dotted.split(".")
        for part in parts[:-1]:
            if not isinstance(node.get(part), dict):
                node[part] = {}
            node = node[part]
        node[parts[-1]] = value

    def get(self, key: str, default: Any = None) -> Any:
        """Get a value by dotted key, e.g. `auth.min_password_length`"""
        node: Any = self.config
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def _section(self, name: str) -> Dict[str, Any]:
        section = self.config.get(name) or {}
        return deepcopy(section) if isinstance(section, dict) else {}

    def get_app_config(self) -> Dict[str, Any]:
        return self._section("app")

    def get_trusted_origins(self) -> List[str]:
        """`app.trusted_origins` (a list or a comma separated string), defaulting to `app.url`"""
        origins = self.get("app.trusted_origins") or [self.get("app.url", "http://localhost:3000")]
        if isinstance(origins, str):
            origins = origins.split(",")
        return [o.strip().rstrip("/").lower() for o in origins if o and o.strip()]

    def get_database_config(self) -> Dict[str, Any]:
        return self._section("database")

    def get_security_config(self) -> Dict[str, Any]:
        return self._section("security")

    def get_logging_config(self) -> Dict[str, Any]:
        return self._section("logging")

    def get_auth_config(self) -> Dict[str, Any]:
        return self._section("auth")

    def get_email_config(self) -> Dict[str, Any]:
        return self._section("email")

    def get_oauth_config(self) -> Dict[str, Any]:
        return self._section("oauth")

    def get_passkey_config(self) -> Dict[str, Any]:
        return self._section("passkey")

    def get_rbac_config(self) -> Dict[str, Any]:
        return self._section("rbac")

    def get_storage_config(self) -> Dict[str, Any]:
        return self._section("storage")

    def get_cors_config(self) -> Dict[str, Any]:
        return self._section("cors")
