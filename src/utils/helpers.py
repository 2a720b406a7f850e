"""Small shared helpers: ids, random strings, user-agent parsing, redirect checks."""

import secrets
import string
import uuid
from typing import Any, Dict, Iterable, Optional
from urllib.parse import urlsplit

from user_agents import parse as parse_ua

ALPHANUMERIC = string.ascii_letters + string.digits


def generate_id() -> str:
    return str(uuid.uuid4())


def random_string(length: int = 32, alphabet: str = ALPHANUMERIC) -> str:
    return "".join(secrets.choice(alphabet) for _ in range(length))


def split_roles(role: Optional[str]):
    """`"admin,editor"` -> ["admin", "editor"]"""
    if not role:
        return []
    return [r.strip() for r in role.split(",") if r.strip()]


def parse_user_agent(user_agent: Optional[str], ip_address: Optional[str] = None) -> Dict[str, Any]:
    """Describe a session's device the way the sessions page shows it."""
    ua = parse_ua(user_agent or "")
    browser = ua.browser.family if ua.browser.family != "Other" else "Unknown Browser"
    browser_version = f" {ua.browser.version[0]}" if ua.browser.version else ""
    os_name = ua.os.family if ua.os.family != "Other" else "Unknown OS"
    os_version = f" {ua.os.version_string}" if ua.os.version_string else ""

    if ua.is_mobile:
        device_type = "mobile"
    elif ua.is_tablet:
        device_type = "tablet"
    else:
        device_type = "desktop"

    device_model = ua.device.model if ua.device.model and ua.device.model != "Other" else None
    description = f"{browser}{browser_version} on {os_name}{os_version}"
    if device_model:
        description += f" ({device_model})"

    return {
        "browser": browser,
        "browser_version": browser_version.strip(),
        "os": os_name,
        "os_version": os_version.strip(),
        "device_type": device_type,
        "device_model": device_model,
        "device_description": description,
        "location": "Unknown",
        "ip_address": ip_address or "Unknown",
    }


def is_trusted_url(url: Optional[str], trusted_origins: Iterable[str]) -> bool:
    """
    True for same-site paths (`/dashboard`) and absolute URLs on a trusted origin.

    Protocol-relative (`//host`) and backslash tricks (`/\\host`) count as
    foreign hosts.
    """
    if not url:
        return True
    if "\\" in url or any(ch in url for ch in "\r\n\t"):
        return False
    parts = urlsplit(url)
    if not parts.scheme and not parts.netloc:
        return url.startswith("/") and not url.startswith("//")
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return False
    origin = f"{parts.scheme}://{parts.netloc}".lower()
    return origin in {o.rstrip("/").lower() for o in trusted_origins}
