"""Avatar files on local disk, served under the configured URL prefix."""

import logging
import os
import uuid
from typing import Optional, Dict, Any

from src.auth.errors import APIError
from src.utils.config_loader import ConfigLoader

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = ("image/jpeg", "image/png", "image/webp", "image/gif")
DEFAULT_MAX_BYTES = 5 * 1024 * 1024


def generate_avatar_filename() -> str:
    return f"avatars/{uuid.uuid4()}.webp"


class AvatarStore:
    """Stores uploaded avatars and removes the ones this service owns"""

    def __init__(self, storage_config: Optional[Dict[str, Any]] = None):
        cfg = storage_config if storage_config is not None else ConfigLoader().get_storage_config()
        self.directory = cfg.get("avatar_dir", "./media/avatars")
        self.url_prefix = cfg.get("avatar_url_prefix", "/media/avatars").rstrip("/")
        self.max_bytes = int(cfg.get("max_avatar_bytes", DEFAULT_MAX_BYTES))

    def validate(self, content: Optional[bytes], content_type: Optional[str]):
        if not content:
            raise APIError(400, "NO_FILE_PROVIDED")
        if content_type not in ALLOWED_CONTENT_TYPES:
            raise APIError(400, "INVALID_FILE_TYPE")
        if len(content) > self.max_bytes:
            raise APIError(400, "FILE_TOO_LARGE")

    def save(self, content: bytes, content_type: Optional[str]) -> Dict[str, Any]:
        self.validate(content, content_type)
        filename = generate_avatar_filename()
        basename = os.path.basename(filename)
        os.makedirs(self.directory, exist_ok=True)
        with open(os.path.join(self.directory, basename), "wb") as fh:
            fh.write(content)
        logger.info(f"🖼️  Avatar stored: {basename} ({len(content)} bytes)")
        return {"url": f"{self.url_prefix}/{basename}", "filename": filename, "size": len(content)}

    def owns(self, url: Optional[str]) -> bool:
        return bool(url) and url.startswith(f"{self.url_prefix}/")

    def delete(self, url: Optional[str]) -> bool:
        """Remove a stored avatar; URLs hosted elsewhere (provider pictures) are left alone"""
        if not self.owns(url):
            return False
        path = os.path.join(self.directory, os.path.basename(url))
        if not os.path.exists(path):
            return False
        os.remove(path)
        logger.info(f"🗑️  Avatar removed: {os.path.basename(url)}")
        return True
