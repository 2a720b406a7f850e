"""Shared utilities: configuration, logging, time and request helpers."""

from .config_loader import ConfigLoader
from .logger import setup_root_logger
from .time import now_utc, ensure_aware

__all__ = [
    "ConfigLoader",
    "setup_root_logger",
    "now_utc",
    "ensure_aware",
]
