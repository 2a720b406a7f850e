"""Database layer: engine/session management, ORM models and migrations."""

from .base import Base
from .manager import DatabaseManager, get_db_manager, init_database

__all__ = ["Base", "DatabaseManager", "get_db_manager", "init_database"]
