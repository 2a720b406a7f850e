"""
Database Migrations
===================

Thin wrapper over Alembic's command API, used by `nog-auth migrate`.
Revisions live in `alembic/versions`; the database URL comes from the
same config as the application so both always point at one database.
"""

import logging
from typing import Optional

from alembic import command
from alembic.config import Config as AlembicConfig

from src.database.manager import resolve_database_url

logger = logging.getLogger(__name__)


class MigrationManager:
    """Run Alembic commands against a given database URL"""

    def __init__(self, database_url: str, ini_path: str = "alembic.ini"):
        self.database_url = database_url
        self.ini_path = ini_path
        self.alembic_cfg = AlembicConfig(ini_path)
        self.alembic_cfg.set_main_option("sqlalchemy.url", database_url)

    def upgrade(self, revision: str = "head"):
        logger.info(f"⬆️  Upgrading schema to {revision}")
        command.upgrade(self.alembic_cfg, revision)
        logger.info("✅ Migrations completed")

    def downgrade(self, revision: str = "-1"):
        logger.warning(f"⬇️  Downgrading schema to {revision}")
        command.downgrade(self.alembic_cfg, revision)

    def current_revision(self):
        """Print the revision the database is stamped with"""
        command.current(self.alembic_cfg)

    def history(self):
        command.history(self.alembic_cfg)


def get_migration_manager(ini_path: str = "alembic.ini") -> MigrationManager:
    from src.utils.config_loader import ConfigLoader
    return MigrationManager(resolve_database_url(ConfigLoader().get_database_config()), ini_path)


def run_migrations(revision: str = "head", downgrade: Optional[str] = None):
    """Upgrade the configured database (or step it back when `downgrade` is given)"""
    manager = get_migration_manager()
    if downgrade:
        manager.downgrade(downgrade)
    else:
        manager.upgrade(revision)
