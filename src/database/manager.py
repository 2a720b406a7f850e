"""
Database Manager
================

SQLAlchemy engine and session management for the auth and RBAC tables.
"""

from contextlib import contextmanager
import logging
from urllib.parse import urlparse, urlunparse

from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import NullPool, QueuePool, StaticPool

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Owns the engine, the session factory and schema lifecycle"""

    def __init__(self, database_url: str, echo: bool = False, pool_size: int = 20):
        """
        Args:
            database_url: SQLAlchemy URL (sqlite or postgresql)
            echo: Log SQL statements
            pool_size: Connection pool size for server databases
        """
        self.database_url = database_url
        self.echo = echo
        self.engine = self._create_engine(database_url, echo, pool_size)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)
        self._init_event_listeners()
        logger.info(f"✅ Database initialized: {self._mask_url(database_url)}")

    @staticmethod
    def _create_engine(database_url: str, echo: bool, pool_size: int):
        if database_url.startswith("sqlite"):
            # In-memory SQLite must share one connection or every session
            # would see an empty database.
            poolclass = StaticPool if ":memory:" in database_url else NullPool
            return create_engine(
                database_url,
                echo=echo,
                connect_args={"check_same_thread": False},
                poolclass=poolclass,
            )

        return create_engine(
            database_url,
            echo=echo,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=10,
            pool_pre_ping=True,
        )

    def _init_event_listeners(self):
        @event.listens_for(self.engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            """Cascading deletes of sessions, accounts and role links rely on FKs."""
            if self.engine.dialect.name != "sqlite":
                return
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    @staticmethod
    def _mask_url(url: str) -> str:
        """Hide the password of a connection string before logging it"""
        parsed = urlparse(url)
        if parsed.scheme.startswith("sqlite") or "@" not in parsed.netloc:
            return url

        userinfo, host = parsed.netloc.rsplit("@", 1)
        user = userinfo.split(":", 1)[0]
        return urlunparse(parsed._replace(netloc=f"{user}:***@{host}"))

    def create_tables(self, base):
        try:
            logger.info("Creating database tables...")
            base.metadata.create_all(self.engine)
            logger.info("✅ Database tables created successfully")
        except Exception as e:
            logger.error(f"❌ Error creating tables: {str(e)}")
            raise

    def drop_tables(self, base):
        """Drop all tables (USE WITH CAUTION)"""
        logger.warning("⚠️  Dropping all database tables...")
        base.metadata.drop_all(self.engine)
        logger.info("✅ All tables dropped")

    def get_session(self) -> Session:
        return self.SessionLocal()

    @contextmanager
    def session_context(self):
        """Yield a session that commits on success and rolls back on error"""
        session = self.get_session()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.debug(f"Session rolled back: {e}")
            raise
        finally:
            session.close()

    def health_check(self) -> bool:
        try:
            with self.session_context() as session:
                session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"❌ Database health check failed: {str(e)}")
            return False

    def close(self):
        self.engine.dispose()
        logger.info("Database connections closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


# Global database manager instance
_db_manager = None


def resolve_database_url(db_cfg: dict) -> str:
    """Build a SQLAlchemy URL from the `database` config section"""
    if db_cfg.get("url"):
        return db_cfg["url"]
    if db_cfg.get("type", "sqlite") == "sqlite":
        path = db_cfg.get("path", "./nog_auth.db")
        return path if path.startswith("sqlite:") else f"sqlite:///{path}"
    return db_cfg.get("connection_string") or "sqlite:///./nog_auth.db"


def get_db_manager() -> DatabaseManager:
    """Get or create global database manager"""
    global _db_manager
    if _db_manager is None:
        from src.utils.config_loader import ConfigLoader
        db_cfg = ConfigLoader().get_database_config()
        _db_manager = DatabaseManager(
            resolve_database_url(db_cfg),
            echo=bool(db_cfg.get("echo", False)),
            pool_size=int(db_cfg.get("pool_size", 20)),
        )
    return _db_manager


def init_database(seed: bool = True):
    """Create tables and seed RBAC roles/permissions (call on app startup)"""
    from src.database.models import Base
    db = get_db_manager()
    db.create_tables(Base)
    if seed:
        from src.rbac.seed import seed_rbac
        seed_rbac(db)
