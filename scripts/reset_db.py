"""Reset the auth and RBAC schema.

Usage:
    python scripts/reset_db.py

Drops every table (users, sessions and RBAC data included), recreates them
from the SQLAlchemy metadata and seeds the configured roles and permissions.
Intended for local development and for inspecting a clean database.
"""
import logging
import sys
import os

# Ensure project root is on sys.path so `from src...` imports work when the
# script is executed from the `scripts/` directory (or any other CWD).
root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if root not in sys.path:
    sys.path.insert(0, root)

from src.database import get_db_manager
from src.database.models import Base
from src.rbac.seed import seed_rbac

logger = logging.getLogger(__name__)


def reset_db():
    dbm = get_db_manager()
    try:
        dbm.drop_tables(Base)
    except Exception as e:
        logger.warning(f"Drop tables failed (ignored): {e}")

    try:
        dbm.create_tables(Base)
        created = seed_rbac(dbm)
        logger.info(
            f"✅ Database schema recreated; seeded {created['permissions']} permissions "
            f"and {created['roles']} roles"
        )
    except Exception as e:
        logger.error(f"Failed to create tables and seed: {e}")
        raise


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    reset_db()
    sys.exit(0)
