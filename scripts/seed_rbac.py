"""Seed the configured RBAC permissions and roles.

Idempotent: permissions and roles listed under `rbac.seed_permissions` /
`rbac.seed_roles` in config.yaml are inserted when missing, and each seed
role is linked to the permissions it lists. Existing rows are left as they
are, so edits made from the admin console survive a re-run.

Usage:
    python scripts/seed_rbac.py
"""
import logging
import os
import sys

# Ensure project root is on sys.path so `from src...` imports work when the
# script is executed directly from `scripts/`.
root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if root not in sys.path:
    sys.path.insert(0, root)

from src.database.manager import get_db_manager
from src.rbac.seed import seed_rbac

logger = logging.getLogger(__name__)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    created = seed_rbac(get_db_manager())
    logger.info(f"Created: {created}")
    sys.exit(0)
