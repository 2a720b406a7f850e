"""add remember_me to sessions

Revision ID: 0003_session_remember_me
Revises: 0002_rbac_tables
Create Date: 2026-10-26 10:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0003_session_remember_me'
down_revision = '0002_rbac_tables'
branch_labels = None
depends_on = None


def upgrade():
    # Existing sessions were all created as remembered ones
    op.add_column('sessions', sa.Column('remember_me', sa.Boolean, nullable=False, server_default=sa.true()))


def downgrade():
    # SQLite cannot drop columns in place
    with op.batch_alter_table('sessions') as batch_op:
        batch_op.drop_column('remember_me')
