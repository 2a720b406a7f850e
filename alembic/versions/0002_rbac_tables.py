"""rbac tables: roles, permissions, user_roles, role_permissions

Revision ID: 0002_rbac_tables
Revises: 0001_auth_tables
Create Date: 2026-10-19 09:30:00.000000
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0002_rbac_tables'
down_revision = '0001_auth_tables'
branch_labels = None
depends_on = None


def _audited_table(name):
    op.create_table(
        name,
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('key', sa.String(100), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_by', sa.String(255)),
        sa.Column('updated_by', sa.String(255)),
        sa.PrimaryKeyConstraint('id', name=f'pk_{name}'),
    )
    op.create_index(f'ix_{name}_key', name, ['key'], unique=True)


def upgrade():
    _audited_table('roles')
    _audited_table('permissions')

    op.create_table(
        'user_roles',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('role_id', sa.String(36), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_user_roles'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE', name='fk_user_roles_user_id_users'),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id'], ondelete='CASCADE', name='fk_user_roles_role_id_roles'),
        sa.UniqueConstraint('user_id', 'role_id', name='uq_user_roles_user_role'),
    )
    op.create_index('ix_user_roles_user_id', 'user_roles', ['user_id'])
    op.create_index('ix_user_roles_role_id', 'user_roles', ['role_id'])

    op.create_table(
        'role_permissions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('role_id', sa.String(36), nullable=False),
        sa.Column('permission_id', sa.String(36), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_role_permissions'),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id'], ondelete='CASCADE',
                                name='fk_role_permissions_role_id_roles'),
        sa.ForeignKeyConstraint(['permission_id'], ['permissions.id'], ondelete='CASCADE',
                                name='fk_role_permissions_permission_id_permissions'),
        sa.UniqueConstraint('role_id', 'permission_id', name='uq_role_permissions_role_permission'),
    )
    op.create_index('ix_role_permissions_role_id', 'role_permissions', ['role_id'])
    op.create_index('ix_role_permissions_permission_id', 'role_permissions', ['permission_id'])


def downgrade():
    for table in ('role_permissions', 'user_roles', 'permissions', 'roles'):
        op.drop_table(table)
