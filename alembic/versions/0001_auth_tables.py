"""auth tables: users, sessions, accounts, verifications, two_factors, passkeys

Revision ID: 0001_auth_tables
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_auth_tables'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(with_updated=True):
    cols = [sa.Column('created_at', sa.DateTime(timezone=True), nullable=False)]
    if with_updated:
        cols.append(sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False))
    return cols


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('email_verified', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('image', sa.String(1024)),
        sa.Column('role', sa.String(255), server_default='user'),
        sa.Column('banned', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('ban_reason', sa.Text),
        sa.Column('ban_expires', sa.DateTime(timezone=True)),
        sa.Column('two_factor_enabled', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('last_login_method', sa.String(50)),
        sa.Column('bio', sa.Text),
        sa.Column('phone', sa.String(50)),
        sa.Column('website_url', sa.String(512)),
        sa.Column('linkedin_url', sa.String(512)),
        sa.Column('github_url', sa.String(512)),
        sa.Column('x_url', sa.String(512)),
        sa.Column('job_title', sa.String(255)),
        sa.Column('company', sa.String(255)),
        sa.Column('department', sa.String(255)),
        sa.Column('location', sa.String(255)),
        sa.Column('metadata', sa.JSON),
        *_timestamps(),
        sa.Column('created_by', sa.String(255)),
        sa.Column('updated_by', sa.String(255)),
        sa.PrimaryKeyConstraint('id', name='pk_users'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'sessions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('token', sa.String(255), nullable=False),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('ip_address', sa.String(64)),
        sa.Column('user_agent', sa.Text),
        sa.Column('impersonated_by', sa.String(36)),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_sessions'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE', name='fk_sessions_user_id_users'),
    )
    op.create_index('ix_sessions_token', 'sessions', ['token'], unique=True)
    op.create_index('ix_sessions_user_id', 'sessions', ['user_id'])

    op.create_table(
        'accounts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('account_id', sa.String(255), nullable=False),
        sa.Column('provider_id', sa.String(50), nullable=False),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('password', sa.String(255)),
        sa.Column('access_token', sa.Text),
        sa.Column('refresh_token', sa.Text),
        sa.Column('id_token', sa.Text),
        sa.Column('access_token_expires_at', sa.DateTime(timezone=True)),
        sa.Column('scope', sa.Text),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_accounts'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE', name='fk_accounts_user_id_users'),
        sa.UniqueConstraint('provider_id', 'account_id', name='uq_accounts_provider_account'),
    )
    op.create_index('ix_accounts_user_id', 'accounts', ['user_id'])

    op.create_table(
        'verifications',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('identifier', sa.String(255), nullable=False),
        sa.Column('value', sa.Text, nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        *_timestamps(with_updated=False),
        sa.PrimaryKeyConstraint('id', name='pk_verifications'),
    )
    op.create_index('ix_verifications_identifier', 'verifications', ['identifier'])

    op.create_table(
        'two_factors',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('secret', sa.Text, nullable=False),
        sa.Column('backup_codes', sa.Text, nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_two_factors'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE', name='fk_two_factors_user_id_users'),
        sa.UniqueConstraint('user_id', name='uq_two_factors_user_id'),
    )

    op.create_table(
        'passkeys',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(255)),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('credential_id', sa.String(1024), nullable=False),
        sa.Column('public_key', sa.Text, nullable=False),
        sa.Column('counter', sa.Integer, nullable=False, server_default='0'),
        sa.Column('device_type', sa.String(32)),
        sa.Column('backed_up', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('transports', sa.String(255)),
        sa.Column('aaguid', sa.String(64)),
        *_timestamps(with_updated=False),
        sa.PrimaryKeyConstraint('id', name='pk_passkeys'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE', name='fk_passkeys_user_id_users'),
        sa.UniqueConstraint('credential_id', name='uq_passkeys_credential_id'),
    )
    op.create_index('ix_passkeys_user_id', 'passkeys', ['user_id'])


def downgrade():
    for table in ('passkeys', 'two_factors', 'verifications', 'accounts', 'sessions', 'users'):
        op.drop_table(table)
