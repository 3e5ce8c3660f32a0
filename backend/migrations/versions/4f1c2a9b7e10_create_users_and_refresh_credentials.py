"""create users and refresh credentials

Revision ID: 4f1c2a9b7e10
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""
import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = '4f1c2a9b7e10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=254), nullable=False),
        sa.Column('password_hash', sa.String(length=254), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('failed_login_attempts', sa.Integer(), nullable=False),
        sa.Column('locked_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_users')),
        sa.UniqueConstraint('email', name='uq_users_email'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=False)

    op.create_table(
        'refresh_credentials',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('secret', sa.String(length=200), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('used', sa.Boolean(), nullable=False),
        sa.Column('revoked', sa.Boolean(), nullable=False),
        sa.Column('parent_id', sa.String(length=32), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], name=op.f('fk_refresh_credentials_owner_id_users'), ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['parent_id'], ['refresh_credentials.id'], name=op.f('fk_refresh_credentials_parent_id_refresh_credentials')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_refresh_credentials')),
        sa.UniqueConstraint('secret', name='uq_refresh_credentials_secret'),
    )
    op.create_index('ix_refresh_credentials_owner_id', 'refresh_credentials', ['owner_id'], unique=False)
    op.create_index('ix_refresh_credentials_parent_id', 'refresh_credentials', ['parent_id'], unique=False)
    op.create_index('ix_refresh_credentials_expires_at', 'refresh_credentials', ['expires_at'], unique=False)


def downgrade():
    op.drop_index('ix_refresh_credentials_expires_at', table_name='refresh_credentials')
    op.drop_index('ix_refresh_credentials_parent_id', table_name='refresh_credentials')
    op.drop_index('ix_refresh_credentials_owner_id', table_name='refresh_credentials')
    op.drop_table('refresh_credentials')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
