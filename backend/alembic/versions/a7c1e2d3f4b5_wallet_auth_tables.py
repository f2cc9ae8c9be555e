"""wallet auth tables

Revision ID: a7c1e2d3f4b5
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = 'a7c1e2d3f4b5'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

app_role = sa.Enum('admin', 'moderator', 'user', name='approle')
nonce_purpose = sa.Enum('login', 'create', 'link', 'delete', name='noncepurpose')


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=320), nullable=False),
        sa.Column('user_metadata', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)

    op.create_table(
        'user_roles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('role', app_role, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('user_id', 'role', name='uq_user_roles_user_role'),
    )
    op.create_index(op.f('ix_user_roles_user_id'), 'user_roles', ['user_id'])

    op.create_table(
        'wallet_auth_nonces',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('address', sa.String(length=42), nullable=False),
        sa.Column('nonce', sa.String(length=36), nullable=False, unique=True),
        sa.Column('purpose', nonce_purpose, nullable=False),
        sa.Column('issued_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('used', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_wallet_auth_nonces_lookup', 'wallet_auth_nonces', ['address', 'nonce', 'purpose'])
    op.create_index(op.f('ix_wallet_auth_nonces_issued_at'), 'wallet_auth_nonces', ['issued_at'])

    op.create_table(
        'wallet_email_mappings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('wallet_address', sa.String(length=42), nullable=False),
        sa.Column('email', sa.String(length=320), nullable=False),
        sa.Column('label', sa.String(length=100), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(op.f('ix_wallet_email_mappings_wallet_address'), 'wallet_email_mappings', ['wallet_address'], unique=True)

    op.create_table(
        'login_tokens',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('email', sa.String(length=320), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(op.f('ix_login_tokens_token_hash'), 'login_tokens', ['token_hash'], unique=True)
    op.create_index(op.f('ix_login_tokens_user_id'), 'login_tokens', ['user_id'])


def downgrade() -> None:
    op.drop_index(op.f('ix_login_tokens_user_id'), table_name='login_tokens')
    op.drop_index(op.f('ix_login_tokens_token_hash'), table_name='login_tokens')
    op.drop_table('login_tokens')

    op.drop_index(op.f('ix_wallet_email_mappings_wallet_address'), table_name='wallet_email_mappings')
    op.drop_table('wallet_email_mappings')

    op.drop_index(op.f('ix_wallet_auth_nonces_issued_at'), table_name='wallet_auth_nonces')
    op.drop_index('ix_wallet_auth_nonces_lookup', table_name='wallet_auth_nonces')
    op.drop_table('wallet_auth_nonces')

    op.drop_index(op.f('ix_user_roles_user_id'), table_name='user_roles')
    op.drop_table('user_roles')

    op.drop_index(op.f('ix_users_email'), table_name='users')
    op.drop_table('users')

    nonce_purpose.drop(op.get_bind(), checkfirst=True)
    app_role.drop(op.get_bind(), checkfirst=True)
