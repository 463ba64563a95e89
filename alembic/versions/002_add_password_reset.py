"""Add password reset columns to users

Revision ID: 002
Revises: 001
Create Date: 2024-02-01

WHY: Forgot-password stores a hashed one-time token and its expiry on
the user row.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column('users', sa.Column('reset_password_token_hash', sa.String(length=64), nullable=True))
    op.add_column('users', sa.Column('reset_password_expires', sa.DateTime(), nullable=True))
    op.create_index('ix_users_reset_password_token_hash', 'users', ['reset_password_token_hash'])


def downgrade() -> None:
    op.drop_index('ix_users_reset_password_token_hash', table_name='users')
    op.drop_column('users', 'reset_password_expires')
    op.drop_column('users', 'reset_password_token_hash')
