"""create user_encryption_keys

Revision ID: 8b2e4d6f1a35
Revises: 3f1c9a7d2b10
Create Date: 2026-09-09 18:30:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '8b2e4d6f1a35'
down_revision: str = '3f1c9a7d2b10'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'user_encryption_keys',
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('salt', sa.String(64), nullable=False),
        sa.Column('kdf_iterations', sa.Integer(), nullable=False, server_default='600000'),
        sa.Column('key_check', sa.Text(), nullable=True),
        sa.Column('wrapped_dek', sa.Text(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table('user_encryption_keys')
