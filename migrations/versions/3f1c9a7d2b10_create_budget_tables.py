"""create users, monthly budgets, budget lines and transactions

Revision ID: 3f1c9a7d2b10
Revises:
Create Date: 2026-09-02 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c9a7d2b10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('pay_day_of_month', sa.SmallInteger(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint('pay_day_of_month BETWEEN 1 AND 31', name='ck_users_pay_day_range'),
    )

    op.create_table(
        'monthly_budgets',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False, index=True),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(512), nullable=True),
        sa.Column('ending_balance', sa.Text(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('user_id', 'year', 'month', name='uq_monthly_budget_period'),
    )

    op.create_table(
        'budget_lines',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('budget_id', sa.String(36), sa.ForeignKey('monthly_budgets.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('kind', sa.String(20), nullable=False),
        sa.Column('recurrence', sa.String(20), nullable=False, server_default='fixed'),
        sa.Column('amount', sa.Text(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_budget_line_budget', 'budget_lines', ['budget_id'])

    op.create_table(
        'transactions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('budget_id', sa.String(36), sa.ForeignKey('monthly_budgets.id', ondelete='CASCADE'), nullable=False),
        sa.Column('budget_line_id', sa.String(36), sa.ForeignKey('budget_lines.id', ondelete='SET NULL'), nullable=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('kind', sa.String(20), nullable=False),
        sa.Column('amount', sa.Text(), nullable=True),
        sa.Column('transaction_date', sa.Date(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_transaction_budget', 'transactions', ['budget_id'])
    op.create_index('ix_transaction_budget_line', 'transactions', ['budget_line_id'])


def downgrade() -> None:
    op.drop_index('ix_transaction_budget_line', table_name='transactions')
    op.drop_index('ix_transaction_budget', table_name='transactions')
    op.drop_table('transactions')
    op.drop_index('ix_budget_line_budget', table_name='budget_lines')
    op.drop_table('budget_lines')
    op.drop_table('monthly_budgets')
    op.drop_table('users')
