"""create budget_templates and template_lines

Revision ID: c4a7e1f93d08
Revises: 8b2e4d6f1a35
Create Date: 2026-10-17 10:15:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'c4a7e1f93d08'
down_revision: str = '8b2e4d6f1a35'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'budget_templates',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.String(512), nullable=True),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_budget_templates_user_id', 'budget_templates', ['user_id'])

    op.create_table(
        'template_lines',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('template_id', sa.String(36), sa.ForeignKey('budget_templates.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('kind', sa.String(20), nullable=False),
        sa.Column('recurrence', sa.String(20), nullable=False, server_default='fixed'),
        sa.Column('amount', sa.Text(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_template_line_template', 'template_lines', ['template_id'])

    op.add_column(
        'monthly_budgets',
        sa.Column('template_id', sa.String(36), sa.ForeignKey('budget_templates.id', ondelete='SET NULL'), nullable=True),
    )


def downgrade() -> None:
    op.drop_column('monthly_budgets', 'template_id')
    op.drop_index('ix_template_line_template', table_name='template_lines')
    op.drop_table('template_lines')
    op.drop_index('ix_budget_templates_user_id', table_name='budget_templates')
    op.drop_table('budget_templates')
