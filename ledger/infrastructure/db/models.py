"""
SQLAlchemy ORM models

Every amount column holds an encrypted envelope (base64 IV ‖ TAG ‖ CIPHERTEXT)
or NULL. NULL means "not set", never zero.
"""
import uuid
from datetime import date as date_type, datetime
from sqlalchemy import Boolean, String, Integer, SmallInteger, Text, TIMESTAMP, Date, ForeignKey, false, func, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from ledger.infrastructure.db.session import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    # Budget period anchor, 1..31; NULL = calendar months
    pay_day_of_month: Mapped[int | None] = mapped_column(SmallInteger, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )


class UserEncryptionKey(Base):
    """
    Per-user key material record.

    salt and kdf_iterations are immutable for a DEK generation: changing them
    requires re-encrypting every amount of the user in the same transaction.
    """
    __tablename__ = "user_encryption_keys"

    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    salt: Mapped[str] = mapped_column(String(64), nullable=False)  # hex
    kdf_iterations: Mapped[int] = mapped_column(Integer, nullable=False)
    key_check: Mapped[str | None] = mapped_column(Text, nullable=True)  # encrypted 0
    wrapped_dek: Mapped[str | None] = mapped_column(Text, nullable=True)  # DEK under recovery key

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class BudgetTemplate(Base):
    """Reusable set of envelopes a new budget can start from"""
    __tablename__ = "budget_templates"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(String(512), nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class TemplateLine(Base):
    __tablename__ = "template_lines"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    template_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("budget_templates.id", ondelete="CASCADE"), nullable=False
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    recurrence: Mapped[str] = mapped_column(String(20), nullable=False, server_default="fixed")
    amount: Mapped[str | None] = mapped_column(Text, nullable=True)  # encrypted

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        Index('ix_template_line_template', 'template_id'),
    )


class MonthlyBudget(Base):
    __tablename__ = "monthly_budgets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    # Template the budget was created from; NULL = started empty
    template_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("budget_templates.id", ondelete="SET NULL"), nullable=True
    )

    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)  # 1..12
    description: Mapped[str | None] = mapped_column(String(512), nullable=True)
    ending_balance: Mapped[str | None] = mapped_column(Text, nullable=True)  # encrypted

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint('user_id', 'year', 'month', name='uq_monthly_budget_period'),
    )


class BudgetLine(Base):
    """Envelope: planned ceiling for one category within a budget period"""
    __tablename__ = "budget_lines"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    budget_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("monthly_budgets.id", ondelete="CASCADE"), nullable=False
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)  # income / expense / saving
    recurrence: Mapped[str] = mapped_column(String(20), nullable=False, server_default="fixed")  # fixed / one_off
    amount: Mapped[str | None] = mapped_column(Text, nullable=True)  # encrypted

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        Index('ix_budget_line_budget', 'budget_id'),
    )


class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    budget_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("monthly_budgets.id", ondelete="CASCADE"), nullable=False
    )
    # NULL = free transaction, impacts the period total directly
    budget_line_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("budget_lines.id", ondelete="SET NULL"), nullable=True
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[str | None] = mapped_column(Text, nullable=True)  # encrypted
    transaction_date: Mapped[date_type] = mapped_column(Date, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        Index('ix_transaction_budget', 'budget_id'),
        Index('ix_transaction_budget_line', 'budget_line_id'),
    )
