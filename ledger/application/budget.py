"""
Budget use cases and the budget view.

Amounts are encrypted on write and decrypted on read with the request's DEK;
everything in between (period assignment, consumption, rollover, metrics)
works on plain Decimals from ledger.domain.
"""
import logging
from dataclasses import dataclass
from datetime import date as date_type
from decimal import Decimal

from sqlalchemy.orm import Session

from ledger.domain.budget import (
    KINDS, RECURRENCE_FIXED, RECURRENCES, ZERO,
    BudgetMetrics, RolloverLine, build_rollover_line, compute_metrics, period_ending_balance,
)
from ledger.domain.budget_period import BudgetPeriod, period_dates, resolve_period
from ledger.domain.consumption import BudgetLineConsumption, compute_all_consumptions
from ledger.errors import DecryptionFailed
from ledger.infrastructure.crypto.amount_cipher import decrypt_amount, encrypt_amount
from ledger.infrastructure.db.models import BudgetLine, BudgetTemplate, MonthlyBudget, TemplateLine, Transaction, User
from ledger.utils.money import to_decimal

logger = logging.getLogger(__name__)


class BudgetValidationError(ValueError):
    pass


# ---------------------------------------------------------------------------
# Decrypted views of stored rows
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DecryptedLine:
    id: str
    budget_id: str
    name: str
    kind: str
    recurrence: str
    amount: Decimal


@dataclass(frozen=True)
class DecryptedTransaction:
    id: str
    budget_id: str
    budget_line_id: str | None
    name: str
    kind: str
    amount: Decimal
    transaction_date: date_type


@dataclass(frozen=True)
class DecryptedTemplateLine:
    id: str
    template_id: str
    name: str
    kind: str
    recurrence: str
    amount: Decimal


def decrypt_stored_amount(dek: bytes, envelope: str, table: str, row_id: str, user_id: str) -> Decimal:
    """
    Decrypt a stored amount, logging enough context to investigate a failure.

    A failure on real data means tampering, corruption or a re-key bug; it is
    re-raised, never turned into a default value.
    """
    try:
        return decrypt_amount(dek, envelope)
    except DecryptionFailed:
        logger.error(
            "Decryption failed for %s id=%s user_id=%s (envelope length=%d)",
            table, row_id, user_id, len(envelope),
        )
        raise


def _decrypt_lines(dek: bytes, rows: list[BudgetLine], user_id: str) -> list[DecryptedLine]:
    lines = []
    for row in rows:
        if row.amount is None:
            logger.warning("Budget line id=%s has no amount, skipped", row.id)
            continue
        lines.append(DecryptedLine(
            id=row.id, budget_id=row.budget_id, name=row.name, kind=row.kind,
            recurrence=row.recurrence,
            amount=decrypt_stored_amount(dek, row.amount, "budget_lines", row.id, user_id),
        ))
    return lines


def _decrypt_transactions(dek: bytes, rows: list[Transaction], user_id: str) -> list[DecryptedTransaction]:
    transactions = []
    for row in rows:
        if row.amount is None:
            logger.warning("Transaction id=%s has no amount, skipped", row.id)
            continue
        transactions.append(DecryptedTransaction(
            id=row.id, budget_id=row.budget_id, budget_line_id=row.budget_line_id,
            name=row.name, kind=row.kind, transaction_date=row.transaction_date,
            amount=decrypt_stored_amount(dek, row.amount, "transactions", row.id, user_id),
        ))
    return transactions


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def get_budget(db: Session, user_id: str, budget_id: str) -> MonthlyBudget:
    budget = db.query(MonthlyBudget).filter(
        MonthlyBudget.id == budget_id,
        MonthlyBudget.user_id == user_id,
    ).first()
    if budget is None:
        raise BudgetValidationError("Budget not found")
    return budget


def get_budget_for_period(db: Session, user_id: str, period: BudgetPeriod) -> MonthlyBudget | None:
    return db.query(MonthlyBudget).filter(
        MonthlyBudget.user_id == user_id,
        MonthlyBudget.year == period.year,
        MonthlyBudget.month == period.month,
    ).first()


def get_template(db: Session, user_id: str, template_id: str) -> BudgetTemplate:
    template = db.query(BudgetTemplate).filter(
        BudgetTemplate.id == template_id,
        BudgetTemplate.user_id == user_id,
    ).first()
    if template is None:
        raise BudgetValidationError("Template not found")
    return template


def load_template_lines(db: Session, user_id: str, template_id: str, dek: bytes) -> list[DecryptedTemplateLine]:
    rows = db.query(TemplateLine).filter(TemplateLine.template_id == template_id).order_by(TemplateLine.created_at, TemplateLine.id).all()
    lines = []
    for row in rows:
        if row.amount is None:
            logger.warning("Template line id=%s has no amount, skipped", row.id)
            continue
        lines.append(DecryptedTemplateLine(
            id=row.id, template_id=row.template_id, name=row.name, kind=row.kind,
            recurrence=row.recurrence,
            amount=decrypt_stored_amount(dek, row.amount, "template_lines", row.id, user_id),
        ))
    return lines


def load_budget_data(db: Session, user_id: str, budget_id: str, dek: bytes):
    """Decrypted (lines, transactions) of one budget."""
    line_rows = db.query(BudgetLine).filter(BudgetLine.budget_id == budget_id).order_by(BudgetLine.created_at, BudgetLine.id).all()
    tx_rows = db.query(Transaction).filter(Transaction.budget_id == budget_id).order_by(Transaction.transaction_date, Transaction.id).all()
    return _decrypt_lines(dek, line_rows, user_id), _decrypt_transactions(dek, tx_rows, user_id)


def recalculate_ending_balance(db: Session, user_id: str, budget: MonthlyBudget, dek: bytes) -> Decimal:
    """Recompute the period balance (without rollover) and persist it encrypted."""
    lines, transactions = load_budget_data(db, user_id, budget.id, dek)
    ending_balance = period_ending_balance(lines, transactions)
    budget.ending_balance = encrypt_amount(dek, ending_balance)
    db.flush()
    logger.info("Ending balance recalculated for budget_id=%s", budget.id)
    return ending_balance


def get_rollover(db: Session, user_id: str, budget: MonthlyBudget, dek: bytes) -> tuple[Decimal, str | None]:
    """
    Balance carried into `budget`: the sum of the ending balances of every
    earlier budget of the user, and the id of the immediately preceding one.

    A budget without a stored ending balance gets it computed from its rows.
    """
    current = BudgetPeriod(year=budget.year, month=budget.month)
    earlier = [
        b for b in db.query(MonthlyBudget).filter(MonthlyBudget.user_id == user_id).all()
        if BudgetPeriod(year=b.year, month=b.month) < current
    ]
    earlier.sort(key=lambda b: (b.year, b.month))

    rollover = ZERO
    for previous in earlier:
        if previous.ending_balance is not None:
            rollover += decrypt_stored_amount(
                dek, previous.ending_balance, "monthly_budgets", previous.id, user_id,
            )
        else:
            lines, transactions = load_budget_data(db, user_id, previous.id, dek)
            rollover += period_ending_balance(lines, transactions)

    previous_budget_id = earlier[-1].id if earlier else None
    return rollover, previous_budget_id


@dataclass
class BudgetView:
    budget: MonthlyBudget
    period: BudgetPeriod
    period_start: date_type
    period_end: date_type
    lines: list[DecryptedLine]
    transactions: list[DecryptedTransaction]
    consumptions: dict[str, BudgetLineConsumption]
    rollover_line: RolloverLine | None
    metrics: BudgetMetrics


def build_budget_view(
    db: Session,
    user_id: str,
    budget_id: str,
    dek: bytes,
    include_income_in_consumption: bool = True,
) -> BudgetView:
    budget = get_budget(db, user_id, budget_id)
    user = db.get(User, user_id)
    pay_day = user.pay_day_of_month if user else None

    lines, transactions = load_budget_data(db, user_id, budget.id, dek)
    rollover, previous_budget_id = get_rollover(db, user_id, budget, dek)

    rollover_line = None
    if previous_budget_id is not None:
        rollover_line = build_rollover_line(
            budget.id, budget.month, budget.year, rollover, previous_budget_id,
            created_at=budget.created_at, updated_at=budget.updated_at,
        )

    # The rollover line is display-only; consumption skips it
    display_lines = [rollover_line, *lines] if rollover_line else lines
    consumptions = compute_all_consumptions(display_lines, transactions, include_income_in_consumption)

    period = BudgetPeriod(year=budget.year, month=budget.month)
    start, end = period_dates(period, pay_day)
    return BudgetView(
        budget=budget,
        period=period,
        period_start=start,
        period_end=end,
        lines=lines,
        transactions=transactions,
        consumptions=consumptions,
        rollover_line=rollover_line,
        metrics=compute_metrics(lines, transactions, rollover),
    )


# ---------------------------------------------------------------------------
# Use Cases
# ---------------------------------------------------------------------------

def validate_kind(kind: str) -> str:
    kind = (kind or "").strip().lower()
    if kind not in KINDS:
        raise BudgetValidationError(f"Invalid kind: {kind!r}")
    return kind


def validate_amount(amount) -> Decimal:
    try:
        value = to_decimal(amount)
    except ValueError as exc:
        raise BudgetValidationError("Invalid amount") from exc
    if value < 0:
        raise BudgetValidationError("Amount must not be negative")
    return value


def validate_name(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise BudgetValidationError("Name is required")
    return name


class EnsureBudgetUseCase:
    """
    Idempotently ensure a MonthlyBudget exists for (user_id, year, month).

    A newly created budget can start from a template: its lines are copied
    into the budget, which needs the request's DEK. An existing budget is
    returned as is; the template is not applied twice.
    """

    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        user_id: str,
        month: int,
        year: int,
        description: str | None = None,
        template_id: str | None = None,
        dek: bytes | None = None,
    ) -> MonthlyBudget:
        period = BudgetPeriod(year=year, month=month)
        existing = get_budget_for_period(self.db, user_id, period)
        if existing is not None:
            return existing

        if template_id is not None:
            get_template(self.db, user_id, template_id)
            if dek is None:
                raise BudgetValidationError("Client key required to apply a template")

        budget = MonthlyBudget(user_id=user_id, year=year, month=month, description=description)
        self.db.add(budget)
        self.db.flush()
        logger.info("Budget %s created for user_id=%s", period, user_id)

        if template_id is not None:
            ApplyTemplateUseCase(self.db).execute(user_id, budget.id, template_id, dek)
        return budget


class ApplyTemplateUseCase:
    """
    Copy a template's lines into a budget.

    Amounts are decrypted and encrypted again, so no envelope is shared
    between a template line and a budget line.
    """

    def __init__(self, db: Session):
        self.db = db

    def execute(self, user_id: str, budget_id: str, template_id: str, dek: bytes) -> int:
        """Apply template. Returns number of lines created."""
        budget = get_budget(self.db, user_id, budget_id)
        template = get_template(self.db, user_id, template_id)

        template_lines = load_template_lines(self.db, user_id, template.id, dek)
        for tl in template_lines:
            self.db.add(BudgetLine(
                budget_id=budget.id,
                name=tl.name,
                kind=tl.kind,
                recurrence=tl.recurrence,
                amount=encrypt_amount(dek, tl.amount),
            ))
        budget.template_id = template.id
        self.db.flush()

        recalculate_ending_balance(self.db, user_id, budget, dek)
        logger.info(
            "Template id=%s applied to budget_id=%s (%d line(s))",
            template.id, budget.id, len(template_lines),
        )
        return len(template_lines)


class CreateBudgetLineUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        user_id: str,
        budget_id: str,
        name: str,
        kind: str,
        amount,
        dek: bytes,
        recurrence: str = RECURRENCE_FIXED,
    ) -> BudgetLine:
        budget = get_budget(self.db, user_id, budget_id)
        if recurrence not in RECURRENCES:
            raise BudgetValidationError(f"Invalid recurrence: {recurrence!r}")

        line = BudgetLine(
            budget_id=budget.id,
            name=validate_name(name),
            kind=validate_kind(kind),
            recurrence=recurrence,
            amount=encrypt_amount(dek, validate_amount(amount)),
        )
        self.db.add(line)
        self.db.flush()
        recalculate_ending_balance(self.db, user_id, budget, dek)
        return line


class UpdateBudgetLineAmountUseCase:
    """The user adjusts an envelope ceiling."""

    def __init__(self, db: Session):
        self.db = db

    def execute(self, user_id: str, line_id: str, amount, dek: bytes) -> BudgetLine:
        line = (
            self.db.query(BudgetLine)
            .join(MonthlyBudget, MonthlyBudget.id == BudgetLine.budget_id)
            .filter(BudgetLine.id == line_id, MonthlyBudget.user_id == user_id)
            .first()
        )
        if line is None:
            raise BudgetValidationError("Budget line not found")

        line.amount = encrypt_amount(dek, validate_amount(amount))
        self.db.flush()
        recalculate_ending_balance(self.db, user_id, get_budget(self.db, user_id, line.budget_id), dek)
        return line


class CreateTransactionUseCase:
    """
    Record a transaction.

    Without an explicit budget_id the transaction goes to the budget of the
    period its date resolves to (user's pay day), created on demand.
    """

    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        user_id: str,
        name: str,
        kind: str,
        amount,
        transaction_date: date_type,
        dek: bytes,
        budget_id: str | None = None,
        budget_line_id: str | None = None,
    ) -> Transaction:
        if budget_id is not None:
            budget = get_budget(self.db, user_id, budget_id)
        else:
            user = self.db.get(User, user_id)
            period = resolve_period(transaction_date, user.pay_day_of_month if user else None)
            budget = EnsureBudgetUseCase(self.db).execute(user_id, period.month, period.year)

        if budget_line_id is not None:
            line = self.db.get(BudgetLine, budget_line_id)
            if line is None or line.budget_id != budget.id:
                raise BudgetValidationError("Budget line does not belong to this budget")

        transaction = Transaction(
            budget_id=budget.id,
            budget_line_id=budget_line_id,
            name=validate_name(name),
            kind=validate_kind(kind),
            amount=encrypt_amount(dek, validate_amount(amount)),
            transaction_date=transaction_date,
        )
        self.db.add(transaction)
        self.db.flush()
        recalculate_ending_balance(self.db, user_id, budget, dek)
        return transaction
