"""
Budget formulas (pure functions over decrypted amounts).

    available_M      = income_M + rollover_M
    expenses_M       = Σ expense/saving lines + Σ free expense/saving transactions
                       + Σ envelope overruns
    ending_balance_M = available_M - expenses_M
    remaining_M      = ending_balance_M

Savings are treated as expenses. A transaction allocated to an envelope only
counts once it overruns the envelope; a free transaction (no budget line)
counts directly.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Protocol

KIND_INCOME = "income"
KIND_EXPENSE = "expense"
KIND_SAVING = "saving"
KINDS = (KIND_INCOME, KIND_EXPENSE, KIND_SAVING)
OUTFLOW_KINDS = (KIND_EXPENSE, KIND_SAVING)

RECURRENCE_FIXED = "fixed"
RECURRENCE_ONE_OFF = "one_off"
RECURRENCES = (RECURRENCE_FIXED, RECURRENCE_ONE_OFF)

ROLLOVER_LINE_PREFIX = "rollover-"
ROLLOVER_NAME_PREFIX = "rollover_"

ZERO = Decimal("0")


class FinancialItem(Protocol):
    kind: str
    amount: Decimal


class LineItem(FinancialItem, Protocol):
    id: str


class TransactionItem(FinancialItem, Protocol):
    budget_line_id: str | None


def is_outflow(kind: str) -> bool:
    return kind in OUTFLOW_KINDS


def is_rollover_line_id(line_id: str | None) -> bool:
    return bool(line_id) and line_id.startswith(ROLLOVER_LINE_PREFIX)


def rollover_line_id(budget_id: str) -> str:
    return f"{ROLLOVER_LINE_PREFIX}{budget_id}"


def rollover_line_name(month: int, year: int) -> str:
    return f"{ROLLOVER_NAME_PREFIX}{month}_{year}"


def total_income(lines: Iterable[FinancialItem], transactions: Iterable[FinancialItem] = ()) -> Decimal:
    line_income = sum((l.amount for l in lines if l.kind == KIND_INCOME), ZERO)
    tx_income = sum((t.amount for t in transactions if t.kind == KIND_INCOME), ZERO)
    return line_income + tx_income


def envelope_overruns(lines: Iterable[LineItem], allocated: Iterable[TransactionItem]) -> Decimal:
    """
    Σ max(0, allocated_total - envelope) over envelopes.

    Allocations pointing at a line that is not an expense/saving envelope of
    this budget count in full.
    """
    envelopes = {l.id: l.amount for l in lines if getattr(l, "id", None) and is_outflow(l.kind)}

    totals: dict[str, Decimal] = {}
    for t in allocated:
        if t.budget_line_id:
            totals[t.budget_line_id] = totals.get(t.budget_line_id, ZERO) + t.amount

    overruns = ZERO
    for line_id, allocated_total in totals.items():
        envelope = envelopes.get(line_id)
        if envelope is None:
            overruns += allocated_total
        else:
            overruns += max(ZERO, allocated_total - envelope)
    return overruns


def total_expenses(lines: Iterable[LineItem], transactions: Iterable[TransactionItem] = ()) -> Decimal:
    lines = list(lines)
    outflow_transactions = [t for t in transactions if is_outflow(t.kind)]

    line_expenses = sum((l.amount for l in lines if is_outflow(l.kind)), ZERO)
    free_expenses = sum((t.amount for t in outflow_transactions if not t.budget_line_id), ZERO)
    allocated = [t for t in outflow_transactions if t.budget_line_id]

    return line_expenses + free_expenses + envelope_overruns(lines, allocated)


def period_ending_balance(lines: Iterable[FinancialItem], transactions: Iterable[FinancialItem] = ()) -> Decimal:
    """
    Income minus everything else over lines and transactions of one period,
    without rollover. This is the value persisted on the monthly budget.
    """
    balance = ZERO
    for item in [*lines, *transactions]:
        if item.kind == KIND_INCOME:
            balance += item.amount
        else:
            balance -= item.amount
    return balance


@dataclass(frozen=True)
class BudgetMetrics:
    total_income: Decimal
    total_expenses: Decimal
    available: Decimal
    ending_balance: Decimal
    remaining: Decimal
    rollover: Decimal


def compute_metrics(
    lines: Iterable[LineItem],
    transactions: Iterable[TransactionItem] = (),
    rollover: Decimal = ZERO,
) -> BudgetMetrics:
    """All budget metrics in one pass. Rollover lines must not be part of `lines`."""
    lines = [l for l in lines if not is_rollover_line_id(getattr(l, "id", None))]
    transactions = list(transactions)

    income = total_income(lines, transactions)
    expenses = total_expenses(lines, transactions)
    available = income + rollover
    ending_balance = available - expenses
    return BudgetMetrics(
        total_income=income,
        total_expenses=expenses,
        available=available,
        ending_balance=ending_balance,
        remaining=ending_balance,
        rollover=rollover,
    )


@dataclass(frozen=True)
class RolloverLine:
    """Synthetic display line carrying the previous periods' balance."""
    id: str
    budget_id: str
    name: str
    kind: str
    amount: Decimal
    recurrence: str
    rollover_source_budget_id: str | None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    is_rollover: bool = True


def build_rollover_line(
    budget_id: str,
    month: int,
    year: int,
    rollover_amount: Decimal,
    previous_budget_id: str | None,
    created_at: datetime | None = None,
    updated_at: datetime | None = None,
) -> RolloverLine:
    """
    Display line for the balance carried into (month, year).

    A surplus shows as income, a deficit as expense; the amount is absolute.
    The line is named after the period the balance comes from.
    """
    prev_month, prev_year = (12, year - 1) if month == 1 else (month - 1, year)
    return RolloverLine(
        id=rollover_line_id(budget_id),
        budget_id=budget_id,
        name=rollover_line_name(prev_month, prev_year),
        kind=KIND_INCOME if rollover_amount > 0 else KIND_EXPENSE,
        amount=abs(rollover_amount),
        recurrence=RECURRENCE_ONE_OFF,
        rollover_source_budget_id=previous_budget_id,
        created_at=created_at,
        updated_at=updated_at,
    )
