"""
Envelope consumption: how much of each budget line has been used by the
transactions allocated to it.

Consumption is derived on read and never stored on the line.
`remaining` may go negative: over-consumption is a valid state.
"""
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Protocol, Sequence

from ledger.domain.budget import ZERO, is_outflow, is_rollover_line_id


class ConsumableLine(Protocol):
    id: str
    kind: str
    amount: Decimal


class ConsumingTransaction(Protocol):
    kind: str
    amount: Decimal
    budget_line_id: str | None


@dataclass(frozen=True)
class BudgetLineConsumption:
    budget_line: ConsumableLine
    consumed: Decimal
    remaining: Decimal
    allocated_transactions: Sequence[ConsumingTransaction] = field(default_factory=tuple)
    transaction_count: int = 0

    @property
    def is_over_consumed(self) -> bool:
        return self.remaining < 0


def _consumed(transactions: Iterable[ConsumingTransaction], include_income: bool) -> Decimal:
    """
    include_income=True: signed sum of every allocated transaction.
    include_income=False: absolute sum over expense/saving transactions only.
    """
    if include_income:
        return sum((t.amount for t in transactions), ZERO)
    return sum((abs(t.amount) for t in transactions if is_outflow(t.kind)), ZERO)


def _build(
    line: ConsumableLine,
    allocated: list[ConsumingTransaction],
    include_income: bool,
) -> BudgetLineConsumption:
    consumed = _consumed(allocated, include_income)
    return BudgetLineConsumption(
        budget_line=line,
        consumed=consumed,
        remaining=line.amount - consumed,
        allocated_transactions=tuple(allocated),
        transaction_count=len(allocated),
    )


def group_by_budget_line(
    transactions: Iterable[ConsumingTransaction],
) -> dict[str, list[ConsumingTransaction]]:
    """Allocated transactions keyed by budget_line_id; free ones are dropped."""
    grouped: dict[str, list[ConsumingTransaction]] = defaultdict(list)
    for t in transactions:
        if t.budget_line_id:
            grouped[t.budget_line_id].append(t)
    return grouped


def compute_consumption(
    budget_line: ConsumableLine,
    transactions: Iterable[ConsumingTransaction],
    include_income_in_consumption: bool = True,
) -> BudgetLineConsumption:
    allocated = [t for t in transactions if t.budget_line_id and t.budget_line_id == budget_line.id]
    return _build(budget_line, allocated, include_income_in_consumption)


def compute_all_consumptions(
    budget_lines: Iterable[ConsumableLine],
    transactions: Iterable[ConsumingTransaction],
    include_income_in_consumption: bool = True,
) -> dict[str, BudgetLineConsumption]:
    """
    Consumption of every real line, keyed by line id.

    Transactions are grouped once, so the cost is O(lines + transactions).
    Rollover lines are display-only and get no entry.
    """
    grouped = group_by_budget_line(transactions)
    result: dict[str, BudgetLineConsumption] = {}
    for line in budget_lines:
        if is_rollover_line_id(line.id):
            continue
        result[line.id] = _build(line, grouped.get(line.id, []), include_income_in_consumption)
    return result
