"""
Budget periods: which (month, year) budget a date belongs to.

A user may anchor their budget on a pay day. With pay day P a date belongs to
its own calendar month once day >= P, and to the previous month before that:

    pay_day=27:  2025-01-26 -> 12/2024,  2025-01-27 -> 01/2025
    pay_day=3:   2025-01-02 -> 12/2024

No pay day (or pay day 1) means plain calendar months. Pay days are clamped to
[1, 31] and never rejected; in months shorter than P no date reaches P, so
e.g. with P=31 every February date belongs to January.
"""
import calendar
from dataclasses import dataclass
from datetime import date as date_type, datetime, timedelta
from math import floor

from ledger.errors import InvalidPeriodInput

PAY_DAY_MIN = 1
PAY_DAY_MAX = 31


@dataclass(frozen=True, order=True)
class BudgetPeriod:
    """A budget cycle. Field order (year, month) gives chronological ordering."""
    year: int
    month: int  # 1..12

    def __post_init__(self):
        if not 1 <= self.month <= 12:
            raise InvalidPeriodInput(f"Month must be in 1..12, got {self.month}")

    def __str__(self) -> str:
        return f"{self.month:02d}/{self.year}"


def normalize_pay_day(pay_day_of_month) -> int | None:
    """None for calendar semantics, otherwise the pay day clamped to [1, 31]."""
    if not pay_day_of_month or pay_day_of_month == 1:
        return None
    clamped = max(PAY_DAY_MIN, min(PAY_DAY_MAX, floor(pay_day_of_month)))
    return None if clamped == 1 else clamped


def previous_period(period: BudgetPeriod) -> BudgetPeriod:
    if period.month == 1:
        return BudgetPeriod(year=period.year - 1, month=12)
    return BudgetPeriod(year=period.year, month=period.month - 1)


def next_period(period: BudgetPeriod) -> BudgetPeriod:
    if period.month == 12:
        return BudgetPeriod(year=period.year + 1, month=1)
    return BudgetPeriod(year=period.year, month=period.month + 1)


def resolve_period(date: date_type, pay_day_of_month: int | None = None) -> BudgetPeriod:
    """Map a calendar date to its budget period."""
    if isinstance(date, datetime):
        date = date.date()
    calendar_period = BudgetPeriod(year=date.year, month=date.month)

    pay_day = normalize_pay_day(pay_day_of_month)
    if pay_day is None:
        return calendar_period

    if date.day >= pay_day:
        return calendar_period
    return previous_period(calendar_period)


def compare_periods(a: BudgetPeriod, b: BudgetPeriod) -> int:
    """-1 if a < b, 0 if equal, 1 if a > b (year first, then month)."""
    if a.year != b.year:
        return -1 if a.year < b.year else 1
    if a.month != b.month:
        return -1 if a.month < b.month else 1
    return 0


def is_past_period(
    period: BudgetPeriod,
    pay_day_of_month: int | None = None,
    today: date_type | None = None,
) -> bool:
    current = resolve_period(today or date_type.today(), pay_day_of_month)
    return compare_periods(period, current) < 0


def is_in_current_period(
    date: date_type,
    pay_day_of_month: int | None = None,
    today: date_type | None = None,
) -> bool:
    current = resolve_period(today or date_type.today(), pay_day_of_month)
    return resolve_period(date, pay_day_of_month) == current


def _period_start(period: BudgetPeriod, pay_day: int | None) -> date_type:
    if pay_day is None:
        return date_type(period.year, period.month, 1)
    last_day = calendar.monthrange(period.year, period.month)[1]
    if pay_day <= last_day:
        return date_type(period.year, period.month, pay_day)
    # Month shorter than the pay day: the period only owns dates of the next month
    following = next_period(period)
    return date_type(following.year, following.month, 1)


def period_dates(
    period: BudgetPeriod,
    pay_day_of_month: int | None = None,
) -> tuple[date_type, date_type]:
    """
    Inclusive (start, end) of all dates that resolve_period maps to `period`.

    Example (pay day 27): 01/2025 -> (2025-01-27, 2025-02-26)
    """
    pay_day = normalize_pay_day(pay_day_of_month)
    start = _period_start(period, pay_day)
    end = _period_start(next_period(period), pay_day) - timedelta(days=1)
    return start, end


def format_period(period: BudgetPeriod, pay_day_of_month: int | None = None) -> str:
    """Short label of the period range, e.g. "27.01 - 26.02"."""
    start, end = period_dates(period, pay_day_of_month)
    return f"{start:%d.%m} - {end:%d.%m}"
