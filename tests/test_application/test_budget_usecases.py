"""
Tests for budget use cases and build_budget_view
"""
import pytest
from datetime import date
from decimal import Decimal

from ledger.application.budget import (
    BudgetValidationError, CreateBudgetLineUseCase, CreateTransactionUseCase, EnsureBudgetUseCase,
    UpdateBudgetLineAmountUseCase, build_budget_view, get_rollover,
)
from ledger.errors import DecryptionFailed, InvalidPeriodInput
from ledger.infrastructure.crypto.amount_cipher import decrypt_amount
from ledger.infrastructure.db.models import BudgetLine, MonthlyBudget, Transaction


@pytest.fixture
def january(db_session, user):
    return EnsureBudgetUseCase(db_session).execute(user.id, 1, 2025)


def _line(db, user, budget, name, kind, amount, dek):
    return CreateBudgetLineUseCase(db).execute(user.id, budget.id, name, kind, amount, dek)


def _tx(db, user, name, kind, amount, day, dek, budget=None, line=None):
    return CreateTransactionUseCase(db).execute(
        user.id, name, kind, amount, day, dek,
        budget_id=budget.id if budget else None,
        budget_line_id=line.id if line else None,
    )


class TestEnsureBudget:
    def test_idempotent(self, db_session, user, january):
        again = EnsureBudgetUseCase(db_session).execute(user.id, 1, 2025)
        assert again.id == january.id
        assert db_session.query(MonthlyBudget).count() == 1

    def test_invalid_month(self, db_session, user):
        with pytest.raises(InvalidPeriodInput):
            EnsureBudgetUseCase(db_session).execute(user.id, 13, 2025)


class TestBudgetLines:
    def test_amount_stored_encrypted(self, db_session, user, january, dek):
        line = _line(db_session, user, january, "Salary", "income", "5000", dek)

        assert line.amount != "5000"
        assert decrypt_amount(dek, line.amount) == Decimal("5000")

    def test_ending_balance_recalculated(self, db_session, user, january, dek):
        _line(db_session, user, january, "Salary", "income", "5000", dek)
        _line(db_session, user, january, "Rent", "expense", "1800", dek)

        assert decrypt_amount(dek, january.ending_balance) == Decimal("3200")

    def test_update_amount(self, db_session, user, january, dek):
        _line(db_session, user, january, "Salary", "income", "5000", dek)
        rent = _line(db_session, user, january, "Rent", "expense", "1800", dek)

        UpdateBudgetLineAmountUseCase(db_session).execute(user.id, rent.id, "1750.50", dek)

        assert decrypt_amount(dek, rent.amount) == Decimal("1750.5")
        assert decrypt_amount(dek, january.ending_balance) == Decimal("3249.5")

    @pytest.mark.parametrize("kind,amount,name", [
        ("bonus", "10", "x"),
        ("expense", "-5", "x"),
        ("expense", "abc", "x"),
        ("expense", "10", "   "),
    ])
    def test_validation(self, db_session, user, january, dek, kind, amount, name):
        with pytest.raises(BudgetValidationError):
            _line(db_session, user, january, name, kind, amount, dek)

    def test_foreign_budget_rejected(self, db_session, user, dek):
        other = EnsureBudgetUseCase(db_session).execute("someone-else", 1, 2025)
        with pytest.raises(BudgetValidationError):
            _line(db_session, user, other, "Rent", "expense", "10", dek)


class TestTransactions:
    def test_budget_resolved_from_pay_day(self, db_session, user, dek):
        user.pay_day_of_month = 27
        db_session.flush()

        tx = _tx(db_session, user, "Coffee", "expense", "4.5", date(2025, 1, 26), dek)

        budget = db_session.get(MonthlyBudget, tx.budget_id)
        assert (budget.year, budget.month) == (2024, 12)

    def test_calendar_month_without_pay_day(self, db_session, user, january, dek):
        tx = _tx(db_session, user, "Coffee", "expense", "4.5", date(2025, 1, 26), dek)
        assert tx.budget_id == january.id

    def test_line_of_other_budget_rejected(self, db_session, user, january, dek):
        february = EnsureBudgetUseCase(db_session).execute(user.id, 2, 2025)
        rent = _line(db_session, user, february, "Rent", "expense", "1800", dek)

        with pytest.raises(BudgetValidationError):
            _tx(db_session, user, "Rent", "expense", "1800", date(2025, 1, 5), dek, budget=january, line=rent)

    def test_transaction_updates_ending_balance(self, db_session, user, january, dek):
        _line(db_session, user, january, "Salary", "income", "5000", dek)
        _tx(db_session, user, "Shoes", "expense", "120", date(2025, 1, 12), dek, budget=january)

        assert decrypt_amount(dek, january.ending_balance) == Decimal("4880")


class TestBudgetView:
    def test_view_with_consumption_and_metrics(self, db_session, user, january, dek):
        _line(db_session, user, january, "Salary", "income", "5000", dek)
        groceries = _line(db_session, user, january, "Groceries", "expense", "408", dek)
        _tx(db_session, user, "Market", "expense", "800", date(2025, 1, 3), dek, budget=january, line=groceries)
        _tx(db_session, user, "Market", "expense", "774", date(2025, 1, 17), dek, budget=january, line=groceries)

        view = build_budget_view(db_session, user.id, january.id, dek)

        c = view.consumptions[groceries.id]
        assert c.consumed == Decimal("1574")
        assert c.remaining == Decimal("-1166")
        assert view.rollover_line is None
        assert view.metrics.total_income == Decimal("5000")
        # 408 planned + 1166 over the envelope
        assert view.metrics.total_expenses == Decimal("1574")
        assert view.metrics.ending_balance == Decimal("3426")
        assert (view.period_start, view.period_end) == (date(2025, 1, 1), date(2025, 1, 31))

    def test_rollover_from_previous_budgets(self, db_session, user, dek):
        december = EnsureBudgetUseCase(db_session).execute(user.id, 12, 2024)
        _line(db_session, user, december, "Salary", "income", "1000", dek)
        _line(db_session, user, december, "Rent", "expense", "700", dek)
        january = EnsureBudgetUseCase(db_session).execute(user.id, 1, 2025)
        _line(db_session, user, january, "Salary", "income", "1000", dek)
        _line(db_session, user, january, "Rent", "expense", "1100", dek)
        february = EnsureBudgetUseCase(db_session).execute(user.id, 2, 2025)

        jan_view = build_budget_view(db_session, user.id, january.id, dek)
        feb_rollover, previous_id = get_rollover(db_session, user.id, february, dek)

        assert jan_view.rollover_line.kind == "income"
        assert jan_view.rollover_line.amount == Decimal("300")
        assert jan_view.rollover_line.name == "rollover_12_2024"
        assert jan_view.metrics.available == Decimal("1300")
        assert jan_view.metrics.ending_balance == Decimal("200")
        assert jan_view.rollover_line.id not in jan_view.consumptions
        # 300 from December, -100 from January
        assert feb_rollover == Decimal("200")
        assert previous_id == january.id

    def test_budget_without_stored_balance_is_computed(self, db_session, user, dek):
        from ledger.infrastructure.crypto.amount_cipher import encrypt_amount

        march = MonthlyBudget(user_id=user.id, year=2025, month=3)
        db_session.add(march)
        db_session.flush()
        db_session.add(BudgetLine(budget_id=march.id, name="Gift", kind="income", amount=encrypt_amount(dek, "50")))
        april = EnsureBudgetUseCase(db_session).execute(user.id, 4, 2025)
        db_session.flush()

        assert get_rollover(db_session, user.id, april, dek) == (Decimal("50"), march.id)

    def test_null_amounts_are_skipped(self, db_session, user, january, dek):
        _line(db_session, user, january, "Salary", "income", "1000", dek)
        db_session.add(BudgetLine(budget_id=january.id, name="Draft", kind="expense", amount=None))
        db_session.flush()

        view = build_budget_view(db_session, user.id, january.id, dek)

        assert [l.name for l in view.lines] == ["Salary"]
        assert view.metrics.ending_balance == Decimal("1000")

    def test_corrupted_amount_propagates(self, db_session, user, january, dek):
        line = _line(db_session, user, january, "Salary", "income", "1000", dek)
        db_session.add(Transaction(
            budget_id=january.id, budget_line_id=line.id, name="Broken", kind="income",
            amount="AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA", transaction_date=date(2025, 1, 2),
        ))
        db_session.flush()

        with pytest.raises(DecryptionFailed):
            build_budget_view(db_session, user.id, january.id, dek)

    def test_include_income_flag(self, db_session, user, january, dek):
        side = _line(db_session, user, january, "Side", "expense", "100", dek)
        _tx(db_session, user, "Spent", "expense", "60", date(2025, 1, 3), dek, budget=january, line=side)
        _tx(db_session, user, "Refund", "income", "20", date(2025, 1, 4), dek, budget=january, line=side)

        with_income = build_budget_view(db_session, user.id, january.id, dek)
        without_income = build_budget_view(db_session, user.id, january.id, dek, include_income_in_consumption=False)

        assert with_income.consumptions[side.id].consumed == Decimal("80")
        assert without_income.consumptions[side.id].consumed == Decimal("60")
        assert without_income.consumptions[side.id].transaction_count == 2

    def test_unknown_budget(self, db_session, user, dek):
        with pytest.raises(BudgetValidationError):
            build_budget_view(db_session, user.id, "missing", dek)
