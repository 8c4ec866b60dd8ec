"""
Budget API endpoints (budgets, envelopes, transactions)

Amounts travel as strings (Decimal as string) and are encrypted before they
reach the database.
"""
from datetime import date
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ledger.api.deps import get_current_user, get_db, get_key_scope, get_optional_key_scope
from ledger.application.budget import (
    BudgetView, CreateBudgetLineUseCase, CreateTransactionUseCase, EnsureBudgetUseCase,
    UpdateBudgetLineAmountUseCase, build_budget_view,
)
from ledger.application.encryption import RequestKeyScope
from ledger.domain.budget import RECURRENCE_FIXED
from ledger.domain.budget_period import format_period
from ledger.infrastructure.db.models import MonthlyBudget, User


router = APIRouter(prefix="/api/v1", tags=["budgets"])


# === Request models ===

class CreateBudgetRequest(BaseModel):
    month: int
    year: int
    description: str | None = None
    template_id: str | None = None  # start from this template (needs X-Client-Key)


class CreateBudgetLineRequest(BaseModel):
    name: str
    kind: str
    amount: str  # Decimal as string
    recurrence: str = RECURRENCE_FIXED


class UpdateBudgetLineRequest(BaseModel):
    amount: str  # Decimal as string


class CreateTransactionRequest(BaseModel):
    name: str
    kind: str
    amount: str  # Decimal as string
    transaction_date: date
    budget_id: str | None = None
    budget_line_id: str | None = None


# === Response models ===

class BudgetResponse(BaseModel):
    id: str
    month: int
    year: int
    description: str | None = None
    template_id: str | None = None


class BudgetLineResponse(BaseModel):
    id: str
    budget_id: str
    name: str
    kind: str
    recurrence: str
    amount: str
    consumed: str | None = None
    remaining: str | None = None
    transaction_count: int = 0
    is_rollover: bool = False


class TransactionResponse(BaseModel):
    id: str
    budget_id: str
    budget_line_id: str | None = None
    name: str
    kind: str
    amount: str
    transaction_date: date


class MetricsResponse(BaseModel):
    total_income: str
    total_expenses: str
    available: str
    ending_balance: str
    remaining: str
    rollover: str


class BudgetViewResponse(BaseModel):
    budget: BudgetResponse
    period_start: date
    period_end: date
    period_label: str
    budget_lines: list[BudgetLineResponse]
    transactions: list[TransactionResponse]
    metrics: MetricsResponse


# === Helpers ===

def _budget_response(budget: MonthlyBudget) -> BudgetResponse:
    return BudgetResponse(
        id=budget.id, month=budget.month, year=budget.year,
        description=budget.description, template_id=budget.template_id,
    )


def _view_response(view: BudgetView, pay_day: int | None) -> BudgetViewResponse:
    lines = []
    if view.rollover_line is not None:
        r = view.rollover_line
        lines.append(BudgetLineResponse(
            id=r.id, budget_id=r.budget_id, name=r.name, kind=r.kind,
            recurrence=r.recurrence, amount=str(r.amount), is_rollover=True,
        ))
    for line in view.lines:
        c = view.consumptions[line.id]
        lines.append(BudgetLineResponse(
            id=line.id, budget_id=line.budget_id, name=line.name, kind=line.kind,
            recurrence=line.recurrence, amount=str(line.amount),
            consumed=str(c.consumed), remaining=str(c.remaining),
            transaction_count=c.transaction_count,
        ))

    m = view.metrics
    return BudgetViewResponse(
        budget=_budget_response(view.budget),
        period_start=view.period_start,
        period_end=view.period_end,
        period_label=format_period(view.period, pay_day),
        budget_lines=lines,
        transactions=[
            TransactionResponse(
                id=t.id, budget_id=t.budget_id, budget_line_id=t.budget_line_id,
                name=t.name, kind=t.kind, amount=str(t.amount),
                transaction_date=t.transaction_date,
            )
            for t in view.transactions
        ],
        metrics=MetricsResponse(
            total_income=str(m.total_income), total_expenses=str(m.total_expenses),
            available=str(m.available), ending_balance=str(m.ending_balance),
            remaining=str(m.remaining), rollover=str(m.rollover),
        ),
    )


# === Endpoints ===

@router.post("/budgets", response_model=BudgetResponse)
def create_budget(
    req: CreateBudgetRequest,
    user: User = Depends(get_current_user),
    scope: RequestKeyScope | None = Depends(get_optional_key_scope),
    db: Session = Depends(get_db),
):
    """Idempotent per period; template_id only applies when the budget is new"""
    budget = EnsureBudgetUseCase(db).execute(
        user.id, req.month, req.year, req.description,
        template_id=req.template_id,
        dek=scope.dek if scope is not None and req.template_id is not None else None,
    )
    return _budget_response(budget)


@router.get("/budgets/{budget_id}", response_model=BudgetViewResponse)
def get_budget_view(
    budget_id: str,
    include_income_in_consumption: bool = True,
    user: User = Depends(get_current_user),
    scope: RequestKeyScope = Depends(get_key_scope),
    db: Session = Depends(get_db),
):
    """Budget with decrypted lines, envelope consumption, rollover and metrics"""
    view = build_budget_view(db, user.id, budget_id, scope.dek, include_income_in_consumption)
    return _view_response(view, user.pay_day_of_month)


@router.post("/budgets/{budget_id}/lines", response_model=BudgetLineResponse)
def create_budget_line(
    budget_id: str,
    req: CreateBudgetLineRequest,
    user: User = Depends(get_current_user),
    scope: RequestKeyScope = Depends(get_key_scope),
    db: Session = Depends(get_db),
):
    line = CreateBudgetLineUseCase(db).execute(
        user_id=user.id,
        budget_id=budget_id,
        name=req.name,
        kind=req.kind,
        amount=req.amount,
        dek=scope.dek,
        recurrence=req.recurrence,
    )
    return BudgetLineResponse(
        id=line.id, budget_id=line.budget_id, name=line.name, kind=line.kind,
        recurrence=line.recurrence, amount=req.amount,
    )


@router.patch("/budget-lines/{line_id}", response_model=BudgetLineResponse)
def update_budget_line(
    line_id: str,
    req: UpdateBudgetLineRequest,
    user: User = Depends(get_current_user),
    scope: RequestKeyScope = Depends(get_key_scope),
    db: Session = Depends(get_db),
):
    line = UpdateBudgetLineAmountUseCase(db).execute(user.id, line_id, req.amount, scope.dek)
    return BudgetLineResponse(
        id=line.id, budget_id=line.budget_id, name=line.name, kind=line.kind,
        recurrence=line.recurrence, amount=req.amount,
    )


@router.post("/transactions", response_model=TransactionResponse)
def create_transaction(
    req: CreateTransactionRequest,
    user: User = Depends(get_current_user),
    scope: RequestKeyScope = Depends(get_key_scope),
    db: Session = Depends(get_db),
):
    """Without budget_id the budget is picked from transaction_date and the user's pay day"""
    tx = CreateTransactionUseCase(db).execute(
        user_id=user.id,
        name=req.name,
        kind=req.kind,
        amount=req.amount,
        transaction_date=req.transaction_date,
        dek=scope.dek,
        budget_id=req.budget_id,
        budget_line_id=req.budget_line_id,
    )
    return TransactionResponse(
        id=tx.id, budget_id=tx.budget_id, budget_line_id=tx.budget_line_id,
        name=tx.name, kind=tx.kind, amount=req.amount,
        transaction_date=tx.transaction_date,
    )
