"""
Budget template API endpoints

Template amounts are encrypted like budget amounts: reading or writing them
needs the X-Client-Key header.
"""
from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ledger.api.deps import get_current_user, get_db, get_key_scope, get_optional_key_scope
from ledger.application.budget import DecryptedTemplateLine
from ledger.application.encryption import RequestKeyScope
from ledger.application.templates import (
    AddTemplateLineUseCase, CreateTemplateUseCase, DeleteTemplateUseCase, SaveAsTemplateUseCase,
    TemplateView, build_template_view, list_templates,
)
from ledger.domain.budget import RECURRENCE_FIXED
from ledger.infrastructure.db.models import BudgetTemplate, User


router = APIRouter(prefix="/api/v1/templates", tags=["templates"])


# === Request models ===

class TemplateLineRequest(BaseModel):
    name: str
    kind: str
    amount: str  # Decimal as string
    recurrence: str = RECURRENCE_FIXED


class CreateTemplateRequest(BaseModel):
    name: str
    description: str | None = None
    is_default: bool = False
    lines: list[TemplateLineRequest] = []


class SaveAsTemplateRequest(BaseModel):
    name: str
    description: str | None = None
    is_default: bool = False


# === Response models ===

class TemplateResponse(BaseModel):
    id: str
    name: str
    description: str | None = None
    is_default: bool


class TemplateLineResponse(BaseModel):
    id: str
    template_id: str
    name: str
    kind: str
    recurrence: str
    amount: str


class TemplateViewResponse(BaseModel):
    template: TemplateResponse
    lines: list[TemplateLineResponse]


# === Helpers ===

def _template_response(template: BudgetTemplate) -> TemplateResponse:
    return TemplateResponse(
        id=template.id, name=template.name, description=template.description,
        is_default=template.is_default,
    )


def _line_response(line: DecryptedTemplateLine) -> TemplateLineResponse:
    return TemplateLineResponse(
        id=line.id, template_id=line.template_id, name=line.name, kind=line.kind,
        recurrence=line.recurrence, amount=str(line.amount),
    )


def _view_response(view: TemplateView) -> TemplateViewResponse:
    return TemplateViewResponse(
        template=_template_response(view.template),
        lines=[_line_response(line) for line in view.lines],
    )


# === Endpoints ===

@router.get("", response_model=list[TemplateResponse])
def get_templates(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Templates without their lines, the default one first"""
    return [_template_response(t) for t in list_templates(db, user.id)]


@router.post("", response_model=TemplateResponse)
def create_template(
    req: CreateTemplateRequest,
    user: User = Depends(get_current_user),
    scope: RequestKeyScope | None = Depends(get_optional_key_scope),
    db: Session = Depends(get_db),
):
    """Lines are optional; sending them requires X-Client-Key"""
    template = CreateTemplateUseCase(db).execute(
        user.id,
        req.name,
        description=req.description,
        is_default=req.is_default,
        lines=[line.model_dump() for line in req.lines],
        dek=scope.dek if scope is not None and req.lines else None,
    )
    return _template_response(template)


@router.get("/{template_id}", response_model=TemplateViewResponse)
def get_template_view(
    template_id: str,
    user: User = Depends(get_current_user),
    scope: RequestKeyScope = Depends(get_key_scope),
    db: Session = Depends(get_db),
):
    return _view_response(build_template_view(db, user.id, template_id, scope.dek))


@router.post("/{template_id}/lines", response_model=TemplateLineResponse)
def add_template_line(
    template_id: str,
    req: TemplateLineRequest,
    user: User = Depends(get_current_user),
    scope: RequestKeyScope = Depends(get_key_scope),
    db: Session = Depends(get_db),
):
    line = AddTemplateLineUseCase(db).execute(
        user.id, template_id, req.name, req.kind, req.amount, scope.dek, req.recurrence,
    )
    return TemplateLineResponse(
        id=line.id, template_id=line.template_id, name=line.name, kind=line.kind,
        recurrence=line.recurrence, amount=req.amount,
    )


@router.delete("/{template_id}", status_code=204)
def delete_template(
    template_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    DeleteTemplateUseCase(db).execute(user.id, template_id)
    return Response(status_code=204)


@router.post("/from-budget/{budget_id}", response_model=TemplateViewResponse)
def save_budget_as_template(
    budget_id: str,
    req: SaveAsTemplateRequest,
    user: User = Depends(get_current_user),
    scope: RequestKeyScope = Depends(get_key_scope),
    db: Session = Depends(get_db),
):
    """Recurring lines of the budget become the template's lines"""
    template = SaveAsTemplateUseCase(db).execute(
        user.id, budget_id, req.name, scope.dek,
        description=req.description, is_default=req.is_default,
    )
    return _view_response(build_template_view(db, user.id, template.id, scope.dek))
