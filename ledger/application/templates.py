"""
Budget template use cases.

A template is a reusable set of envelopes (name, kind, recurrence, amount).
Its amounts are encrypted with the user's DEK like every other amount, and a
new budget can be created from it (see EnsureBudgetUseCase).
"""
import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from ledger.application.budget import (
    BudgetValidationError, DecryptedTemplateLine, get_budget, get_template, load_budget_data, load_template_lines,
    validate_amount, validate_kind, validate_name,
)
from ledger.domain.budget import RECURRENCE_FIXED, RECURRENCE_ONE_OFF, RECURRENCES
from ledger.infrastructure.crypto.amount_cipher import encrypt_amount
from ledger.infrastructure.db.models import BudgetTemplate, MonthlyBudget, TemplateLine

logger = logging.getLogger(__name__)


@dataclass
class TemplateView:
    template: BudgetTemplate
    lines: list[DecryptedTemplateLine]


def list_templates(db: Session, user_id: str) -> list[BudgetTemplate]:
    """User's templates, the default one first."""
    return (
        db.query(BudgetTemplate)
        .filter(BudgetTemplate.user_id == user_id)
        .order_by(BudgetTemplate.is_default.desc(), BudgetTemplate.name, BudgetTemplate.id)
        .all()
    )


def build_template_view(db: Session, user_id: str, template_id: str, dek: bytes) -> TemplateView:
    template = get_template(db, user_id, template_id)
    return TemplateView(template=template, lines=load_template_lines(db, user_id, template.id, dek))


def _make_default(db: Session, user_id: str, template: BudgetTemplate) -> None:
    # At most one default template per user
    db.query(BudgetTemplate).filter(
        BudgetTemplate.user_id == user_id,
        BudgetTemplate.id != template.id,
        BudgetTemplate.is_default.is_(True),
    ).update({BudgetTemplate.is_default: False}, synchronize_session="fetch")
    template.is_default = True


def _template_line(template_id: str, name: str, kind: str, amount, dek: bytes, recurrence: str) -> TemplateLine:
    if recurrence not in RECURRENCES:
        raise BudgetValidationError(f"Invalid recurrence: {recurrence!r}")
    return TemplateLine(
        template_id=template_id,
        name=validate_name(name),
        kind=validate_kind(kind),
        recurrence=recurrence,
        amount=encrypt_amount(dek, validate_amount(amount)),
    )


class CreateTemplateUseCase:
    """
    Create a template, optionally with its lines.

    lines: dicts with name, kind, amount and an optional recurrence. Lines
    need the DEK; an empty template does not.
    """

    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        user_id: str,
        name: str,
        description: str | None = None,
        is_default: bool = False,
        lines: list[dict] | None = None,
        dek: bytes | None = None,
    ) -> BudgetTemplate:
        lines = lines or []
        if lines and dek is None:
            raise BudgetValidationError("Client key required to store template amounts")

        template = BudgetTemplate(user_id=user_id, name=validate_name(name), description=description)
        self.db.add(template)
        self.db.flush()

        for line in lines:
            self.db.add(_template_line(
                template.id, line.get("name"), line.get("kind"), line.get("amount"), dek,
                line.get("recurrence") or RECURRENCE_FIXED,
            ))
        if is_default:
            _make_default(self.db, user_id, template)
        self.db.flush()

        logger.info("Template id=%s created for user_id=%s (%d line(s))", template.id, user_id, len(lines))
        return template


class AddTemplateLineUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        user_id: str,
        template_id: str,
        name: str,
        kind: str,
        amount,
        dek: bytes,
        recurrence: str = RECURRENCE_FIXED,
    ) -> TemplateLine:
        template = get_template(self.db, user_id, template_id)
        line = _template_line(template.id, name, kind, amount, dek, recurrence)
        self.db.add(line)
        self.db.flush()
        return line


class SaveAsTemplateUseCase:
    """
    Save a budget's recurring envelopes as a new template.

    One-off lines belong to their period only and are not copied. Amounts are
    re-encrypted with a fresh IV.
    """

    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        user_id: str,
        budget_id: str,
        name: str,
        dek: bytes,
        description: str | None = None,
        is_default: bool = False,
    ) -> BudgetTemplate:
        budget = get_budget(self.db, user_id, budget_id)
        lines, _ = load_budget_data(self.db, user_id, budget.id, dek)
        recurring = [line for line in lines if line.recurrence != RECURRENCE_ONE_OFF]

        template = CreateTemplateUseCase(self.db).execute(
            user_id,
            name,
            description=description,
            is_default=is_default,
            lines=[
                {"name": line.name, "kind": line.kind, "amount": line.amount, "recurrence": line.recurrence}
                for line in recurring
            ],
            dek=dek,
        )
        logger.info("Budget id=%s saved as template id=%s", budget.id, template.id)
        return template


class DeleteTemplateUseCase:
    """Budgets created from the template keep their lines and lose the link."""

    def __init__(self, db: Session):
        self.db = db

    def execute(self, user_id: str, template_id: str) -> None:
        template = get_template(self.db, user_id, template_id)

        self.db.query(MonthlyBudget).filter(
            MonthlyBudget.template_id == template.id,
        ).update({MonthlyBudget.template_id: None}, synchronize_session="fetch")
        self.db.query(TemplateLine).filter(TemplateLine.template_id == template.id).delete()
        self.db.delete(template)
        self.db.flush()
        logger.info("Template id=%s deleted for user_id=%s", template_id, user_id)
