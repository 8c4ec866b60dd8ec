"""
Bulk operations over every encrypted amount of a user.

Both operations compute all new values first and only then assign them, so a
single undecryptable row aborts the whole batch before anything is written.
Callers commit (or roll back) the session.
"""
import logging
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from ledger.application.encryption import EncryptionService
from ledger.infrastructure.crypto.amount_cipher import decrypt_amount, encrypt_amount, generate_key_check
from ledger.errors import DecryptionFailed
from ledger.infrastructure.db.models import (
    BudgetLine, BudgetTemplate, MonthlyBudget, TemplateLine, Transaction, UserEncryptionKey,
)
from ledger.utils.money import is_plain_decimal

logger = logging.getLogger(__name__)

# (model, amount column) pairs holding encrypted amounts
ENCRYPTED_COLUMNS = (
    (BudgetLine, "amount"),
    (Transaction, "amount"),
    (MonthlyBudget, "ending_balance"),
    (TemplateLine, "amount"),
)


@dataclass
class BatchResult:
    counts: dict[str, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.counts.values())


def user_rows(db: Session, user_id: str, model) -> list:
    """All rows of `model` owned by the user (through their budgets or templates)."""
    if model is MonthlyBudget:
        return db.query(MonthlyBudget).filter(MonthlyBudget.user_id == user_id).all()
    if model is TemplateLine:
        return (
            db.query(TemplateLine)
            .join(BudgetTemplate, BudgetTemplate.id == TemplateLine.template_id)
            .filter(BudgetTemplate.user_id == user_id)
            .all()
        )
    return (
        db.query(model)
        .join(MonthlyBudget, MonthlyBudget.id == model.budget_id)
        .filter(MonthlyBudget.user_id == user_id)
        .all()
    )


class EncryptionRekeyService:
    """Move a user's data from one DEK to another."""

    def __init__(self, db: Session, encryption: EncryptionService | None = None):
        self.db = db
        self.encryption = encryption

    def rekey_user_data(self, user_id: str, old_client_key: bytes, new_client_key: bytes) -> BatchResult:
        """
        PIN change: the old client key must pass the key-check, the new one
        derives the new DEK from the same salt.

        The wrapped DEK (if any) still holds the old DEK afterwards, so it is
        cleared and the user has to generate a new recovery key.
        """
        old_dek = self.encryption.get_user_dek(user_id, old_client_key)
        record = self.encryption.repository.get(user_id)
        new_dek = self.encryption.derive_user_dek(record, new_client_key)

        result = self.re_encrypt_all_user_data(user_id, old_dek, new_dek)
        if record.wrapped_dek:
            record.wrapped_dek = None
            logger.warning("Recovery key invalidated by re-key for user_id=%s", user_id)
        self.db.flush()
        return result

    def re_encrypt_all_user_data(self, user_id: str, old_dek: bytes, new_dek: bytes) -> BatchResult:
        """
        Decrypt every amount with old_dek (strict: DecryptionFailed aborts)
        and store it encrypted with new_dek, together with a new key-check.
        """
        pending = []
        result = BatchResult()
        for model, column in ENCRYPTED_COLUMNS:
            count = 0
            for row in user_rows(self.db, user_id, model):
                ciphertext = getattr(row, column)
                if ciphertext is None:
                    continue
                try:
                    value = decrypt_amount(old_dek, ciphertext)
                except DecryptionFailed:
                    logger.error(
                        "Re-key aborted: cannot decrypt %s.%s id=%s user_id=%s (len=%d)",
                        model.__tablename__, column, row.id, user_id, len(ciphertext),
                    )
                    raise
                pending.append((row, column, encrypt_amount(new_dek, value)))
                count += 1
            result.counts[model.__tablename__] = count

        for row, column, envelope in pending:
            setattr(row, column, envelope)

        key_record = self.db.get(UserEncryptionKey, user_id)
        if key_record is not None:
            key_record.key_check = generate_key_check(new_dek)
        self.db.flush()

        logger.info(
            "All user data re-encrypted for user_id=%s: %s",
            user_id, ", ".join(f"{table}={n}" for table, n in result.counts.items()),
        )
        return result

    def encrypt_plaintext_amounts(self, user_id: str, dek: bytes) -> BatchResult:
        """
        Backfill: encrypt amounts still stored as plain decimal strings.

        Already-encrypted values do not match the plain decimal pattern, so
        running this twice is a no-op.
        """
        pending = []
        result = BatchResult()
        for model, column in ENCRYPTED_COLUMNS:
            count = 0
            for row in user_rows(self.db, user_id, model):
                value = getattr(row, column)
                if not is_plain_decimal(value):
                    continue
                pending.append((row, column, encrypt_amount(dek, value)))
                count += 1
            result.counts[model.__tablename__] = count

        for row, column, envelope in pending:
            setattr(row, column, envelope)
        self.db.flush()

        if result.total:
            logger.info("Backfill encrypted %d value(s) for user_id=%s", result.total, user_id)
        else:
            logger.debug("No plaintext amounts to backfill for user_id=%s", user_id)
        return result
