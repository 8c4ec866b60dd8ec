"""
Tests for bulk re-encryption (PIN change), plaintext backfill and seed bootstrap
"""
import pytest
from datetime import date
from decimal import Decimal

from ledger.application.encryption import EncryptionService
from ledger.application.rekey import EncryptionRekeyService
from ledger.application.seed import SEED_PIN, SEED_SALT_HEX, SEED_USER_ID, encrypt_seed_data
from ledger.errors import DecryptionFailed, IncorrectPin
from ledger.infrastructure.crypto.amount_cipher import decrypt_amount, encrypt_amount, verify_key
from ledger.infrastructure.crypto.key_derivation import derive_client_key
from ledger.infrastructure.db.models import BudgetLine, BudgetTemplate, MonthlyBudget, TemplateLine, Transaction


def _add_budget(db, user_id, dek=None, amounts=("5000", "1200", "85.4", "3714.6")):
    """One budget with an income line, an expense line, a transaction and an ending balance"""
    enc = (lambda v: encrypt_amount(dek, v)) if dek else (lambda v: v)
    income, rent, tx_amount, ending = amounts

    budget = MonthlyBudget(user_id=user_id, year=2025, month=3, ending_balance=enc(ending))
    db.add(budget)
    db.flush()
    salary = BudgetLine(budget_id=budget.id, name="Salary", kind="income", amount=enc(income))
    rent_line = BudgetLine(budget_id=budget.id, name="Rent", kind="expense", amount=enc(rent))
    db.add_all([salary, rent_line])
    db.flush()
    tx = Transaction(
        budget_id=budget.id, budget_line_id=rent_line.id, name="Groceries", kind="expense",
        amount=enc(tx_amount), transaction_date=date(2025, 3, 5),
    )
    db.add(tx)
    db.flush()
    return budget, [salary, rent_line], tx


class TestRekeyUserData:
    def test_pin_change_re_encrypts_everything(self, db_session, encryption, user, client_key, other_client_key, dek):
        budget, lines, tx = _add_budget(db_session, user.id, dek)

        result = EncryptionRekeyService(db_session, encryption).rekey_user_data(user.id, client_key, other_client_key)

        assert result.counts == {"budget_lines": 2, "transactions": 1, "monthly_budgets": 1, "template_lines": 0}
        new_dek = encryption.get_user_dek(user.id, other_client_key)
        assert [decrypt_amount(new_dek, l.amount) for l in lines] == [Decimal("5000"), Decimal("1200")]
        assert decrypt_amount(new_dek, tx.amount) == Decimal("85.4")
        assert decrypt_amount(new_dek, budget.ending_balance) == Decimal("3714.6")
        assert verify_key(new_dek, encryption.repository.get(user.id).key_check)

    def test_old_pin_no_longer_accepted(self, db_session, encryption, user, client_key, other_client_key, dek):
        _add_budget(db_session, user.id, dek)
        EncryptionRekeyService(db_session, encryption).rekey_user_data(user.id, client_key, other_client_key)

        with pytest.raises(IncorrectPin):
            encryption.ensure_user_dek(user.id, client_key)

    def test_wrong_current_pin_changes_nothing(self, db_session, encryption, user, client_key, other_client_key, dek):
        _, lines, _ = _add_budget(db_session, user.id, dek)
        before = [l.amount for l in lines]

        with pytest.raises(IncorrectPin):
            EncryptionRekeyService(db_session, encryption).rekey_user_data(user.id, other_client_key, client_key)
        assert [l.amount for l in lines] == before

    def test_template_amounts_follow_the_new_pin(self, db_session, encryption, user, client_key, other_client_key, dek):
        template = BudgetTemplate(user_id=user.id, name="Standard month")
        db_session.add(template)
        db_session.flush()
        line = TemplateLine(template_id=template.id, name="Rent", kind="expense", amount=encrypt_amount(dek, "1800"))
        db_session.add(line)
        db_session.flush()

        result = EncryptionRekeyService(db_session, encryption).rekey_user_data(user.id, client_key, other_client_key)

        assert result.counts["template_lines"] == 1
        new_dek = encryption.get_user_dek(user.id, other_client_key)
        assert decrypt_amount(new_dek, line.amount) == Decimal("1800")

    def test_pin_change_invalidates_recovery_key(self, db_session, encryption, user, client_key, other_client_key, dek):
        encryption.create_recovery_key(user.id, client_key)

        EncryptionRekeyService(db_session, encryption).rekey_user_data(user.id, client_key, other_client_key)

        assert not encryption.repository.has_recovery_key(user.id)


class TestReEncryptAll:
    def test_corrupted_row_aborts_before_any_write(self, db_session, encryption, user, dek):
        _, lines, tx = _add_budget(db_session, user.id, dek)
        tx.amount = "corrupted"
        db_session.flush()
        before = [l.amount for l in lines]
        new_dek = bytes(32)

        with pytest.raises(DecryptionFailed):
            EncryptionRekeyService(db_session, encryption).re_encrypt_all_user_data(user.id, dek, new_dek)

        assert [l.amount for l in lines] == before

    def test_null_amounts_are_left_alone(self, db_session, encryption, user, dek):
        budget = MonthlyBudget(user_id=user.id, year=2025, month=4)
        db_session.add(budget)
        db_session.flush()

        result = EncryptionRekeyService(db_session, encryption).re_encrypt_all_user_data(user.id, dek, bytes(32))

        assert result.total == 0
        assert budget.ending_balance is None

    def test_other_users_untouched(self, db_session, encryption, user, dek):
        _, _, foreign_tx = _add_budget(db_session, "someone-else", dek)
        before = foreign_tx.amount

        EncryptionRekeyService(db_session, encryption).re_encrypt_all_user_data(user.id, dek, bytes(32))

        assert foreign_tx.amount == before


class TestPlaintextBackfill:
    def test_encrypts_plain_values_once(self, db_session, encryption, user, dek):
        _, lines, tx = _add_budget(db_session, user.id)
        service = EncryptionRekeyService(db_session, encryption)

        first = service.encrypt_plaintext_amounts(user.id, dek)
        encrypted = [l.amount for l in lines]
        second = service.encrypt_plaintext_amounts(user.id, dek)

        assert first.total == 4
        assert second.total == 0
        assert [l.amount for l in lines] == encrypted
        assert decrypt_amount(dek, tx.amount) == Decimal("85.4")


class TestSeedBootstrap:
    def test_seed_encrypts_with_fixed_pin_and_salt(self, db_session, master_key):
        encryption = EncryptionService(db_session, master_key=master_key, kdf_iterations=1_000)
        _add_budget(db_session, SEED_USER_ID)

        result = encrypt_seed_data(db_session, encryption=encryption)

        assert result.key_record_created
        assert result.encrypted.total == 4
        record = encryption.repository.get(SEED_USER_ID)
        assert record.salt == SEED_SALT_HEX
        client_key = derive_client_key(SEED_PIN, bytes.fromhex(SEED_SALT_HEX), 1_000)
        dek = encryption.get_user_dek(SEED_USER_ID, client_key)
        assert verify_key(dek, record.key_check)

    def test_second_run_is_noop(self, db_session, master_key):
        encryption = EncryptionService(db_session, master_key=master_key, kdf_iterations=1_000)
        _, lines, _ = _add_budget(db_session, SEED_USER_ID)
        encrypt_seed_data(db_session, encryption=encryption)
        after_first = [l.amount for l in lines]

        result = encrypt_seed_data(db_session, encryption=encryption)

        assert not result.key_record_created
        assert result.encrypted.total == 0
        assert [l.amount for l in lines] == after_first
