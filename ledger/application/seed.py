"""
Seed bootstrap: encrypt the plaintext amounts of the local test user.

Seed data is inserted as plain decimal strings; this derives the DEK of the
test user from a fixed PIN and salt, stores the key record and encrypts
everything still in plaintext. Running it again changes nothing.
"""
import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from ledger.application.encryption import EncryptionService
from ledger.application.rekey import BatchResult, EncryptionRekeyService
from ledger.infrastructure.crypto.amount_cipher import generate_key_check
from ledger.infrastructure.crypto.key_derivation import derive_client_key
from ledger.infrastructure.crypto.secrets import SecretBytes

logger = logging.getLogger(__name__)

SEED_USER_ID = "11111111-1111-1111-8111-111111111111"
SEED_PIN = "1234"
SEED_SALT_HEX = "deadbeefcafebabe1234567890abcdef"


@dataclass
class SeedResult:
    user_id: str
    key_record_created: bool
    encrypted: BatchResult


def encrypt_seed_data(
    db: Session,
    user_id: str = SEED_USER_ID,
    pin: str = SEED_PIN,
    salt_hex: str = SEED_SALT_HEX,
    encryption: EncryptionService | None = None,
) -> SeedResult:
    """Run inside session_scope(); nothing is committed here."""
    encryption = encryption or EncryptionService(db)
    iterations = encryption.kdf_iterations

    created = encryption.repository.get(user_id) is None
    record = encryption.repository.upsert(user_id, salt_hex, iterations)

    client_key = derive_client_key(pin, bytes.fromhex(record.salt), record.kdf_iterations)
    with SecretBytes(encryption.derive_user_dek(record, client_key)) as dek:
        if not record.key_check:
            encryption.repository.update_key_check(user_id, generate_key_check(dek.view))
        result = EncryptionRekeyService(db, encryption).encrypt_plaintext_amounts(user_id, bytes(dek.view))

    logger.info("Seed encryption done for user_id=%s (%d value(s))", user_id, result.total)
    return SeedResult(user_id=user_id, key_record_created=created, encrypted=result)
