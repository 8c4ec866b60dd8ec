"""
Encryption use cases: per-user salt management, DEK derivation with key-check
gate, recovery key lifecycle.

The DEK is derived per request and never cached beyond it. A request opens a
RequestKeyScope, which derives the DEK on first use and wipes it (and the
client key copy) when the request ends.
"""
import logging
from typing import Callable

from sqlalchemy.orm import Session

from ledger.config import get_settings
from ledger.errors import (
    DecryptionFailed, IncorrectPin, InvalidRecoveryKey, KeyDerivationFailed,
    RecoveryKeyAlreadyExists, RecoveryNotConfigured,
)
from ledger.infrastructure.crypto.amount_cipher import generate_key_check, verify_key
from ledger.infrastructure.crypto.key_derivation import derive_dek, generate_salt
from ledger.infrastructure.crypto.recovery_key import (
    generate_recovery_key, parse_recovery_key, unwrap_dek, wrap_dek,
)
from ledger.infrastructure.crypto.secrets import SecretBytes
from ledger.infrastructure.db.models import UserEncryptionKey
from ledger.infrastructure.encryption_keys import EncryptionKeyRepository

logger = logging.getLogger(__name__)

# Called with (old_dek, new_dek); must re-encrypt every amount of the user
ReEncryptFn = Callable[[bytes, bytes], None]


class EncryptionService:
    """Key management for one DB session (one request)."""

    def __init__(self, db: Session, master_key: bytes | None = None, kdf_iterations: int | None = None):
        settings = get_settings()
        self.db = db
        self.repository = EncryptionKeyRepository(db)
        self._master_key = master_key if master_key is not None else settings.get_master_key()
        self.kdf_iterations = kdf_iterations or settings.KDF_ITERATIONS

    # ------------------------------------------------------------------
    # Salt / status
    # ------------------------------------------------------------------

    def ensure_user_salt(self, user_id: str) -> UserEncryptionKey:
        """Existing key record, or a new one with a fresh random salt."""
        existing = self.repository.get(user_id)
        if existing is not None:
            return existing
        logger.info("Generating encryption salt for user_id=%s", user_id)
        return self.repository.upsert(user_id, generate_salt().hex(), self.kdf_iterations)

    def get_user_salt(self, user_id: str) -> dict:
        """What the client needs to derive its key from the PIN."""
        record = self.ensure_user_salt(user_id)
        return {
            "salt": record.salt,
            "kdf_iterations": record.kdf_iterations,
            "has_recovery_key": bool(record.wrapped_dek),
        }

    def get_vault_status(self, user_id: str) -> dict:
        return {"vault_code_configured": self.repository.has_vault_code(user_id)}

    # ------------------------------------------------------------------
    # DEK
    # ------------------------------------------------------------------

    def derive_user_dek(self, record: UserEncryptionKey, client_key: bytes) -> bytes:
        return derive_dek(client_key, self._master_key, bytes.fromhex(record.salt), record.user_id)

    def ensure_user_dek(self, user_id: str, client_key: bytes) -> bytes:
        """
        Derive the user's DEK, creating the salt record on first use.

        The first DEK trusted for data also stores the key-check, so a
        different PIN is rejected before it touches any amount.

        Raises:
            IncorrectPin: a key-check exists and this DEK does not open it
        """
        record = self.ensure_user_salt(user_id)
        dek = self.derive_user_dek(record, client_key)
        self._gate(record, dek)
        return dek

    def get_user_dek(self, user_id: str, client_key: bytes) -> bytes:
        """
        Derive the DEK of a user that already has a key record.

        Raises:
            KeyDerivationFailed: no key record for this user
            IncorrectPin: key-check mismatch
        """
        record = self.repository.get(user_id)
        if record is None:
            raise KeyDerivationFailed(f"No encryption key found for user {user_id}")
        dek = self.derive_user_dek(record, client_key)
        self._gate(record, dek)
        return dek

    def verify_and_ensure_key_check(self, user_id: str, client_key: bytes) -> bool:
        """
        Validate a client key (PIN). The first successful call stores the
        key-check, so that later calls can reject wrong PINs.
        """
        record = self.ensure_user_salt(user_id)
        dek = self.derive_user_dek(record, client_key)
        if record.key_check:
            valid = verify_key(dek, record.key_check)
            if not valid:
                logger.warning("Key-check failed for user_id=%s", user_id)
            return valid

        self.repository.update_key_check(user_id, generate_key_check(dek))
        logger.info("Key-check stored for user_id=%s", user_id)
        return True

    def _gate(self, record: UserEncryptionKey, dek: bytes) -> None:
        """Reject a DEK that does not open the key-check; store one if missing."""
        if not record.key_check:
            self.repository.update_key_check(record.user_id, generate_key_check(dek))
            logger.info("Key-check stored for user_id=%s", record.user_id)
            return
        if not verify_key(dek, record.key_check):
            logger.warning("Key-check failed for user_id=%s", record.user_id)
            raise IncorrectPin()

    # ------------------------------------------------------------------
    # Recovery key
    # ------------------------------------------------------------------

    def create_recovery_key(self, user_id: str, client_key: bytes) -> str:
        """
        Raises:
            RecoveryKeyAlreadyExists: use regenerate_recovery_key instead
        """
        if self.repository.has_recovery_key(user_id):
            raise RecoveryKeyAlreadyExists("A recovery key already exists")
        return self.regenerate_recovery_key(user_id, client_key)

    def regenerate_recovery_key(self, user_id: str, client_key: bytes) -> str:
        """Wrap the current DEK under a new recovery key; returns it formatted, once."""
        dek = self.get_user_dek(user_id, client_key)
        recovery = generate_recovery_key()
        with SecretBytes(recovery.raw) as raw:
            self.repository.update_wrapped_dek(user_id, wrap_dek(dek, raw.view))
        logger.info("Recovery key generated for user_id=%s", user_id)
        return recovery.formatted

    def recover_with_key(
        self,
        user_id: str,
        recovery_key_formatted: str,
        new_client_key: bytes,
        re_encrypt_user_data: ReEncryptFn,
    ) -> None:
        """
        Replace a forgotten PIN: unwrap the old DEK with the recovery key,
        derive the new DEK from the new client key (same salt), re-encrypt
        everything, then store the new key-check and re-wrap the new DEK.

        Raises:
            RecoveryNotConfigured: user never set up a recovery key
            InvalidRecoveryKey: malformed key or key does not open the wrapped DEK
        """
        record = self.repository.get(user_id)
        if record is None or not record.wrapped_dek:
            raise RecoveryNotConfigured("No recovery key configured for this user")

        try:
            recovery_key = SecretBytes(parse_recovery_key(recovery_key_formatted))
        except ValueError as exc:
            raise InvalidRecoveryKey("Invalid recovery key format") from exc

        with recovery_key:
            try:
                old_dek = SecretBytes(unwrap_dek(record.wrapped_dek, recovery_key.view))
            except DecryptionFailed as exc:
                logger.warning("Recovery key rejected for user_id=%s", user_id)
                raise InvalidRecoveryKey("Recovery key does not match") from exc

            with old_dek, SecretBytes(self.derive_user_dek(record, new_client_key)) as new_dek:
                re_encrypt_user_data(old_dek.view, new_dek.view)
                self.repository.update_key_check(user_id, generate_key_check(new_dek.view))
                self.repository.update_wrapped_dek(user_id, wrap_dek(new_dek.view, recovery_key.view))

        logger.info("User data recovered with recovery key for user_id=%s", user_id)


class RequestKeyScope:
    """
    DEK holder for the lifetime of one request.

    Usage:
        with RequestKeyScope(service, user_id, client_key) as scope:
            encrypt_amount(scope.dek, amount)
    """

    def __init__(self, service: EncryptionService, user_id: str, client_key: bytes):
        self.service = service
        self.user_id = user_id
        self._client_key = SecretBytes(client_key)
        self._dek: SecretBytes | None = None

    @property
    def client_key(self) -> bytes:
        return bytes(self._client_key.view)

    @property
    def dek(self) -> memoryview:
        """Derived (and key-checked) on first access, then reused within the request."""
        if self._dek is None:
            self._dek = SecretBytes(self.service.ensure_user_dek(self.user_id, self._client_key.view))
        return self._dek.view

    def close(self) -> None:
        self._client_key.wipe()
        if self._dek is not None:
            self._dek.wipe()
            self._dek = None

    def __enter__(self) -> "RequestKeyScope":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
