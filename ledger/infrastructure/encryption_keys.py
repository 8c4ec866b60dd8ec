"""
Encryption key record repository

One row per user: salt, KDF iteration count, key-check and (optionally) the
DEK wrapped under a recovery key.
"""
from typing import Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger.infrastructure.db.models import UserEncryptionKey


class EncryptionKeyRepository:
    """
    Repository for user_encryption_keys
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: str) -> Optional[UserEncryptionKey]:
        return self.db.get(UserEncryptionKey, user_id)

    def upsert(
        self,
        user_id: str,
        salt: str,
        kdf_iterations: int,
        key_check: str | None = None,
    ) -> UserEncryptionKey:
        """
        Insert the record unless one exists for user_id (conflict on user_id).

        On conflict the existing row wins and is returned unchanged, so a
        concurrent registration can never replace a salt that already
        encrypts data. Re-registration is idempotent.

        Args:
            user_id: owner
            salt: hex-encoded salt
            kdf_iterations: PBKDF2 iteration count used by the client
            key_check: encrypted key-check value (optional)

        Returns:
            The stored (winning) record
        """
        existing = self.get(user_id)
        if existing is not None:
            return existing

        record = UserEncryptionKey(
            user_id=user_id,
            salt=salt,
            kdf_iterations=kdf_iterations,
            key_check=key_check,
        )
        try:
            with self.db.begin_nested():
                self.db.add(record)
                self.db.flush()
        except IntegrityError:
            # Lost the race: another request inserted first
            winner = self.get(user_id)
            if winner is None:
                raise
            return winner
        return record

    def update_key_check(self, user_id: str, key_check: str) -> None:
        record = self._require(user_id)
        record.key_check = key_check
        self.db.flush()

    def update_wrapped_dek(self, user_id: str, wrapped_dek: str) -> None:
        record = self._require(user_id)
        record.wrapped_dek = wrapped_dek
        self.db.flush()

    def has_recovery_key(self, user_id: str) -> bool:
        record = self.get(user_id)
        return bool(record and record.wrapped_dek)

    def has_vault_code(self, user_id: str) -> bool:
        """A vault code (PIN) is configured once a key-check has been stored."""
        record = self.get(user_id)
        return bool(record and record.key_check)

    def _require(self, user_id: str) -> UserEncryptionKey:
        record = self.get(user_id)
        if record is None:
            raise LookupError(f"No encryption key record for user {user_id}")
        return record
