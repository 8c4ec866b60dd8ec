"""
Error taxonomy of the ledger core.

The core only distinguishes the kinds; the HTTP layer (ledger.main) maps them
to status codes. Nothing here is retried.
"""


class LedgerError(Exception):
    """Base class for all ledger core errors."""

    code = "ledger_error"


class KeyDerivationFailed(LedgerError):
    """Server-side configuration problem (missing or malformed master key)."""

    code = "key_derivation_failed"


class IncorrectPin(LedgerError):
    """The derived DEK does not open the stored key-check."""

    code = "incorrect_pin"

    def __init__(self, message: str = "Incorrect PIN"):
        super().__init__(message)


class DecryptionFailed(LedgerError):
    """
    An encrypted amount could not be opened: malformed envelope, failed
    authentication tag, or a plaintext that is not a canonical number.
    """

    code = "decryption_failed"


class InvalidPeriodInput(LedgerError, ValueError):
    """A budget period value (month/year) is outside its domain."""

    code = "invalid_period"


class RecoveryKeyAlreadyExists(LedgerError):
    code = "recovery_key_already_exists"


class RecoveryNotConfigured(LedgerError):
    code = "recovery_not_configured"


class InvalidRecoveryKey(LedgerError):
    """Malformed recovery key, or one that does not open the wrapped DEK."""

    code = "invalid_recovery_key"
