"""
Recovery key: a random 32-byte key shown once to the user, used to wrap the
DEK so data survives a forgotten PIN.

Displayed as RFC 4648 base32 without padding, grouped by 4 with dashes:
"ABCD-EFGH-...".
"""
import base64
import binascii
import os
from dataclasses import dataclass

from ledger.errors import DecryptionFailed
from ledger.infrastructure.crypto.amount_cipher import open_envelope, seal
from ledger.infrastructure.crypto.key_derivation import KEY_LENGTH

GROUP_SIZE = 4


@dataclass(frozen=True)
class RecoveryKey:
    raw: bytes
    formatted: str

    def __repr__(self) -> str:
        return "RecoveryKey(<redacted>)"


def encode_base32(data: bytes) -> str:
    return base64.b32encode(data).decode("ascii").rstrip("=")


def decode_base32(encoded: str) -> bytes:
    """
    Raises:
        ValueError: characters outside the base32 alphabet
    """
    text = encoded.upper()
    padding = "=" * (-len(text) % 8)
    try:
        return base64.b32decode(text + padding)
    except binascii.Error as exc:
        raise ValueError("Invalid base32 recovery key") from exc


def format_recovery_key(base32: str) -> str:
    return "-".join(base32[i:i + GROUP_SIZE] for i in range(0, len(base32), GROUP_SIZE))


def generate_recovery_key() -> RecoveryKey:
    raw = os.urandom(KEY_LENGTH)
    return RecoveryKey(raw=raw, formatted=format_recovery_key(encode_base32(raw)))


def parse_recovery_key(formatted: str) -> bytes:
    """
    Turn the user-typed key back into raw bytes (dashes and spaces ignored).

    Raises:
        ValueError: wrong alphabet or wrong length
    """
    compact = formatted.replace("-", "").replace(" ", "").strip()
    raw = decode_base32(compact)
    if len(raw) != KEY_LENGTH:
        raise ValueError("Invalid recovery key format")
    return raw


def wrap_dek(dek: bytes, recovery_key: bytes) -> str:
    return seal(recovery_key, bytes(dek))


def unwrap_dek(wrapped_dek: str, recovery_key: bytes) -> bytes:
    """
    Raises:
        DecryptionFailed: wrong recovery key, tampered envelope, wrong DEK size
    """
    dek = open_envelope(recovery_key, wrapped_dek)
    if len(dek) != KEY_LENGTH:
        raise DecryptionFailed("Unwrapped DEK has invalid length")
    return dek
