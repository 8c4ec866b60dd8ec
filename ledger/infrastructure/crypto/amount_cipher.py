"""
Authenticated encryption of single monetary amounts.

Envelope (base64 for storage/transport):

    IV (12 bytes) ‖ AUTH_TAG (16 bytes) ‖ CIPHERTEXT (N bytes)

AES-256-GCM, fresh random IV per call. The plaintext is the canonical decimal
string of the amount (see ledger.utils.money).

Note: `cryptography`'s AESGCM returns CIPHERTEXT ‖ TAG; the envelope stores
the tag first, so it is moved around on the way in and out.
"""
import base64
import binascii
import os
from decimal import Decimal
from typing import Iterable

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ledger.errors import DecryptionFailed
from ledger.infrastructure.crypto.key_derivation import KEY_LENGTH
from ledger.utils.money import parse_canonical, to_canonical_string

IV_LENGTH = 12
AUTH_TAG_LENGTH = 16
HEADER_LENGTH = IV_LENGTH + AUTH_TAG_LENGTH

KEY_CHECK_VALUE = 0


def seal(key: bytes, plaintext: bytes) -> str:
    """Encrypt raw bytes into a base64 IV ‖ TAG ‖ CIPHERTEXT envelope."""
    iv = os.urandom(IV_LENGTH)
    sealed = AESGCM(bytes(key)).encrypt(iv, plaintext, None)
    ciphertext, tag = sealed[:-AUTH_TAG_LENGTH], sealed[-AUTH_TAG_LENGTH:]
    return base64.b64encode(iv + tag + ciphertext).decode("ascii")


def open_envelope(key: bytes, envelope: str) -> bytes:
    """
    Decrypt a base64 envelope back to raw bytes.

    Raises:
        DecryptionFailed: invalid base64, short envelope, bad key, bad tag
    """
    if not isinstance(envelope, str):
        raise DecryptionFailed("Envelope must be a base64 string")
    if not envelope:
        raise DecryptionFailed("Envelope is empty")
    try:
        payload = base64.b64decode(envelope, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecryptionFailed("Envelope is not valid base64") from exc

    if len(payload) <= HEADER_LENGTH:
        raise DecryptionFailed(f"Envelope too short ({len(payload)} bytes)")
    if len(key) != KEY_LENGTH:
        raise DecryptionFailed("Key must be 32 bytes")

    iv = payload[:IV_LENGTH]
    tag = payload[IV_LENGTH:HEADER_LENGTH]
    ciphertext = payload[HEADER_LENGTH:]
    try:
        return AESGCM(bytes(key)).decrypt(iv, ciphertext + tag, None)
    except InvalidTag as exc:
        raise DecryptionFailed("Authentication tag verification failed") from exc


def encrypt_amount(dek: bytes, amount) -> str:
    """
    Encrypt one amount.

    Raises:
        ValueError: amount is not a finite number
    """
    plaintext = to_canonical_string(amount).encode("utf-8")
    return seal(dek, plaintext)


def decrypt_amount(dek: bytes, envelope: str) -> Decimal:
    """
    Decrypt one amount.

    Never returns a default value: every failure raises DecryptionFailed and
    callers must propagate it.
    """
    plaintext = open_envelope(dek, envelope)
    try:
        return parse_canonical(plaintext.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise DecryptionFailed("Decrypted amount is not a valid number") from exc


def encrypt_amounts(dek: bytes, amounts: Iterable) -> list[str]:
    return [encrypt_amount(dek, amount) for amount in amounts]


def decrypt_amounts(dek: bytes, envelopes: Iterable[str]) -> list[Decimal]:
    return [decrypt_amount(dek, envelope) for envelope in envelopes]


# ---------------------------------------------------------------------------
# Key-check
# ---------------------------------------------------------------------------

def generate_key_check(dek: bytes) -> str:
    """Encrypted well-known value stored next to the salt."""
    return encrypt_amount(dek, KEY_CHECK_VALUE)


def verify_key(dek: bytes, stored_key_check: str) -> bool:
    """True if `dek` opens the stored key-check. Does not raise on a wrong key."""
    try:
        decrypt_amount(dek, stored_key_check)
    except DecryptionFailed:
        return False
    return True
