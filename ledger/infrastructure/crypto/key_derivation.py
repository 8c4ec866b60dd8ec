"""
Key derivation: PIN -> client key -> data encryption key (DEK).

    client_key = PBKDF2-HMAC-SHA256(pin, salt, iterations, 32)      (client side)
    dek        = HKDF-SHA256(client_key ‖ master_key, salt,
                             info="pulpe-dek-" + user_id, 32)      (server side)

The master key never leaves the server process; the client key is only held
for the duration of a request. Neither function can tell whether the PIN is
correct: a wrong PIN just yields a different key, rejected later by the
key-check.
"""
import os

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ledger.errors import KeyDerivationFailed
from ledger.infrastructure.crypto.secrets import SecretBytes

KEY_LENGTH = 32
SALT_LENGTH = 16
KDF_ITERATIONS = 600_000
DEK_INFO_PREFIX = "pulpe-dek-"


def generate_salt() -> bytes:
    """Fresh random per-user salt."""
    return os.urandom(SALT_LENGTH)


def dek_info(user_id: str) -> bytes:
    """HKDF info parameter binding a DEK to one user."""
    return f"{DEK_INFO_PREFIX}{user_id}".encode("ascii")


def derive_client_key(
    pin: str,
    salt: bytes,
    iterations: int = KDF_ITERATIONS,
    key_length: int = KEY_LENGTH,
) -> bytes:
    """
    Derive the client key from a PIN.

    Deterministic for identical inputs. Slow on purpose (600k iterations by
    default): call it off any latency-sensitive thread.
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=key_length,
        salt=bytes(salt),
        iterations=iterations,
    )
    return kdf.derive(_pin_bytes(pin))


def _pin_bytes(pin: str) -> bytes:
    # Lone surrogates cannot be UTF-8 encoded; they become U+FFFD like a browser TextEncoder does
    return pin.encode("utf-16", "surrogatepass").decode("utf-16", "replace").encode("utf-8")


def derive_dek(
    client_key: bytes | bytearray | memoryview,
    master_key: bytes | bytearray | memoryview,
    salt: bytes,
    user_id: str,
    key_length: int = KEY_LENGTH,
) -> bytes:
    """
    Combine client key and master key into the user's DEK.

    The concatenated input key material is wiped before returning, on every
    exit path. The result is never persisted or cached across requests.

    Raises:
        KeyDerivationFailed: master key or client key missing / wrong size
    """
    if not master_key or len(master_key) != KEY_LENGTH:
        raise KeyDerivationFailed("Master key is missing or not 32 bytes")
    if not client_key or len(client_key) != KEY_LENGTH:
        raise KeyDerivationFailed("Client key is missing or not 32 bytes")

    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=key_length,
        salt=bytes(salt),
        info=dek_info(user_id),
    )
    with SecretBytes.concat((client_key, master_key)) as ikm:
        return hkdf.derive(ikm.view)
