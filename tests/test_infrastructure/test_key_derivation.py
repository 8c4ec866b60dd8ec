"""
Tests for PIN / DEK key derivation
"""
import pytest
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from ledger.errors import KeyDerivationFailed
from ledger.infrastructure.crypto.key_derivation import (
    KEY_LENGTH, SALT_LENGTH, derive_client_key, derive_dek, dek_info, generate_salt,
)
from ledger.infrastructure.crypto.secrets import SecretBytes

SALT = bytes.fromhex("deadbeefcafebabe1234567890abcdef")
CLIENT_KEY = bytes(range(32, 64))
MASTER_KEY = bytes(range(32))


class TestClientKey:
    def test_pbkdf2_sha256_known_vector(self):
        key = derive_client_key("password", b"salt", iterations=1, key_length=32)
        assert key.hex() == "120fb6cffcf8b32c43e7225256c4f837a86548c92ccc35480805987cb70be17b"

    def test_deterministic(self):
        assert derive_client_key("1234", SALT, 1000) == derive_client_key("1234", SALT, 1000)

    def test_depends_on_pin_salt_and_iterations(self):
        base = derive_client_key("1234", SALT, 1000)
        assert derive_client_key("1235", SALT, 1000) != base
        assert derive_client_key("1234", bytes(16), 1000) != base
        assert derive_client_key("1234", SALT, 1001) != base
        assert len(base) == KEY_LENGTH

    def test_lone_surrogate_replaced_not_rejected(self):
        key = derive_client_key("12\ud80034", bytes(16), 1)

        assert len(key) == KEY_LENGTH
        assert key == derive_client_key("12\ufffd34", bytes(16), 1)


class TestDek:
    def test_hkdf_over_client_and_master_key(self):
        expected = HKDF(
            algorithm=hashes.SHA256(), length=32, salt=SALT, info=b"pulpe-dek-user-1",
        ).derive(CLIENT_KEY + MASTER_KEY)

        assert derive_dek(CLIENT_KEY, MASTER_KEY, SALT, "user-1") == expected

    def test_bound_to_user(self):
        assert derive_dek(CLIENT_KEY, MASTER_KEY, SALT, "user-1") != derive_dek(CLIENT_KEY, MASTER_KEY, SALT, "user-2")

    def test_requires_both_keys(self):
        other_master = bytes(32)
        other_client = bytes(32)
        dek = derive_dek(CLIENT_KEY, MASTER_KEY, SALT, "u")
        assert derive_dek(CLIENT_KEY, other_master, SALT, "u") != dek
        assert derive_dek(other_client, MASTER_KEY, SALT, "u") != dek

    def test_accepts_memoryview_input(self):
        with SecretBytes(CLIENT_KEY) as ck:
            assert derive_dek(ck.view, MASTER_KEY, SALT, "u") == derive_dek(CLIENT_KEY, MASTER_KEY, SALT, "u")

    @pytest.mark.parametrize("master_key", [b"", bytes(16), bytes(33)])
    def test_bad_master_key(self, master_key):
        with pytest.raises(KeyDerivationFailed):
            derive_dek(CLIENT_KEY, master_key, SALT, "u")

    def test_bad_client_key(self):
        with pytest.raises(KeyDerivationFailed):
            derive_dek(bytes(31), MASTER_KEY, SALT, "u")


def test_generate_salt():
    a, b = generate_salt(), generate_salt()
    assert len(a) == SALT_LENGTH
    assert a != b


def test_dek_info():
    assert dek_info("abc") == b"pulpe-dek-abc"


def test_secret_bytes_wiped_on_exit():
    with SecretBytes(b"\x01\x02\x03") as secret:
        assert len(secret) == 3
        assert not secret.is_wiped
    assert secret.is_wiped
    assert "\\x01" not in repr(secret)


def test_secret_bytes_wiped_on_error():
    secret = SecretBytes.concat([b"\x05" * 4, bytearray(b"\x06" * 4)])
    with pytest.raises(RuntimeError):
        with secret:
            raise RuntimeError("boom")
    assert secret.is_wiped
    assert len(secret) == 8
