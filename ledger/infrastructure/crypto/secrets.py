"""
Wipe-on-exit buffers for key material.

Python `bytes` are immutable and cannot be zeroed, so key material that we own
is held in a `bytearray` and overwritten when its scope ends:

    with SecretBytes(client_key) as ck:
        ...  # ck.view is a read-only memoryview usable by `cryptography`
    # buffer is zeroed here, also on exceptions

Bytes objects handed in by callers (or returned by `cryptography`) are copied
and cannot be wiped themselves; the wrapper only shortens the lifetime of the
copies we create.
"""
from typing import Iterable


class SecretBytes:
    """Owned, zeroable copy of secret bytes."""

    __slots__ = ("_buf",)

    def __init__(self, data: bytes | bytearray | memoryview = b""):
        self._buf = bytearray(data)

    @classmethod
    def concat(cls, parts: Iterable[bytes | bytearray | memoryview]) -> "SecretBytes":
        """Build one buffer from several parts without an intermediate `bytes` join."""
        secret = cls()
        for part in parts:
            secret._buf.extend(part)
        return secret

    @property
    def view(self) -> memoryview:
        return memoryview(self._buf).toreadonly()

    def wipe(self) -> None:
        for i in range(len(self._buf)):
            self._buf[i] = 0

    @property
    def is_wiped(self) -> bool:
        return not any(self._buf)

    def __len__(self) -> int:
        return len(self._buf)

    def __enter__(self) -> "SecretBytes":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.wipe()

    def __repr__(self) -> str:
        return f"SecretBytes(<{len(self._buf)} bytes>)"
