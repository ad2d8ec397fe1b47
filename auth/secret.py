# auth/secret.py
from __future__ import annotations
from typing import Optional

from vim.buffer import InputBuffer


class Secret:
    """A password held in a mutable byte array that can be zeroed.

    Use it as a context manager around the single call that needs the
    plaintext; the bytes are overwritten with zeros when the block exits,
    whether it returns or raises. ``repr`` never shows the content.
    """

    __slots__ = ("_data",)

    def __init__(self, data: bytes = b"") -> None:
        self._data = bytearray(data)

    @classmethod
    def from_buffer(cls, buffer: InputBuffer) -> "Secret":
        """Move the buffer's characters into a new Secret and wipe the buffer."""
        secret = cls()
        for ch in buffer.chars():
            secret._data.extend(ch.encode("utf-8"))
        buffer.wipe()
        return secret

    def __enter__(self) -> "Secret":
        return self

    def __exit__(self, *exc) -> None:
        self.wipe()

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"Secret(<{len(self._data)} bytes>)"

    __str__ = __repr__

    def reveal(self) -> str:
        return self._data.decode("utf-8")

    def wipe(self) -> None:
        for i in range(len(self._data)):
            self._data[i] = 0

    @property
    def is_wiped(self) -> bool:
        return all(b == 0 for b in self._data)


def wipe(secret: Optional[Secret]) -> None:
    if secret is not None:
        secret.wipe()
