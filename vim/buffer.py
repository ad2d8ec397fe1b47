# vim/buffer.py
from __future__ import annotations
from typing import List

LINE_BREAKS = ("\n", "\r")


class InputBuffer:
    """Single-line text buffer with a cursor.

    The cursor sits *between* characters: 0 is before the first one and
    ``len(buffer)`` is after the last one. Every operation keeps
    ``0 <= cursor <= len(buffer)``.
    """

    def __init__(self, text: str = "", masked: bool = False) -> None:
        self._chars: List[str] = []
        self.cursor = 0
        self.masked = masked
        if text:
            self.set(text)

    def __len__(self) -> int:
        return len(self._chars)

    def __repr__(self) -> str:
        shown = "*" * len(self._chars) if self.masked else self.text
        return f"InputBuffer({shown!r}, cursor={self.cursor})"

    @property
    def text(self) -> str:
        return "".join(self._chars)

    @property
    def is_empty(self) -> bool:
        return not self._chars

    def chars(self) -> List[str]:
        """Return a copy of the characters, for building a Secret."""
        return list(self._chars)

    def display(self, mask_char: str = "•") -> str:
        if self.masked:
            return mask_char * len(self._chars)
        return self.text

    # -- Insertion ---------------------------------------------------------

    def insert(self, ch: str) -> None:
        """Insert before the cursor; the cursor moves past the new character."""
        if not ch or ch in LINE_BREAKS:
            return
        self._chars.insert(self.cursor, ch)
        self.cursor += 1

    def insert_after(self, ch: str) -> None:
        """Insert at the cursor without moving it."""
        if not ch or ch in LINE_BREAKS:
            return
        self._chars.insert(self.cursor, ch)

    def set(self, text: str) -> None:
        self.wipe()
        for ch in text:
            if ch not in LINE_BREAKS:
                self._chars.append(ch)
        self.cursor = len(self._chars)

    # -- Deletion ----------------------------------------------------------

    def delete_at_cursor(self) -> bool:
        if self.cursor >= len(self._chars):
            return False
        del self._chars[self.cursor]
        return True

    def delete_back(self) -> bool:
        if self.cursor == 0:
            return False
        self.cursor -= 1
        del self._chars[self.cursor]
        return True

    def delete_word_back(self) -> None:
        """Delete the non-space run before the cursor, then the spaces before it."""
        start = self.cursor
        while start > 0 and not self._chars[start - 1].isspace():
            start -= 1
        while start > 0 and self._chars[start - 1].isspace():
            start -= 1
        del self._chars[start:self.cursor]
        self.cursor = start

    def clear(self) -> None:
        self._chars.clear()
        self.cursor = 0

    def wipe(self) -> None:
        """Overwrite every character before dropping them."""
        for i in range(len(self._chars)):
            self._chars[i] = "\0"
        self.clear()

    # -- Cursor ------------------------------------------------------------

    def move_left(self) -> None:
        if self.cursor > 0:
            self.cursor -= 1

    def move_right(self) -> None:
        if self.cursor < len(self._chars):
            self.cursor += 1

    def move_start(self) -> None:
        self.cursor = 0

    def move_end(self) -> None:
        self.cursor = len(self._chars)

    def set_cursor(self, position: int) -> None:
        self.cursor = max(0, min(position, len(self._chars)))
