# picker.py
"""Filterable list selection shared by the greeter and the onboard wizard."""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from events import KeyInput
from vim.editor import Action, ExecuteCommand, Field, FocusNext, FocusPrev, ModalEditor, Mode, Submit

Item = Tuple[str, str]   # (id, label)

DOWN_KEYS = ("down", "ctrl+n")
UP_KEYS = ("up", "ctrl+p")


@dataclass(frozen=True)
class Selected(Action):
    id: str


@dataclass(frozen=True)
class Closed(Action):
    pass


@dataclass
class Picker:
    items: List[Item]
    field: Field
    index: int = 0
    closable: bool = True
    loading: bool = False

    @classmethod
    def create(cls, name: str, label: str, items: Sequence[Item],
               selected: Optional[str] = None, closable: bool = True) -> "Picker":
        picker = cls(list(items), Field(name, label, filterable=True), closable=closable)
        if selected is not None:
            picker.select_id(selected)
        return picker

    @classmethod
    def placeholder(cls, name: str, label: str, closable: bool = True) -> "Picker":
        """Empty picker shown while its items are fetched in the background."""
        return cls([], Field(name, label, filterable=True), closable=closable, loading=True)

    @property
    def query(self) -> str:
        return self.field.buffer.text

    @property
    def matches(self) -> List[Item]:
        q = self.query.lower()
        if not q:
            return self.items
        return [(i, l) for i, l in self.items if q in l.lower() or q in i.lower()]

    @property
    def current(self) -> Optional[Item]:
        matches = self.matches
        if not matches:
            return None
        self.index = max(0, min(self.index, len(matches) - 1))
        return matches[self.index]

    def move(self, delta: int) -> None:
        count = len(self.matches)
        if count:
            self.index = max(0, min(self.index + delta, count - 1))

    def select_id(self, item_id: str) -> bool:
        self.field.buffer.clear()
        for i, (candidate, _) in enumerate(self.items):
            if candidate == item_id:
                self.index = i
                return True
        return False

    def reset_filter(self) -> None:
        self.field.buffer.clear()

    def handle_key(self, editor: ModalEditor, key: KeyInput) -> Optional[Action]:
        """Navigate, filter or pick; returns Selected, Closed or ExecuteCommand."""
        token = key.token
        normal = editor.mode is Mode.NORMAL
        if editor.mode is not Mode.COMMAND:
            if token in DOWN_KEYS or (normal and token == "j"):
                self.move(1)
                return None
            if token in UP_KEYS or (normal and token == "k"):
                self.move(-1)
                return None
            if normal and token == "escape" and self.closable:
                self.reset_filter()
                return Closed()

        before = self.query
        action = editor.handle(key, self.field)
        if self.query != before:
            self.index = 0
        if isinstance(action, Submit):
            item = self.current
            if item is None:
                return None
            return Selected(item[0])
        if isinstance(action, FocusNext):
            self.move(1)
        elif isinstance(action, FocusPrev):
            self.move(-1)
        elif isinstance(action, ExecuteCommand):
            return action
        return None
