# vim/editor.py
"""Modal (vi-style) key handling for single-line fields.

The behaviour of every mode is a plain dict from key token to handler, so
the whole transition table can be inspected and tested as data.
"""
from __future__ import annotations
import enum
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Type

from events import KeyInput
from vim.buffer import InputBuffer
from vim.command import Command, GREETER_VERBS, parse_command


class Mode(enum.Enum):
    NORMAL = "NORMAL"
    INSERT = "INSERT"
    COMMAND = "COMMAND"


# -- Actions ------------------------------------------------------------------

class Action:
    """High-level request emitted by the editor for the controller."""


@dataclass(frozen=True)
class Submit(Action):
    pass


@dataclass(frozen=True)
class FocusNext(Action):
    pass


@dataclass(frozen=True)
class FocusPrev(Action):
    pass


@dataclass(frozen=True)
class ExecuteCommand(Action):
    command: Command


# -- Fields -------------------------------------------------------------------

@dataclass
class Field:
    name: str
    label: str = ""
    buffer: InputBuffer = field(default_factory=InputBuffer)
    filterable: bool = False

    @property
    def masked(self) -> bool:
        return self.buffer.masked


@dataclass
class FocusState:
    fields: List[Field] = field(default_factory=list)
    index: int = 0

    @property
    def current(self) -> Optional[Field]:
        if not self.fields:
            return None
        self.index = max(0, min(self.index, len(self.fields) - 1))
        return self.fields[self.index]

    def get(self, name: str) -> Field:
        for f in self.fields:
            if f.name == name:
                return f
        raise KeyError(name)

    def focus(self, name: str) -> Field:
        for i, f in enumerate(self.fields):
            if f.name == name:
                self.index = i
                return f
        raise KeyError(name)

    def next(self) -> None:
        if self.fields:
            self.index = (self.index + 1) % len(self.fields)

    def prev(self) -> None:
        if self.fields:
            self.index = (self.index - 1) % len(self.fields)


# -- Transition handlers -------------------------------------------------------

Handler = Callable[["ModalEditor", InputBuffer], Optional[Action]]


def _enter_insert(ed: "ModalEditor", buf: InputBuffer) -> None:
    ed.mode = Mode.INSERT


def _append(ed: "ModalEditor", buf: InputBuffer) -> None:
    buf.move_right()
    ed.mode = Mode.INSERT


def _insert_at_start(ed: "ModalEditor", buf: InputBuffer) -> None:
    buf.move_start()
    ed.mode = Mode.INSERT


def _append_at_end(ed: "ModalEditor", buf: InputBuffer) -> None:
    buf.move_end()
    ed.mode = Mode.INSERT


def _enter_command(ed: "ModalEditor", buf: InputBuffer) -> None:
    ed.command_buffer.clear()
    ed.mode = Mode.COMMAND


def _operator_d(ed: "ModalEditor", buf: InputBuffer) -> None:
    if ed.previous_operator == "d":
        buf.clear()
    else:
        ed.pending_operator = "d"


def _to_normal(ed: "ModalEditor", buf: InputBuffer) -> None:
    ed.mode = Mode.NORMAL


def _submit(ed: "ModalEditor", buf: InputBuffer) -> Action:
    ed.mode = Mode.NORMAL
    return Submit()


def _abort_command(ed: "ModalEditor", buf: InputBuffer) -> None:
    ed.command_buffer.clear()
    ed.mode = Mode.NORMAL


def _run_command(ed: "ModalEditor", buf: InputBuffer) -> Action:
    command = parse_command(ed.command_buffer.text, ed.verbs)
    ed.command_buffer.clear()
    ed.mode = Mode.NORMAL
    return ExecuteCommand(command)


def _command_backspace(ed: "ModalEditor", buf: InputBuffer) -> None:
    if buf.is_empty:
        ed.mode = Mode.NORMAL
    else:
        buf.delete_back()


def _edit(method: str) -> Handler:
    def handler(ed: "ModalEditor", buf: InputBuffer) -> None:
        getattr(buf, method)()
    return handler


def _emit(action: Type[Action]) -> Handler:
    def handler(ed: "ModalEditor", buf: InputBuffer) -> Action:
        return action()
    return handler


EDITING_KEYS: Dict[str, Handler] = {
    "ctrl+u": _edit("clear"),
    "ctrl+w": _edit("delete_word_back"),
    "ctrl+a": _edit("move_start"),
    "ctrl+e": _edit("move_end"),
    "backspace": _edit("delete_back"),
    "delete": _edit("delete_at_cursor"),
    "left": _edit("move_left"),
    "right": _edit("move_right"),
    "home": _edit("move_start"),
    "end": _edit("move_end"),
}

TRANSITIONS: Dict[Mode, Dict[str, Handler]] = {
    Mode.NORMAL: {
        "i": _enter_insert,
        "a": _append,
        "I": _insert_at_start,
        "A": _append_at_end,
        ":": _enter_command,
        "h": _edit("move_left"),
        "left": _edit("move_left"),
        "l": _edit("move_right"),
        "right": _edit("move_right"),
        "0": _edit("move_start"),
        "home": _edit("move_start"),
        "$": _edit("move_end"),
        "end": _edit("move_end"),
        "j": _emit(FocusNext),
        "down": _emit(FocusNext),
        "tab": _emit(FocusNext),
        "k": _emit(FocusPrev),
        "up": _emit(FocusPrev),
        "shift+tab": _emit(FocusPrev),
        "x": _edit("delete_at_cursor"),
        "delete": _edit("delete_at_cursor"),
        "d": _operator_d,
        "enter": _submit,
    },
    Mode.INSERT: {
        **EDITING_KEYS,
        "escape": _to_normal,
        "enter": _submit,
        "tab": _emit(FocusNext),
        "shift+tab": _emit(FocusPrev),
    },
    Mode.COMMAND: {
        **EDITING_KEYS,
        "escape": _abort_command,
        "enter": _run_command,
        "backspace": _command_backspace,
    },
}


class ModalEditor:
    """Translates raw keys into buffer edits and :class:`Action` values.

    ``handle`` never raises for unknown keys: anything without a rule in the
    current mode is ignored.
    """

    def __init__(self, verbs: Dict[str, Type[Command]] = GREETER_VERBS,
                 mode: Mode = Mode.NORMAL) -> None:
        self.verbs = verbs
        self.mode = mode
        self.pending_operator: Optional[str] = None
        self.previous_operator: Optional[str] = None
        self.command_buffer = InputBuffer()

    def reset(self, mode: Mode = Mode.NORMAL) -> None:
        self.mode = mode
        self.pending_operator = None
        self.command_buffer.clear()

    def focus(self, field: Optional[Field]) -> None:
        """Called whenever ``field`` gains focus."""
        self.pending_operator = None
        if field is not None and field.filterable and self.mode is Mode.NORMAL:
            self.mode = Mode.INSERT

    def handle(self, key: KeyInput, field: Optional[Field]) -> Optional[Action]:
        self.previous_operator, self.pending_operator = self.pending_operator, None

        if self.mode is Mode.COMMAND:
            buf = self.command_buffer
        else:
            buf = field.buffer if field is not None else InputBuffer()

        handler = TRANSITIONS[self.mode].get(key.token)
        if handler is not None:
            return handler(self, buf)

        if key.printable:
            if self.mode is Mode.NORMAL:
                if field is None or not field.filterable:
                    return None
                self.mode = Mode.INSERT
            buf.insert(key.char)
        return None
