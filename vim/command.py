# vim/command.py
"""Command-mode grammar: ``verb [argument]``.

Parsing is purely syntactic. Whether ``:session work`` names a real session
is for the controller to decide.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Optional, Type


class Command:
    """Base class for parsed commands."""


@dataclass(frozen=True)
class Session(Command):
    name: Optional[str] = None


@dataclass(frozen=True)
class User(Command):
    name: Optional[str] = None


@dataclass(frozen=True)
class Reboot(Command):
    pass


@dataclass(frozen=True)
class Poweroff(Command):
    pass


@dataclass(frozen=True)
class Help(Command):
    pass


@dataclass(frozen=True)
class Login(Command):
    pass


@dataclass(frozen=True)
class Cancel(Command):
    pass


@dataclass(frozen=True)
class Next(Command):
    pass


@dataclass(frozen=True)
class Back(Command):
    pass


@dataclass(frozen=True)
class Skip(Command):
    pass


@dataclass(frozen=True)
class Quit(Command):
    pass


@dataclass(frozen=True)
class Unknown(Command):
    text: str


@dataclass(frozen=True)
class NoOp(Command):
    pass


# Commands built with the (optional) argument; all others ignore it.
_TAKES_ARGUMENT = (Session, User)

GREETER_VERBS: Dict[str, Type[Command]] = {
    "session": Session, "s": Session,
    "user": User, "u": User,
    "reboot": Reboot, "rb": Reboot,
    "poweroff": Poweroff, "shutdown": Poweroff, "po": Poweroff,
    "help": Help, "h": Help, "?": Help,
    "q": Login, "login": Login, "l": Login,
    "cancel": Cancel, "c": Cancel,
}

ONBOARD_VERBS: Dict[str, Type[Command]] = {
    "next": Next, "n": Next,
    "back": Back, "prev": Back, "b": Back,
    "skip": Skip, "s": Skip,
    "reboot": Reboot,
    "poweroff": Poweroff, "shutdown": Poweroff,
    "help": Help, "h": Help, "?": Help,
    "q": Quit, "quit": Quit, "cancel": Quit,
}


def parse_command(text: str, verbs: Dict[str, Type[Command]] = GREETER_VERBS) -> Command:
    """Parse ``text`` (with or without its leading ':') into a Command."""
    text = text.strip()
    if text.startswith(":"):
        text = text[1:].lstrip()
    if not text:
        return NoOp()

    parts = text.split(None, 1)
    verb = parts[0]
    arg = parts[1].strip() if len(parts) > 1 else None

    cls = verbs.get(verb.lower())
    if cls is None:
        return Unknown(verb)
    if issubclass(cls, _TAKES_ARGUMENT):
        return cls(arg or None)
    return cls()
