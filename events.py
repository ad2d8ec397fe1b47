# events.py
"""Input events and the merged event stream consumed by the control loop."""
from __future__ import annotations
import asyncio
from dataclasses import dataclass
from typing import FrozenSet, Optional, Union

TICK_INTERVAL = 0.25
MODIFIER_ORDER = ("ctrl", "alt", "shift")


@dataclass(frozen=True)
class KeyInput:
    code: str                   # "char" for printable input, else a key name ("enter", "f2", "u")
    char: str = ""
    modifiers: FrozenSet[str] = frozenset()

    @classmethod
    def of(cls, ch: str) -> "KeyInput":
        return cls("char", ch)

    @classmethod
    def named(cls, name: str, *modifiers: str) -> "KeyInput":
        return cls(name, "", frozenset(modifiers))

    @classmethod
    def ctrl(cls, letter: str) -> "KeyInput":
        return cls(letter.lower(), "", frozenset({"ctrl"}))

    @classmethod
    def from_textual(cls, event) -> "KeyInput":
        """Translate a ``textual.events.Key``."""
        parts = event.key.split("+")
        mods = frozenset(p for p in parts[:-1] if p in MODIFIER_ORDER)
        if event.is_printable and event.character and not mods & {"ctrl", "alt"}:
            return cls("char", event.character)
        return cls(parts[-1], "", mods)

    @property
    def printable(self) -> bool:
        return (
            self.code == "char"
            and len(self.char) == 1
            and self.char.isprintable()
            and not self.modifiers & {"ctrl", "alt"}
        )

    @property
    def token(self) -> str:
        """Lookup key for transition tables: ``"x"``, ``"enter"``, ``"ctrl+w"``."""
        if self.printable:
            return self.char
        name = self.char.lower() if self.code == "char" else self.code
        prefix = "".join(f"{m}+" for m in MODIFIER_ORDER if m in self.modifiers)
        return prefix + name


@dataclass(frozen=True)
class MouseInput:
    x: int
    y: int
    button: int = 1


@dataclass(frozen=True)
class Tick:
    pass


Event = Union[KeyInput, MouseInput, Tick]


class EventSource:
    """Merges keyboard/mouse input and a periodic tick into one ordered queue.

    Producers call :meth:`feed`; the ticker task adds a ``Tick`` every
    ``tick_interval`` seconds. At most one undelivered tick is queued at a
    time so a slow consumer never builds a tick backlog.
    """

    def __init__(self, tick_interval: float = TICK_INTERVAL) -> None:
        self.tick_interval = tick_interval
        self._queue: asyncio.Queue = asyncio.Queue()
        self._ticker: Optional[asyncio.Task] = None
        self._tick_queued = False

    def feed(self, event: Event) -> None:
        self._queue.put_nowait(event)

    def poke(self) -> None:
        """Wake the consumer early, e.g. when a background reply has arrived."""
        if not self._tick_queued:
            self._tick_queued = True
            self._queue.put_nowait(Tick())

    def start(self) -> None:
        if self._ticker is None:
            self._ticker = asyncio.get_running_loop().create_task(self._run_ticker())

    def stop(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def next(self) -> Event:
        event = await self._queue.get()
        if isinstance(event, Tick):
            self._tick_queued = False
        return event

    async def _run_ticker(self) -> None:
        while True:
            await asyncio.sleep(self.tick_interval)
            self.poke()
