# auth/session.py
"""One login attempt against greetd, driven from the event loop.

Transport calls run on a single worker thread; each reply comes back
through the session's own queue and is applied by :meth:`AuthSession.drain`
on the loop thread. A session is never reused after a terminal state.
"""
from __future__ import annotations
import asyncio
import enum
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, List, Optional

from auth.protocol import Error, Notice, PromptForCredential, Success, Transport
from auth.secret import Secret, wipe
from errors import AuthStateError, VimgreetError
from logger import log

# Shared by all sessions so requests never interleave on the socket.
TRANSPORT_EXECUTOR = ThreadPoolExecutor(max_workers=1, thread_name_prefix="greetd")


class AuthState(enum.Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    AWAITING_SECRET = "awaiting_secret"
    AWAITING_SESSION_START = "awaiting_session_start"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset({AuthState.AUTHENTICATED, AuthState.FAILED, AuthState.CANCELLED})


# -- Messages for the controller -------------------------------------------------

@dataclass(frozen=True)
class Prompted:
    text: str
    visible: bool


@dataclass(frozen=True)
class Noticed:
    text: str
    is_error: bool


@dataclass(frozen=True)
class Accepted:
    """Credentials accepted; a session command is now expected."""


@dataclass(frozen=True)
class SessionStarted:
    pass


@dataclass(frozen=True)
class AuthFailed:
    reason: str


class AuthSession:
    def __init__(
        self,
        transport: Transport,
        notify: Callable[[], None] = lambda: None,
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> None:
        self.transport = transport
        self.state = AuthState.IDLE
        self.username: Optional[str] = None
        self.prompt = ""
        self.prompt_visible = False
        self.reason = ""
        self._notify = notify
        self._executor = executor or TRANSPORT_EXECUTOR
        self._queue: asyncio.Queue = asyncio.Queue()
        self._outstanding: Optional[asyncio.Future] = None
        self._secret: Optional[Secret] = None
        self._starting = False
        self._closed = False

    def __repr__(self) -> str:
        return f"AuthSession(user={self.username!r}, state={self.state.name})"

    @property
    def busy(self) -> bool:
        return self._outstanding is not None

    @property
    def terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    # -- Requests ------------------------------------------------------------

    def _require(self, *states: AuthState) -> None:
        if self.state not in states:
            raise AuthStateError(f"operation not allowed in state {self.state.name}")
        if self.busy:
            raise AuthStateError("a request is already outstanding")

    def submit(self, username: str) -> None:
        self._require(AuthState.IDLE)
        self.username = username
        self.state = AuthState.CONNECTING
        log.info("Creating greetd session for %s", username)
        self._send(self.transport.create_session, username)

    def answer(self, secret: Secret) -> None:
        self._require(AuthState.AWAITING_SECRET)
        self._secret = secret
        self._send(self._answer_with, secret)

    def start(self, cmd: List[str], env: List[str]) -> None:
        self._require(AuthState.AWAITING_SESSION_START)
        self._starting = True
        log.info("Starting session for %s: %s", self.username, cmd)
        self._send(self.transport.start_session, cmd, env)

    def cancel(self) -> None:
        """Abandon the attempt; a reply still in flight is dropped on arrival."""
        if self.terminal:
            return
        opened = self.state is not AuthState.IDLE
        log.info("Cancelling greetd session for %s", self.username)
        self.state = AuthState.CANCELLED
        self._close()
        if opened:
            self._executor.submit(self._best_effort_cancel)

    def fail(self, reason: str) -> None:
        """Fail the attempt locally, e.g. when no session command is available."""
        if self.terminal:
            return
        opened = self.state is not AuthState.IDLE
        self._set_failed(reason)
        if opened:
            self._executor.submit(self._best_effort_cancel)

    # -- Replies -------------------------------------------------------------

    def drain(self) -> List[object]:
        """Apply every queued reply and return the resulting messages."""
        messages: List[object] = []
        while not self._queue.empty():
            future = self._queue.get_nowait()
            if self._closed or future is not self._outstanding:
                continue
            self._outstanding = None
            messages.extend(self._apply(future))
        return messages

    async def receive(self) -> List[object]:
        """Wait for the next reply and apply it (used by tests and scripts)."""
        while True:
            future = await self._queue.get()
            self._queue.put_nowait(future)
            messages = self.drain()
            if messages or self.terminal:
                return messages

    def _apply(self, future: asyncio.Future) -> List[object]:
        if future.cancelled():
            return [self._set_failed("transport error: request cancelled")]
        exc = future.exception()
        if exc is not None:
            if not isinstance(exc, (VimgreetError, OSError)):
                raise exc
            self.transport.close()
            return [self._set_failed(f"transport error: {exc}")]

        reply = future.result()
        if isinstance(reply, PromptForCredential):
            if self.state not in (AuthState.CONNECTING, AuthState.AWAITING_SECRET):
                return [self._reject("unexpected credential prompt")]
            self.state = AuthState.AWAITING_SECRET
            self.prompt = reply.text
            self.prompt_visible = reply.visible
            return [Prompted(reply.text, reply.visible)]
        if isinstance(reply, Notice):
            self._send(self.transport.answer, None)
            return [Noticed(reply.text, reply.is_error)]
        if isinstance(reply, Success):
            if self._starting:
                self.state = AuthState.AUTHENTICATED
                self._closed = True
                log.info("Session started for %s", self.username)
                return [SessionStarted()]
            self.state = AuthState.AWAITING_SESSION_START
            log.info("Authentication succeeded for %s", self.username)
            return [Accepted()]
        if isinstance(reply, Error):
            return [self._reject(reply.text)]
        return [self._reject(f"unexpected reply {reply!r}")]

    # -- Internals -----------------------------------------------------------

    def _answer_with(self, secret: Secret):
        with secret:
            return self.transport.answer(secret)

    def _call(self, fn, *args):
        # Worker side. A session closed while the job was queued sends
        # nothing; a cancelled answer would carry a zeroed password to PAM.
        if self._closed:
            return None
        return fn(*args)

    def _send(self, fn, *args) -> None:
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(self._executor, self._call, fn, *args)
        self._outstanding = future
        future.add_done_callback(self._on_reply)

    def _on_reply(self, future: asyncio.Future) -> None:
        if self._closed:
            if not future.cancelled() and future.exception() is not None:
                log.debug("Dropped failed reply after close: %s", future.exception())
            else:
                log.debug("Dropped reply for closed session %s", self.username)
            return
        self._queue.put_nowait(future)
        self._notify()

    def _reject(self, reason: str) -> AuthFailed:
        message = self._set_failed(reason)
        self._executor.submit(self._best_effort_cancel)
        return message

    def _set_failed(self, reason: str) -> AuthFailed:
        log.warning("Authentication for %s failed: %s", self.username, reason)
        self.state = AuthState.FAILED
        self.reason = reason
        self._close()
        return AuthFailed(reason)

    def _close(self) -> None:
        wipe(self._secret)
        self._secret = None
        self._outstanding = None
        self._closed = True
        while not self._queue.empty():
            self._queue.get_nowait()

    def _best_effort_cancel(self) -> None:
        if not self.transport.connected:
            # greetd drops the session with the connection.
            return
        try:
            self.transport.cancel_session()
        except (VimgreetError, OSError) as e:
            log.debug("cancel_session failed: %s", e)
