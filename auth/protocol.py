# auth/protocol.py
"""greetd IPC: request/response types and the blocking transports.

Wire format: a native-endian u32 byte length followed by a UTF-8 JSON
object. Every call here blocks, so callers run them in an executor.
"""
from __future__ import annotations
import json
import os
import socket
import struct
from dataclasses import dataclass
from typing import List, Optional, Union

from auth.secret import Secret
from errors import ProtocolError, TransportError
from logger import log

HEADER = struct.Struct("=I")
MAX_FRAME = 1 << 20
# Seconds a greetd request may take before the attempt fails.
DEFAULT_TIMEOUT = 30.0
DEMO_PASSWORD = "demo"


# -- Replies -------------------------------------------------------------------

@dataclass(frozen=True)
class PromptForCredential:
    text: str
    visible: bool = False


@dataclass(frozen=True)
class Notice:
    """Informational or error text from PAM that expects an empty answer."""
    text: str
    is_error: bool = False


@dataclass(frozen=True)
class Success:
    pass


@dataclass(frozen=True)
class Error:
    text: str
    kind: str = "error"


Reply = Union[PromptForCredential, Notice, Success, Error]


# -- Framing -------------------------------------------------------------------

def encode_frame(payload: dict) -> bytes:
    body = json.dumps(payload).encode("utf-8")
    return HEADER.pack(len(body)) + body


def decode_reply(message: dict) -> Reply:
    """Turn a decoded greetd response object into a Reply."""
    kind = message.get("type") if isinstance(message, dict) else None
    if kind == "success":
        return Success()
    if kind == "error":
        error_type = message.get("error_type", "error")
        if error_type == "auth_error":
            return Error("Authentication failed", kind="auth_error")
        return Error(str(message.get("description", "")), kind=error_type)
    if kind == "auth_message":
        text = str(message.get("auth_message", ""))
        msg_type = message.get("auth_message_type")
        if msg_type == "secret":
            return PromptForCredential(text, visible=False)
        if msg_type == "visible":
            return PromptForCredential(text, visible=True)
        if msg_type == "info":
            return Notice(text)
        if msg_type == "error":
            return Notice(text, is_error=True)
        raise ProtocolError(f"unknown auth_message_type {msg_type!r}")
    raise ProtocolError(f"unknown response type {kind!r}")


# -- Transports ----------------------------------------------------------------

class Transport:
    """Blocking request/response channel to the login service."""

    def create_session(self, username: str) -> Reply:
        raise NotImplementedError

    def answer(self, secret: Optional[Secret]) -> Reply:
        raise NotImplementedError

    def start_session(self, cmd: List[str], env: List[str]) -> Reply:
        raise NotImplementedError

    def cancel_session(self) -> Reply:
        raise NotImplementedError

    @property
    def connected(self) -> bool:
        return True

    def close(self) -> None:
        pass


class GreetdTransport(Transport):
    def __init__(self, path: str, timeout: Optional[float] = DEFAULT_TIMEOUT) -> None:
        self.path = path
        self.timeout = timeout
        self._sock: Optional[socket.socket] = None

    @classmethod
    def from_env(cls) -> "GreetdTransport":
        path = os.environ.get("GREETD_SOCK")
        if not path:
            raise TransportError("GREETD_SOCK is not set")
        return cls(path)

    @property
    def connected(self) -> bool:
        return self._sock is not None

    def connect(self) -> None:
        if self._sock is not None:
            return
        log.info("Connecting to greetd socket %s", self.path)
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(self.timeout)
        try:
            sock.connect(self.path)
        except OSError as e:
            sock.close()
            raise TransportError(f"cannot connect to {self.path}: {e}") from e
        self._sock = sock

    def close(self) -> None:
        if self._sock is not None:
            try:
                self._sock.close()
            finally:
                self._sock = None

    def _recv_exact(self, size: int) -> bytes:
        data = bytearray()
        while len(data) < size:
            chunk = self._sock.recv(size - len(data))
            if not chunk:
                raise ProtocolError(f"connection closed after {len(data)} of {size} bytes")
            data.extend(chunk)
        return bytes(data)

    def _roundtrip(self, payload: dict) -> Reply:
        self.connect()
        try:
            self._sock.sendall(encode_frame(payload))
            (length,) = HEADER.unpack(self._recv_exact(HEADER.size))
            if length > MAX_FRAME:
                raise ProtocolError(f"frame of {length} bytes is too large")
            body = self._recv_exact(length)
            try:
                message = json.loads(body.decode("utf-8"))
            except ValueError as e:
                raise ProtocolError(f"malformed JSON: {e}") from e
            reply = decode_reply(message)
        except TransportError:
            # Next request gets a fresh connection.
            self.close()
            raise
        except OSError as e:
            self.close()
            raise TransportError(str(e)) from e
        log.debug("greetd %s -> %s", payload["type"], type(reply).__name__)
        return reply

    def create_session(self, username: str) -> Reply:
        return self._roundtrip({"type": "create_session", "username": username})

    def answer(self, secret: Optional[Secret]) -> Reply:
        response = secret.reveal() if secret is not None else None
        return self._roundtrip({"type": "post_auth_message_response", "response": response})

    def start_session(self, cmd: List[str], env: List[str]) -> Reply:
        return self._roundtrip({"type": "start_session", "cmd": list(cmd), "env": list(env)})

    def cancel_session(self) -> Reply:
        return self._roundtrip({"type": "cancel_session"})


class DemoTransport(Transport):
    """Stand-in used with --dryrun: every user exists and the password is 'demo'."""

    def __init__(self, password: str = DEMO_PASSWORD) -> None:
        self.password = password
        self.username: Optional[str] = None
        self.started: Optional[List[str]] = None

    def create_session(self, username: str) -> Reply:
        log.info("Demo mode: creating session for %s", username)
        self.username = username
        return PromptForCredential("Password: ", visible=False)

    def answer(self, secret: Optional[Secret]) -> Reply:
        if secret is not None and secret.reveal() == self.password:
            return Success()
        return Error(f"Invalid password (hint: use '{self.password}')")

    def start_session(self, cmd: List[str], env: List[str]) -> Reply:
        log.info("Demo mode: would start session cmd=%s env=%s", cmd, env)
        self.started = list(cmd)
        return Success()

    def cancel_session(self) -> Reply:
        self.username = None
        return Success()
