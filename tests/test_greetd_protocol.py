# tests/test_greetd_protocol.py
import json
import socket
import pytest
from auth.protocol import (
    DEFAULT_TIMEOUT, HEADER, DemoTransport, Error, GreetdTransport, Notice, PromptForCredential,
    Success, decode_reply, encode_frame,
)
from auth.secret import Secret
from errors import ProtocolError, TransportError


@pytest.fixture
def wired():
    """A transport whose socket is one end of a socketpair; the other end is greetd."""
    ours, theirs = socket.socketpair()
    transport = GreetdTransport("/unused")
    transport._sock = ours
    yield transport, theirs
    transport.close()
    theirs.close()


def read_request(sock):
    (length,) = HEADER.unpack(sock.recv(HEADER.size))
    return json.loads(sock.recv(length).decode("utf-8"))


def test_frame_layout():
    frame = encode_frame({"type": "cancel_session"})
    (length,) = HEADER.unpack(frame[:4])
    assert length == len(frame) - 4
    assert json.loads(frame[4:]) == {"type": "cancel_session"}

@pytest.mark.parametrize("message, reply", [
    ({"type": "success"}, Success()),
    ({"type": "error", "error_type": "auth_error", "description": "pam said no"},
     Error("Authentication failed", "auth_error")),
    ({"type": "error", "error_type": "error", "description": "session busy"},
     Error("session busy", "error")),
    ({"type": "auth_message", "auth_message_type": "secret", "auth_message": "Password:"},
     PromptForCredential("Password:", False)),
    ({"type": "auth_message", "auth_message_type": "visible", "auth_message": "OTP:"},
     PromptForCredential("OTP:", True)),
    ({"type": "auth_message", "auth_message_type": "info", "auth_message": "hi"},
     Notice("hi")),
    ({"type": "auth_message", "auth_message_type": "error", "auth_message": "bad"},
     Notice("bad", is_error=True)),
])
def test_decode_reply(message, reply):
    assert decode_reply(message) == reply

@pytest.mark.parametrize("message", [
    {"type": "banana"},
    {"type": "auth_message", "auth_message_type": "telepathy"},
    ["not", "an", "object"],
])
def test_decode_rejects_unknown(message):
    with pytest.raises(ProtocolError):
        decode_reply(message)


def test_create_session_roundtrip(wired):
    transport, greetd = wired
    greetd.sendall(encode_frame({
        "type": "auth_message", "auth_message_type": "secret", "auth_message": "Password: ",
    }))
    assert transport.create_session("alice") == PromptForCredential("Password: ")
    assert read_request(greetd) == {"type": "create_session", "username": "alice"}

def test_answer_sends_revealed_secret(wired):
    transport, greetd = wired
    greetd.sendall(encode_frame({"type": "success"}))
    transport.answer(Secret(b"hunter2"))
    assert read_request(greetd) == {"type": "post_auth_message_response", "response": "hunter2"}

def test_empty_answer_sends_null(wired):
    transport, greetd = wired
    greetd.sendall(encode_frame({"type": "success"}))
    transport.answer(None)
    assert read_request(greetd)["response"] is None

def test_start_session_payload(wired):
    transport, greetd = wired
    greetd.sendall(encode_frame({"type": "success"}))
    transport.start_session(["sway"], ["XDG_SESSION_TYPE=wayland"])
    assert read_request(greetd) == {
        "type": "start_session", "cmd": ["sway"], "env": ["XDG_SESSION_TYPE=wayland"],
    }

def test_short_read_closes_connection(wired):
    transport, greetd = wired
    greetd.sendall(HEADER.pack(50) + b'{"type":')
    greetd.shutdown(socket.SHUT_WR)
    with pytest.raises(ProtocolError):
        transport.cancel_session()
    assert transport._sock is None

def test_malformed_json(wired):
    transport, greetd = wired
    body = b"{not json"
    greetd.sendall(HEADER.pack(len(body)) + body)
    with pytest.raises(ProtocolError, match="malformed"):
        transport.cancel_session()

def test_oversized_frame(wired):
    transport, greetd = wired
    greetd.sendall(HEADER.pack(1 << 30))
    with pytest.raises(ProtocolError, match="too large"):
        transport.cancel_session()


def test_from_env(monkeypatch):
    monkeypatch.setenv("GREETD_SOCK", "/run/greetd.sock")
    transport = GreetdTransport.from_env()
    assert transport.path == "/run/greetd.sock"
    assert transport.timeout == DEFAULT_TIMEOUT
    monkeypatch.delenv("GREETD_SOCK")
    with pytest.raises(TransportError):
        GreetdTransport.from_env()

def test_connect_to_missing_socket(tmp_path):
    transport = GreetdTransport(str(tmp_path / "missing.sock"))
    with pytest.raises(TransportError):
        transport.connect()

def test_silent_greetd_times_out(silent_greetd):
    transport = GreetdTransport(silent_greetd, timeout=0.2)
    with pytest.raises(TransportError):
        transport.create_session("alice")
    assert not transport.connected


def test_demo_transport():
    demo = DemoTransport()
    assert isinstance(demo.create_session("anyone"), PromptForCredential)
    assert demo.answer(Secret(b"demo")) == Success()
    reply = demo.answer(Secret(b"nope"))
    assert isinstance(reply, Error) and "demo" in reply.text
    assert demo.start_session(["sway"], []) == Success()
    assert demo.started == ["sway"]
