# tests/test_auth_session.py
import asyncio
import pytest
from auth.protocol import GreetdTransport, Notice, PromptForCredential, Success
from auth.secret import Secret
from auth.session import (
    Accepted, AuthFailed, AuthSession, AuthState, Noticed, Prompted, SessionStarted,
)
from errors import AuthStateError, TransportError
from vim.buffer import InputBuffer
from conftest import ScriptedTransport


async def flush(executor):
    """Wait until every job queued on the worker so far has run."""
    await asyncio.get_running_loop().run_in_executor(executor, lambda: None)


async def test_successful_login_flow(transport, executor):
    session = AuthSession(transport, executor=executor)
    session.submit("alice")
    assert session.state is AuthState.CONNECTING
    assert session.busy

    assert await session.receive() == [Prompted("Password: ", False)]
    assert session.state is AuthState.AWAITING_SECRET

    secret = Secret(b"hunter2")
    session.answer(secret)
    assert await session.receive() == [Accepted()]
    assert session.state is AuthState.AWAITING_SESSION_START
    assert secret.is_wiped

    session.start(["sway"], ["XDG_SESSION_TYPE=wayland"])
    assert await session.receive() == [SessionStarted()]
    assert session.state is AuthState.AUTHENTICATED
    assert transport.calls == [
        ("create_session", "alice"),
        ("answer", "hunter2"),
        ("start_session", ["sway"], ["XDG_SESSION_TYPE=wayland"]),
    ]

async def test_rejected_password_fails_and_wipes(transport, executor):
    session = AuthSession(transport, executor=executor)
    session.submit("alice")
    await session.receive()
    secret = Secret(b"wrong")
    session.answer(secret)
    assert await session.receive() == [AuthFailed("Authentication failed")]
    assert session.state is AuthState.FAILED
    assert len(secret) == 5 and secret.is_wiped
    await flush(executor)
    assert transport.names()[-1] == "cancel_session"

async def test_transport_failure_fails_the_attempt(executor):
    transport = ScriptedTransport(script={"create_session": [TransportError("socket gone")]})
    session = AuthSession(transport, executor=executor)
    session.submit("alice")
    (message,) = await session.receive()
    assert isinstance(message, AuthFailed)
    assert "socket gone" in message.reason
    assert session.state is AuthState.FAILED
    assert transport.closed == 1

async def test_notice_is_acknowledged_automatically(executor):
    transport = ScriptedTransport(script={
        "create_session": [Notice("Touch your security key")],
        "answer": [PromptForCredential("Password: ")],
    })
    session = AuthSession(transport, executor=executor)
    session.submit("alice")
    assert await session.receive() == [Noticed("Touch your security key", False)]
    assert await session.receive() == [Prompted("Password: ", False)]
    assert transport.calls[1] == ("answer", None)

async def test_unexpected_prompt_during_start_is_a_failure(executor):
    transport = ScriptedTransport(script={"start_session": [PromptForCredential("again?")]})
    session = AuthSession(transport, executor=executor)
    session.submit("alice")
    await session.receive()
    session.answer(Secret(b"hunter2"))
    await session.receive()
    session.start(["sway"], [])
    (message,) = await session.receive()
    assert isinstance(message, AuthFailed)
    assert session.state is AuthState.FAILED

async def test_requests_in_wrong_state_raise(transport, executor):
    session = AuthSession(transport, executor=executor)
    with pytest.raises(AuthStateError):
        session.answer(Secret(b"x"))
    with pytest.raises(AuthStateError):
        session.start(["sway"], [])
    session.submit("alice")
    with pytest.raises(AuthStateError):
        session.submit("alice")
    await session.receive()

async def test_terminal_session_is_not_reused(transport, executor):
    session = AuthSession(transport, executor=executor)
    session.submit("alice")
    await session.receive()
    session.answer(Secret(b"nope"))
    await session.receive()
    assert session.terminal
    with pytest.raises(AuthStateError):
        session.submit("alice")

async def test_cancel_drops_reply_in_flight(executor, gate):
    transport = ScriptedTransport(gate=gate)
    session = AuthSession(transport, executor=executor)
    session.submit("alice")
    session.cancel()
    assert session.state is AuthState.CANCELLED
    assert not session.busy

    gate.set()
    await flush(executor)
    await asyncio.sleep(0)
    assert session.drain() == []
    assert session.state is AuthState.CANCELLED
    assert transport.names() == ["create_session", "cancel_session"]

async def test_cancel_wipes_pending_secret(transport, executor, gate):
    session = AuthSession(transport, executor=executor)
    session.submit("alice")
    await session.receive()
    executor.submit(gate.wait, 5)           # keep the worker busy
    secret = Secret(b"hunter2")
    session.answer(secret)
    session.cancel()
    assert secret.is_wiped
    gate.set()
    await flush(executor)
    assert session.drain() == []
    assert "answer" not in transport.names()
    assert transport.names()[-1] == "cancel_session"

async def test_cancel_drops_queued_create_session(transport, executor, gate):
    executor.submit(gate.wait, 5)
    session = AuthSession(transport, executor=executor)
    session.submit("alice")
    session.cancel()
    gate.set()
    await flush(executor)
    assert "create_session" not in transport.names()

async def test_retry_after_stalled_greetd_fails_in_time(silent_greetd, executor):
    transport = GreetdTransport(silent_greetd, timeout=0.2)
    first = AuthSession(transport, executor=executor)
    first.submit("alice")
    await asyncio.sleep(0.05)
    first.cancel()

    retry = AuthSession(transport, executor=executor)
    retry.submit("alice")
    messages = await asyncio.wait_for(retry.receive(), 3)
    assert isinstance(messages[-1], AuthFailed)
    assert retry.state is AuthState.FAILED
    assert retry.reason.startswith("transport error")

async def test_cancel_before_submit_sends_nothing(transport, executor):
    session = AuthSession(transport, executor=executor)
    session.cancel()
    await flush(executor)
    assert session.state is AuthState.CANCELLED
    assert transport.calls == []

async def test_local_failure(transport, executor):
    session = AuthSession(transport, executor=executor)
    session.submit("alice")
    await session.receive()
    session.answer(Secret(b"hunter2"))
    await session.receive()
    session.fail("no session selected")
    assert session.state is AuthState.FAILED
    assert session.reason == "no session selected"
    await flush(executor)
    assert transport.names()[-1] == "cancel_session"

async def test_notify_called_when_reply_arrives(transport, executor):
    woken = []
    session = AuthSession(transport, notify=lambda: woken.append(True), executor=executor)
    session.submit("alice")
    await session.receive()
    assert woken


# -- Secret --------------------------------------------------------------------

def test_secret_from_buffer_wipes_buffer():
    buf = InputBuffer("pässword", masked=True)
    secret = Secret.from_buffer(buf)
    assert buf.is_empty
    assert secret.reveal() == "pässword"
    assert len(secret) == len("pässword".encode("utf-8"))

def test_secret_is_wiped_when_block_raises():
    secret = Secret(b"hunter2")
    with pytest.raises(RuntimeError):
        with secret:
            raise RuntimeError("boom")
    assert secret.is_wiped

def test_secret_repr_hides_content():
    secret = Secret(b"hunter2")
    assert repr(secret) == "Secret(<7 bytes>)"
    assert "hunter2" not in str(secret)
