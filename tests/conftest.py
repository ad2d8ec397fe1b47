# tests/conftest.py
import sys, os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import asyncio
import socket
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from auth.protocol import Error, PromptForCredential, Success, Transport
from events import KeyInput
from onboard.config import parse_config
from system.sessions import DesktopSession
from system.users import UserAccount


class ScriptedTransport(Transport):
    """Fake greetd: replies come from ``script`` (per method), else defaults.

    A scripted item that is an exception instance is raised instead of
    returned. ``gate`` (a threading.Event) blocks create_session until set.
    """

    def __init__(self, password="hunter2", script=None, gate=None):
        self.password = password
        self.script = {k: list(v) for k, v in (script or {}).items()}
        self.gate = gate
        self.calls = []
        self.closed = 0

    def _scripted(self, method, default):
        queue = self.script.get(method)
        if queue:
            item = queue.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        return default

    def create_session(self, username):
        self.calls.append(("create_session", username))
        if self.gate is not None:
            self.gate.wait(5)
        return self._scripted("create_session", PromptForCredential("Password: "))

    def answer(self, secret):
        value = secret.reveal() if secret is not None else None
        self.calls.append(("answer", value))
        default = Success() if value == self.password else Error("Authentication failed", "auth_error")
        return self._scripted("answer", default)

    def start_session(self, cmd, env):
        self.calls.append(("start_session", list(cmd), list(env)))
        return self._scripted("start_session", Success())

    def cancel_session(self):
        self.calls.append(("cancel_session",))
        return self._scripted("cancel_session", Success())

    def close(self):
        self.closed += 1

    def names(self):
        return [c[0] for c in self.calls]


def press(controller, *keys):
    """Feed named keys ("enter", "ctrl+w", "f2") or single characters."""
    for key in keys:
        if len(key) == 1:
            controller.dispatch(KeyInput.of(key))
        else:
            *mods, name = key.split("+")
            controller.dispatch(KeyInput.named(name, *mods))
        controller.channels()


def type_text(controller, text):
    for ch in text:
        controller.dispatch(KeyInput.of(ch))


async def wait_for(controller, predicate, timeout=3.0):
    """Drain the controller's channels until ``predicate()`` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        controller.channels()
        if predicate():
            return
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def transport():
    return ScriptedTransport()


@pytest.fixture
def executor():
    pool = ThreadPoolExecutor(max_workers=1)
    yield pool
    pool.shutdown(wait=False)


@pytest.fixture
def gate():
    event = threading.Event()
    yield event
    event.set()


@pytest.fixture
def silent_greetd(tmp_path):
    """Path of a socket that accepts connections and never answers."""
    path = str(tmp_path / "greetd.sock")
    server = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    server.bind(path)
    server.listen(4)
    yield path
    server.close()


@pytest.fixture
def users():
    return [UserAccount("alice", "Alice Liddell"), UserAccount("bob")]


@pytest.fixture
def sessions():
    return [
        DesktopSession("Sway", "sway", "sway", ("sway",), "wayland"),
        DesktopSession("GNOME on Xorg", "gnome-xorg", "gnome-session --x11", ("GNOME",), "x11"),
    ]


@pytest.fixture
def onboard_config():
    return parse_config({
        "general": {"title": "Test Setup", "dryrun": True},
        "user": {"groups": ["wheel", "audio"], "min_password_length": 4},
        "updates": [{
            "name": "Browsers",
            "enabled_by_default": True,
            "packages": [
                {"title": "Firefox", "commands": [
                    {"name": "Install", "command": ["flatpak", "install", "-y", "firefox"]},
                ]},
                {"title": "Chromium", "enabled_by_default": False, "commands": [
                    {"name": "Install", "command": ["flatpak", "install", "-y", "chromium"], "sudo": True},
                ]},
            ],
        }],
    })
