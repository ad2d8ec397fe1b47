# screens/greeter.py
from __future__ import annotations
import socket

from rich.markup import escape
from textual import events
from textual.app import ComposeResult
from textual.containers import Vertical
from textual.screen import Screen
from textual.widgets import Static

from events import KeyInput, MouseInput
from greeter.controller import POWER_LABELS, GreeterController, GreeterState
from widgets.header import Banner
from widgets.text import field_markup, picker_markup, status_markup

HELP_TEXT = """\
[bold]Normal mode[/]
  h/l        move cursor          j/k    next/previous field
  i/a        insert (before/after) I/A   insert at start/end
  x          delete character     dd     clear field
  :          command mode         Enter  login
[bold]Insert mode[/]
  Escape     normal mode          Enter  submit / next field
  Ctrl+U     clear field          Ctrl+W delete word
[bold]Commands[/]
  :session \\[name]   select session    :user \\[name]   select user
  :reboot           reboot            :poweroff      shut down
  :cancel           cancel login      :q             login
[bold]Keys[/]
  F2 users   F3 sessions   F12 power off

[dim]Escape or q to close[/]"""


class GreeterScreen(Screen, inherit_bindings=False):
    """Login form; every widget is redrawn from the controller after each event."""

    def __init__(self, controller: GreeterController) -> None:
        super().__init__()
        self.controller = controller

    def compose(self) -> ComposeResult:
        yield Banner("vimgreet", socket.gethostname())
        with Vertical(id="content"):
            yield Static("", id="form")
            yield Static("", id="session")
            yield Static("", id="prompt")
            yield Static("", id="overlay")
        yield Static("", id="statusbar")

    def on_mount(self) -> None:
        self.refresh_view()

    def on_key(self, event: events.Key) -> None:
        self.app.event_source.feed(KeyInput.from_textual(event))
        event.stop()
        event.prevent_default()

    def on_click(self, event: events.Click) -> None:
        self.app.event_source.feed(MouseInput(event.x, event.y, event.button))

    def refresh_view(self) -> None:
        c = self.controller
        editing = c.state is GreeterState.ENTERING_CREDENTIALS
        self.query_one("#form", Static).update("\n".join(
            field_markup(f, f is c.field, show_cursor=editing)
            for f in (c.username, c.password)
        ))

        session = c.selected_session
        if session is None:
            session_text = "[#f7768e]No sessions found[/]"
        else:
            session_text = f"Session: [bold]{escape(session.label)}[/]  [dim](F3 to change)[/]"
        self.query_one("#session", Static).update(session_text)

        if c.state is GreeterState.AUTHENTICATING:
            prompt = f"{c.spinner} Authenticating {escape(c.username.buffer.text)}..."
        elif c.prompt:
            prompt = f"[bold]{escape(c.prompt)}[/]"
        else:
            prompt = ""
        self.query_one("#prompt", Static).update(prompt)

        self.query_one("#overlay", Static).update(self._overlay())
        busy = "Working" if c.power is not None else None
        self.query_one("#statusbar", Static).update(status_markup(c, busy=busy, demo=c.dryrun))

    def _overlay(self) -> str:
        c = self.controller
        if c.state is GreeterState.SHOWING_PICKER and c.picker is not None:
            return picker_markup(c.picker)
        if c.state is GreeterState.SHOWING_POWER_MENU:
            return f"[bold #e0af68]{POWER_LABELS[c.power_action]} now?[/]  \\[y/N]"
        if c.state is GreeterState.SHOWING_HELP:
            return HELP_TEXT
        if c.state is GreeterState.SHOWING_ERROR:
            return f"[bold #f7768e]Login failed:[/] {escape(c.error)}\n[dim]Press any key to try again[/]"
        return ""
