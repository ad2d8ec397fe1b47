# screens/onboard.py
from __future__ import annotations
from typing import List

from rich.markup import escape
from textual import events
from textual.app import ComposeResult
from textual.containers import Vertical
from textual.screen import Screen
from textual.widgets import Static

from events import KeyInput, MouseInput
from execution.tasks import TaskStatus
from onboard.controller import (
    PICKER_STEPS, STEP_TITLES, OnboardController, OnboardStep,
)
from widgets.header import Banner
from widgets.text import field_markup, picker_markup, status_markup

HELP_TEXT = """\
[bold]Moving around[/]
  Enter      confirm / next       j/k    move in lists
  Space      toggle a package     Tab    next field
[bold]Commands[/]
  :next  :back  :skip (optional steps)  :quit  :reboot  :poweroff

[dim]Escape or q to close[/]"""

CONFIRM_TEXT = {
    "quit": "Quit setup without applying anything?",
    "reboot": "Reboot now?",
    "poweroff": "Power off now?",
    "exit": "Exit setup?",
}


class OnboardScreen(Screen, inherit_bindings=False):
    """First-boot wizard view."""

    def __init__(self, controller: OnboardController) -> None:
        super().__init__()
        self.controller = controller

    def compose(self) -> ComposeResult:
        general = self.controller.config.general
        yield Banner(general.title, general.subtitle)
        with Vertical(id="content"):
            yield Static("", id="steps")
            yield Static("", classes="title", id="step_title")
            yield Static("", id="body")
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
        self.query_one("#steps", Static).update(self._breadcrumbs())
        self.query_one("#step_title", Static).update(escape(c.title))
        self.query_one("#body", Static).update(self._body())
        self.query_one("#overlay", Static).update(self._overlay())
        busy = "Applying changes" if c.state is OnboardStep.EXECUTING else None
        self.query_one("#statusbar", Static).update(status_markup(c, busy=busy, demo=c.dryrun))

    # -- Pieces --------------------------------------------------------------

    def _breadcrumbs(self) -> str:
        c = self.controller
        names = [STEP_TITLES[s] for s in c.steps] + [STEP_TITLES[OnboardStep.REVIEWING]]
        current = min(c.step_index, len(names) - 1)
        parts = []
        for i, name in enumerate(names):
            if i == current and c.state not in (OnboardStep.EXECUTING, OnboardStep.DONE):
                parts.append(f"[bold #7aa2f7]{escape(name)}[/]")
            else:
                parts.append(f"[dim]{escape(name)}[/]")
        return " › ".join(parts)

    def _body(self) -> str:
        c = self.controller
        if c.state is OnboardStep.USER:
            return "\n".join(
                field_markup(f, f is c.field, width=18)
                for f in (c.username, c.password, c.confirm_password)
            )
        if c.state in PICKER_STEPS:
            return picker_markup(c.picker, rows=12)
        if c.state is OnboardStep.PACKAGES:
            return self._packages()
        if c.state is OnboardStep.REVIEWING:
            return self._review()
        return self._progress()

    def _packages(self) -> str:
        c = self.controller
        lines: List[str] = []
        row = 0
        for ci, category in enumerate(c.config.updates):
            if not category.packages:
                continue
            lines.append(f"[bold]{escape(category.name)}[/]  [dim]{escape(category.description)}[/]")
            for pi, package in enumerate(category.packages):
                mark = "x" if (ci, pi) in c.selections.packages else " "
                cursor = ">" if row == c.package_index else " "
                extra = " [dim](required)[/]" if package.required else ""
                lines.append(
                    f" {cursor} \\[{mark}] {escape(package.title)}{extra}  "
                    f"[dim]{escape(package.description)}[/]"
                )
                row += 1
        lines.append("")
        lines.append("[dim]Space toggles, Enter continues[/]")
        return "\n".join(lines)

    def _review(self) -> str:
        c = self.controller
        s = c.selections
        lines = [
            f"User:      [bold]{escape(s.username)}[/]",
            f"Language:  {escape(s.locale or 'unchanged')}",
            f"Keyboard:  {escape(s.keymap or 'unchanged')}",
            f"Time zone: {escape(s.timezone or 'unchanged')}",
            "",
            "[bold]The following commands will run:[/]",
        ]
        for label, command in c.review_lines():
            lines.append(f"  {escape(label)}")
            lines.append(f"    [dim]$ {escape(command)}[/]")
        lines.append("")
        lines.append("[bold #9ece6a]Press Enter to apply[/]  [dim]:back to change something[/]")
        return "\n".join(lines)

    def _progress(self) -> str:
        c = self.controller
        lines: List[str] = []
        for category, tasks in c.tasks_by_category():
            lines.append(f"[bold]{escape(category)}[/]")
            for task in tasks:
                lines.append(f"  {self._task_icon(task)} {escape(task.label)}{self._task_detail(task)}")
        if c.state is OnboardStep.DONE:
            action = c.config.completion.action
            lines += ["", f"[bold]{escape(c.summary)}[/]", f"[dim]Press Enter to {escape(action)}[/]"]
        return "\n".join(lines)

    def _task_icon(self, task) -> str:
        if task.status is TaskStatus.RUNNING:
            return f"[#e0af68]{self.controller.spinner}[/]"
        if task.status is TaskStatus.SUCCEEDED:
            return "[#9ece6a]✓[/]"
        if task.skipped:
            return "[dim]-[/]"
        if task.status is TaskStatus.FAILED:
            return "[#f7768e]✗[/]"
        return "[dim]·[/]"

    def _task_detail(self, task) -> str:
        if task.status is TaskStatus.RUNNING and task.progress:
            return f"  [dim]{escape(task.progress)}[/]"
        if task.status is TaskStatus.FAILED and task.error:
            return f"  [#f7768e]{escape(task.error)}[/]"
        return ""

    def _overlay(self) -> str:
        c = self.controller
        if c.confirming is not None:
            return f"[bold #e0af68]{escape(CONFIRM_TEXT[c.confirming])}[/]  \\[y/N]"
        if c.show_help:
            return HELP_TEXT
        return ""
