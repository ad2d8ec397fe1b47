# greeter/controller.py
from __future__ import annotations
import enum
from typing import Callable, List, Optional, Sequence

from auth.protocol import Transport
from auth.secret import Secret
from auth.session import Accepted, AuthFailed, AuthSession, AuthState, Noticed, Prompted, SessionStarted
from control import Controller
from events import KeyInput
from execution.coordinator import STEP_INTERVAL, ExecutionCoordinator
from execution.tasks import AllDone, Completed, Failed, Progress, TaskSpec
from logger import log
from picker import Closed, Picker, Selected
from system.power import run_power_action
from system.sessions import DesktopSession
from system.users import UserAccount
from validators import validate_login_name
from vim.buffer import InputBuffer
from vim.command import (
    Cancel, Command, Help, Login, NoOp, Poweroff, Reboot, Session, Unknown, User,
    GREETER_VERBS,
)
from vim.editor import Action, ExecuteCommand, Field, FocusNext, FocusPrev, ModalEditor, Mode, Submit

POWER_LABELS = {"reboot": "Reboot", "poweroff": "Power off"}
CANCEL_KEYS = ("escape", "ctrl+c")


class GreeterState(enum.Enum):
    ENTERING_CREDENTIALS = "entering_credentials"
    SHOWING_PICKER = "showing_picker"
    SHOWING_POWER_MENU = "showing_power_menu"
    SHOWING_HELP = "showing_help"
    AUTHENTICATING = "authenticating"
    SHOWING_ERROR = "showing_error"


class GreeterController(Controller):
    """Login screen: credentials in, one AuthSession per attempt."""

    def __init__(
        self,
        transport: Transport,
        users: Sequence[UserAccount] = (),
        sessions: Sequence[DesktopSession] = (),
        dryrun: bool = False,
        power_runner: Callable = run_power_action,
        step_interval: float = STEP_INTERVAL,
    ) -> None:
        super().__init__(ModalEditor(GREETER_VERBS, mode=Mode.INSERT))
        self.transport = transport
        self.users: List[UserAccount] = list(users)
        self.sessions: List[DesktopSession] = list(sessions)
        self.dryrun = dryrun
        self.power_runner = power_runner
        self.step_interval = step_interval

        self.state = GreeterState.ENTERING_CREDENTIALS
        self.username = Field("username", "Username")
        self.password = Field("password", "Password", InputBuffer(masked=True))
        self.set_fields([self.username, self.password], focus="username")

        self.session_index: Optional[int] = 0 if self.sessions else None
        self.picker: Optional[Picker] = None
        self.picker_kind = ""
        self.power_action: Optional[str] = None
        self.power: Optional[ExecutionCoordinator] = None
        self.auth: Optional[AuthSession] = None
        self.prompt = ""
        self.error = ""
        self._secret_sent = False
        log.info("Greeter ready: %d users, %d sessions", len(self.users), len(self.sessions))

    @property
    def selected_session(self) -> Optional[DesktopSession]:
        if self.session_index is None:
            return None
        return self.sessions[self.session_index]

    # -- Keys ----------------------------------------------------------------

    def handle_key(self, key: KeyInput) -> None:
        handler = {
            GreeterState.SHOWING_ERROR: self._error_key,
            GreeterState.SHOWING_HELP: self._help_key,
            GreeterState.SHOWING_POWER_MENU: self._power_menu_key,
            GreeterState.SHOWING_PICKER: self._picker_key,
            GreeterState.AUTHENTICATING: self._authenticating_key,
            GreeterState.ENTERING_CREDENTIALS: self._credentials_key,
        }[self.state]
        handler(key)

    def _error_key(self, key: KeyInput) -> None:
        self.error = ""
        self._back_to_credentials()

    def _help_key(self, key: KeyInput) -> None:
        if key.token in ("escape", "q"):
            self.state = GreeterState.ENTERING_CREDENTIALS

    def _power_menu_key(self, key: KeyInput) -> None:
        if key.token in ("y", "Y", "enter"):
            action, self.power_action = self.power_action, None
            self.state = GreeterState.ENTERING_CREDENTIALS
            self._run_power(action)
        elif key.token in ("n", "N", "escape"):
            self.power_action = None
            self.state = GreeterState.ENTERING_CREDENTIALS

    def _picker_key(self, key: KeyInput) -> None:
        action = self.picker.handle_key(self.editor, key)
        if isinstance(action, Selected):
            self._apply_pick(action.id)
            self._close_picker()
        elif isinstance(action, Closed):
            self._close_picker()
        elif isinstance(action, ExecuteCommand):
            self._close_picker()
            self.run_command(action.command)

    def _authenticating_key(self, key: KeyInput) -> None:
        if key.token in CANCEL_KEYS and self.editor.mode is not Mode.COMMAND:
            self.cancel_login()
            return
        action = self.editor.handle(key, None)
        if isinstance(action, ExecuteCommand):
            if isinstance(action.command, (Cancel, Help, NoOp, Unknown)):
                self.run_command(action.command)
            else:
                self.notify("Authentication in progress; :cancel to abort", error=True)

    def _credentials_key(self, key: KeyInput) -> None:
        if self.editor.mode is not Mode.COMMAND:
            if key.token == "f2":
                self.open_picker("user")
                return
            if key.token == "f3":
                self.open_picker("session")
                return
            if key.token == "f12":
                self.open_power_menu("poweroff")
                return
        self.on_action(self.editor.handle(key, self.field))

    def on_action(self, action: Optional[Action]) -> None:
        if isinstance(action, FocusNext):
            self.focus_next()
        elif isinstance(action, FocusPrev):
            self.focus_prev()
        elif isinstance(action, Submit):
            if self.field is self.username:
                if self.username.buffer.is_empty:
                    self.notify("Username is required", error=True)
                else:
                    self.focus_field("password")
            else:
                self.login()
        elif isinstance(action, ExecuteCommand):
            self.run_command(action.command)

    # -- Commands ------------------------------------------------------------

    def run_command(self, command: Command) -> None:
        if isinstance(command, Session):
            if command.name is None:
                self.open_picker("session")
            elif not self.select_session(command.name):
                self.notify(f"Session not found: {command.name}", error=True)
        elif isinstance(command, User):
            if command.name is None:
                self.open_picker("user")
            elif not self.select_user(command.name):
                self.notify(f"User not found: {command.name}", error=True)
        elif isinstance(command, Reboot):
            self.open_power_menu("reboot")
        elif isinstance(command, Poweroff):
            self.open_power_menu("poweroff")
        elif isinstance(command, Help):
            self.state = GreeterState.SHOWING_HELP
        elif isinstance(command, Login):
            self.login()
        elif isinstance(command, Cancel):
            if self.auth is not None and not self.auth.terminal:
                self.cancel_login()
            else:
                self.notify("Nothing to cancel")
        elif isinstance(command, Unknown):
            self.notify(f"Unknown command: {command.text}", error=True)
        elif not isinstance(command, NoOp):
            self.notify(f"Command not available here: {type(command).__name__.lower()}", error=True)

    def select_session(self, name: str) -> bool:
        needle = name.lower()
        for i, session in enumerate(self.sessions):
            if session.slug.lower() == needle or needle in session.name.lower():
                self.session_index = i
                log.info("Selected session %s", session.slug)
                return True
        return False

    def select_user(self, name: str) -> bool:
        for user in self.users:
            if user.username.lower() == name.lower():
                self.username.buffer.set(user.username)
                self.focus_field("password")
                return True
        return False

    # -- Pickers -------------------------------------------------------------

    def open_picker(self, kind: str) -> None:
        if kind == "user":
            items = [(u.username, u.label) for u in self.users]
            current = self.username.buffer.text or None
        else:
            items = [(s.slug, s.label) for s in self.sessions]
            current = self.selected_session.slug if self.selected_session else None
        if not items:
            self.notify(f"No {kind}s found", error=True)
            return
        self.picker = Picker.create(kind, kind.capitalize(), items, selected=current)
        self.picker_kind = kind
        self.state = GreeterState.SHOWING_PICKER
        self.editor.reset(Mode.NORMAL)
        self.editor.focus(self.picker.field)

    def _apply_pick(self, item_id: str) -> None:
        if self.picker_kind == "user":
            self.select_user(item_id)
        else:
            self.select_session(item_id)

    def _close_picker(self) -> None:
        if self.picker is not None:
            self.picker.reset_filter()
        self.picker = None
        self.picker_kind = ""
        if self.state is GreeterState.SHOWING_PICKER:
            self.state = GreeterState.ENTERING_CREDENTIALS
        self.editor.reset(Mode.INSERT)
        self.editor.focus(self.field)

    # -- Power ---------------------------------------------------------------

    def open_power_menu(self, action: str) -> None:
        self.power_action = action
        self.state = GreeterState.SHOWING_POWER_MENU

    def _run_power(self, action: str) -> None:
        if self.power is not None and not self.power.finished:
            self.notify("A power action is already running", error=True)
            return
        label = POWER_LABELS[action]
        log.info("%s confirmed%s", label, " (dry run)" if self.dryrun else "")
        self.power = ExecutionCoordinator(
            runner=self.power_runner,
            simulate=self.dryrun,
            step_interval=self.step_interval,
            notify=self.wake,
        )
        self.power.enqueue([TaskSpec(action, label, invocation=action)])
        self.power.start()
        self.notify(f"{label}...")

    def _on_power_message(self, message) -> None:
        if isinstance(message, Progress):
            self.notify(f"{POWER_LABELS.get(message.id, message.id)}: {message.text}")
        elif isinstance(message, Completed):
            label = POWER_LABELS.get(message.id, message.id)
            if isinstance(message.outcome, Failed):
                self.notify(f"{label} failed: {message.outcome.message}", error=True)
            elif self.dryrun:
                self.notify(f"Demo mode: {label.lower()} skipped")
        elif isinstance(message, AllDone):
            self.power = None

    # -- Authentication ------------------------------------------------------

    def login(self) -> None:
        if self.auth is not None and self.auth.state is AuthState.AWAITING_SECRET and not self.auth.busy:
            # Answering a follow-up prompt of the same attempt.
            self.state = GreeterState.AUTHENTICATING
            self.auth.answer(Secret.from_buffer(self.password.buffer))
            return
        if self.auth is not None and not self.auth.terminal:
            self.notify("Authentication in progress", error=True)
            return

        username = self.username.buffer.text.strip()
        ok, msg = validate_login_name(username)
        if not ok:
            self.notify(msg, error=True)
            self.focus_field("username")
            return

        self.auth = AuthSession(self.transport, notify=self.wake)
        self._secret_sent = False
        self.prompt = ""
        self.state = GreeterState.AUTHENTICATING
        self.editor.reset(Mode.NORMAL)
        self.auth.submit(username)

    def cancel_login(self) -> None:
        if self.auth is not None:
            self.auth.cancel()
        self.auth = None
        self.prompt = ""
        self.password.buffer.wipe()
        self._back_to_credentials()
        self.notify("Login cancelled")

    def _back_to_credentials(self) -> None:
        self.state = GreeterState.ENTERING_CREDENTIALS
        self.password.buffer.masked = True
        self.editor.reset(Mode.INSERT)
        self.focus_field("password")

    def _on_auth_message(self, message) -> None:
        if isinstance(message, Prompted):
            if not self._secret_sent:
                self._secret_sent = True
                self.auth.answer(Secret.from_buffer(self.password.buffer))
                return
            # Multi-factor: ask the user for the next answer.
            self.prompt = message.text
            self.password.buffer.wipe()
            self.password.buffer.masked = not message.visible
            self.state = GreeterState.ENTERING_CREDENTIALS
            self.editor.reset(Mode.INSERT)
            self.focus_field("password")
        elif isinstance(message, Noticed):
            self.notify(message.text, error=message.is_error)
        elif isinstance(message, Accepted):
            session = self.selected_session
            if session is None:
                self.auth.fail("No session selected")
                self._show_error(self.auth.reason)
                return
            self.auth.start(session.command(), session.environment())
        elif isinstance(message, SessionStarted):
            self.request_exit(0)
        elif isinstance(message, AuthFailed):
            self._show_error(message.reason)

    def _show_error(self, reason: str) -> None:
        self.error = reason
        self.auth = None
        self.prompt = ""
        self.password.buffer.wipe()
        self.state = GreeterState.SHOWING_ERROR

    # -- Loop hooks ----------------------------------------------------------

    def channels(self) -> None:
        if self.auth is not None:
            for message in self.auth.drain():
                self._on_auth_message(message)
        if self.power is not None:
            for message in self.power.drain():
                self._on_power_message(message)

    def shutdown(self) -> None:
        if self.auth is not None and not self.auth.terminal:
            self.auth.cancel()
        self.password.buffer.wipe()
        if self.power is not None:
            self.power.abandon()
