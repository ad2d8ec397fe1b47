# onboard/controller.py
"""First-boot wizard.

Steps only record choices in :class:`state.WizardSelections`. The system is
changed once, when the review is committed: every selection becomes a task
in a single ExecutionCoordinator batch.
"""
from __future__ import annotations
import asyncio
import enum
from typing import Callable, Dict, List, Optional, Tuple

from auth.secret import Secret
from control import Controller
from events import KeyInput
from execution.coordinator import STEP_INTERVAL, ExecutionCoordinator
from execution.tasks import AllDone, Completed, ExecutionTask, Failed, TaskSpec, TaskStatus
from logger import log
from onboard.config import OnboardConfig
from picker import Picker, Selected
from state import PackageKey, WizardSelections
from system.catalogs import Catalog
from system.operations import (
    CreateUser, RemoveInitialSession, RunPackageCommand, SetKeymap, SetLocale,
    SetTimezone,
)
from system.power import run_power_action
from system.setup import SystemConfigurator
from validators import validate_password, validate_username
from vim.buffer import InputBuffer
from vim.command import (
    Back, Command, Help, Next, NoOp, Poweroff, Quit, Reboot, Skip, Unknown,
    ONBOARD_VERBS,
)
from vim.editor import ExecuteCommand, Field, FocusNext, FocusPrev, ModalEditor, Mode, Submit


class OnboardStep(enum.Enum):
    USER = "user"
    LOCALE = "locale"
    KEYBOARD = "keyboard"
    TIMEZONE = "timezone"
    PACKAGES = "packages"
    REVIEWING = "reviewing"
    EXECUTING = "executing"
    DONE = "done"


PICKER_STEPS = (OnboardStep.LOCALE, OnboardStep.KEYBOARD, OnboardStep.TIMEZONE)
OPTIONAL_STEPS = PICKER_STEPS + (OnboardStep.PACKAGES,)
STEP_TITLES = {
    OnboardStep.USER: "Create your account",
    OnboardStep.LOCALE: "Language",
    OnboardStep.KEYBOARD: "Keyboard layout",
    OnboardStep.TIMEZONE: "Time zone",
    OnboardStep.PACKAGES: "Software",
    OnboardStep.REVIEWING: "Review",
    OnboardStep.EXECUTING: "Applying changes",
    OnboardStep.DONE: "Done",
}
# picker step -> (config section, WizardSelections attribute)
PICKER_TARGETS = {
    OnboardStep.LOCALE: ("locale", "locale"),
    OnboardStep.KEYBOARD: ("keyboard", "keymap"),
    OnboardStep.TIMEZONE: ("timezone", "timezone"),
}
SYSTEM_CATEGORY = "System"
CATALOG_QUERIES = {
    OnboardStep.LOCALE: "locales",
    OnboardStep.KEYBOARD: "keymaps",
    OnboardStep.TIMEZONE: "timezones",
}


class OnboardController(Controller):
    def __init__(
        self,
        config: OnboardConfig,
        catalog: Optional[Catalog] = None,
        configurator: Optional[SystemConfigurator] = None,
        power_runner: Callable = run_power_action,
        step_interval: float = STEP_INTERVAL,
        max_parallel: int = 1,
    ) -> None:
        super().__init__(ModalEditor(ONBOARD_VERBS, mode=Mode.INSERT))
        self.config = config
        self.dryrun = config.general.dryrun
        self.catalog = catalog or Catalog(dryrun=self.dryrun)
        self.configurator = configurator or SystemConfigurator()
        self.power_runner = power_runner
        self.step_interval = step_interval
        self.max_parallel = max_parallel

        self.steps: List[OnboardStep] = [OnboardStep(s) for s in config.steps]
        self.step_index = 0
        self.state = self.steps[0]
        self.selections = WizardSelections()

        self.username = Field("username", "Username")
        self.password = Field("password", "Password", InputBuffer(masked=True))
        self.confirm_password = Field("confirm", "Confirm password", InputBuffer(masked=True))

        self.pickers: Dict[OnboardStep, Picker] = {}
        self.catalog_values: Dict[OnboardStep, List[str]] = {}
        self._catalog_jobs: Dict[OnboardStep, asyncio.Future] = {}
        self._catalogs_requested = False
        self.package_rows: List[PackageKey] = [
            (ci, pi)
            for ci, category in enumerate(config.updates)
            for pi, _ in enumerate(category.packages)
        ]
        self.package_index = 0
        for ci, pi in self.package_rows:
            category = config.updates[ci]
            if category.packages[pi].default_selected(category.enabled_by_default):
                self.selections.packages.add((ci, pi))

        self.show_help = False
        self.confirming: Optional[str] = None
        self.coordinator: Optional[ExecutionCoordinator] = None
        self.tasks: Dict[str, ExecutionTask] = {}
        self.power: Optional[ExecutionCoordinator] = None
        self.summary = ""
        self._enter_step()

    # -- Step bookkeeping ----------------------------------------------------

    @property
    def title(self) -> str:
        return STEP_TITLES[self.state]

    @property
    def picker(self) -> Optional[Picker]:
        return self.pickers.get(self.state)

    def _enter_step(self) -> None:
        self.state = self.steps[self.step_index] if self.step_index < len(self.steps) else OnboardStep.REVIEWING
        log.info("Onboard step: %s", self.state.value)
        if self.state is OnboardStep.USER:
            self.set_fields([self.username, self.password, self.confirm_password], focus="username")
            self.editor.reset(Mode.INSERT)
        elif self.state in PICKER_STEPS:
            picker = self.pickers.get(self.state) or self._build_picker(self.state)
            self.pickers[self.state] = picker
            self.set_fields([picker.field])
            self.editor.reset(Mode.INSERT)
        else:
            self.set_fields([])
            self.editor.reset(Mode.NORMAL)

    def _known_values(self, step: OnboardStep) -> Optional[List[str]]:
        """Picker values available without touching the system, else None."""
        section_name, _ = PICKER_TARGETS[step]
        available = list(getattr(self.config, section_name).available)
        if available:
            return available
        if self.catalog.dryrun:
            return getattr(self.catalog, CATALOG_QUERIES[step])()
        return self.catalog_values.get(step)

    def _build_picker(self, step: OnboardStep) -> Picker:
        values = self._known_values(step)
        if values is None:
            return Picker.placeholder(step.value, STEP_TITLES[step], closable=False)
        section_name, attr = PICKER_TARGETS[step]
        selected = getattr(self.selections, attr) or getattr(self.config, section_name).default
        return Picker.create(
            step.value, STEP_TITLES[step], [(v, v) for v in values],
            selected=selected, closable=False,
        )

    def _fetch_catalogs(self) -> None:
        """Start the localectl/timedatectl queries on worker threads."""
        self._catalogs_requested = True
        if self.catalog.dryrun:
            return
        loop = asyncio.get_running_loop()
        for step in PICKER_STEPS:
            if step not in self.steps or self._known_values(step) is not None:
                continue
            log.info("Loading %s list", step.value)
            future = loop.run_in_executor(None, getattr(self.catalog, CATALOG_QUERIES[step]))
            future.add_done_callback(lambda _: self.wake())
            self._catalog_jobs[step] = future

    def _collect_catalogs(self) -> None:
        for step, future in list(self._catalog_jobs.items()):
            if not future.done():
                continue
            del self._catalog_jobs[step]
            self.catalog_values[step] = future.result()
            picker = self.pickers.get(step)
            if picker is not None and picker.loading:
                self.pickers[step] = self._build_picker(step)
                if self.state is step:
                    self.set_fields([self.pickers[step].field])

    def advance(self) -> None:
        if self.picker is not None:
            self.picker.reset_filter()
        self.step_index += 1
        self._enter_step()

    def go_back(self) -> None:
        if self.state in (OnboardStep.EXECUTING, OnboardStep.DONE):
            self.notify("Changes have already been applied", error=True)
            return
        if self.step_index == 0:
            self.notify("Already at the first step", error=True)
            return
        if self.picker is not None:
            self.picker.reset_filter()
        self.step_index = min(self.step_index, len(self.steps)) - 1
        self._enter_step()

    def skip(self) -> None:
        if self.state not in OPTIONAL_STEPS:
            self.notify("This step cannot be skipped", error=True)
            return
        if self.state in PICKER_TARGETS:
            setattr(self.selections, PICKER_TARGETS[self.state][1], None)
        else:
            self.selections.packages.clear()
        log.info("Skipped step %s", self.state.value)
        self.advance()

    # -- Keys ----------------------------------------------------------------

    def handle_key(self, key: KeyInput) -> None:
        if self.confirming is not None:
            self._confirm_key(key)
            return
        if self.show_help:
            if key.token in ("escape", "q"):
                self.show_help = False
            return
        if self.state is OnboardStep.USER:
            self._user_key(key)
        elif self.state in PICKER_STEPS:
            self._picker_key(key)
        else:
            self._list_key(key)

    def _user_key(self, key: KeyInput) -> None:
        action = self.editor.handle(key, self.field)
        if isinstance(action, FocusNext):
            self.focus_next()
        elif isinstance(action, FocusPrev):
            self.focus_prev()
        elif isinstance(action, Submit):
            if self.field is self.confirm_password:
                self.submit_user()
            else:
                self.focus_next()
                self.editor.reset(Mode.INSERT)
        elif isinstance(action, ExecuteCommand):
            self.run_command(action.command)

    def _picker_key(self, key: KeyInput) -> None:
        action = self.picker.handle_key(self.editor, key)
        if isinstance(action, Selected):
            self.choose(action.id)
        elif isinstance(action, ExecuteCommand):
            self.run_command(action.command)

    def _list_key(self, key: KeyInput) -> None:
        """Packages, review, execution and done screens: no text fields."""
        if self.editor.mode is Mode.COMMAND or key.token == ":":
            action = self.editor.handle(key, None)
            if isinstance(action, ExecuteCommand):
                self.run_command(action.command)
            return
        token = key.token
        if self.state is OnboardStep.PACKAGES:
            if token in ("j", "down"):
                self.package_index = min(self.package_index + 1, max(len(self.package_rows) - 1, 0))
            elif token in ("k", "up"):
                self.package_index = max(self.package_index - 1, 0)
            elif token == " ":
                self.toggle_package()
            elif token == "enter":
                self.advance()
        elif self.state is OnboardStep.REVIEWING:
            if token == "enter":
                self.commit()
        elif self.state is OnboardStep.DONE:
            if token == "enter":
                self.confirming = self.config.completion.action

    def _confirm_key(self, key: KeyInput) -> None:
        if key.token in ("y", "Y", "enter"):
            what, self.confirming = self.confirming, None
            self._confirmed(what)
        elif key.token in ("n", "N", "escape"):
            self.confirming = None

    def _confirmed(self, what: str) -> None:
        if what == "quit":
            log.info("Onboard cancelled by user; nothing applied")
            self.request_exit(0)
        elif what == "exit" or self.dryrun:
            if self.dryrun and what != "exit":
                log.info("Dry run: skipping %s", what)
            self.request_exit(0)
        else:
            self._run_power(what)

    # -- Commands ------------------------------------------------------------

    def run_command(self, command: Command) -> None:
        if isinstance(command, Next):
            self.next()
        elif isinstance(command, Back):
            self.go_back()
        elif isinstance(command, Skip):
            self.skip()
        elif isinstance(command, Quit):
            self.quit()
        elif isinstance(command, (Reboot, Poweroff)):
            if self.state is OnboardStep.EXECUTING:
                self.notify("Wait for the changes to finish", error=True)
            else:
                self.confirming = "reboot" if isinstance(command, Reboot) else "poweroff"
        elif isinstance(command, Help):
            self.show_help = True
        elif isinstance(command, Unknown):
            self.notify(f"Unknown command: {command.text}", error=True)
        elif not isinstance(command, NoOp):
            self.notify(f"Command not available here: {type(command).__name__.lower()}", error=True)

    def next(self) -> None:
        if self.state is OnboardStep.USER:
            self.submit_user()
        elif self.state in PICKER_STEPS and self.picker.loading:
            self.notify("Still loading the list", error=True)
        elif self.state in PICKER_STEPS:
            item = self.picker.current
            if item is None:
                self.notify("Nothing matches the filter", error=True)
            else:
                self.choose(item[0])
        elif self.state is OnboardStep.PACKAGES:
            self.advance()
        elif self.state is OnboardStep.REVIEWING:
            self.commit()
        else:
            self.notify("Nothing to do yet", error=True)

    def quit(self) -> None:
        if self.state is OnboardStep.EXECUTING:
            if self.coordinator is not None and self.coordinator.abandon():
                self.request_exit(0)
            else:
                self.notify("System changes are running and cannot be interrupted", error=True)
            return
        self.confirming = "quit"

    # -- Step actions --------------------------------------------------------

    def submit_user(self) -> None:
        name = self.username.buffer.text.strip()
        ok, msg = validate_username(name)
        if not ok:
            self.notify(msg, error=True)
            self.focus_field("username")
            return

        keep_existing = (
            self.selections.password is not None
            and name == self.selections.username
            and self.password.buffer.is_empty
            and self.confirm_password.buffer.is_empty
        )
        if not keep_existing:
            ok, msg = validate_password(
                self.password.buffer.text,
                self.confirm_password.buffer.text,
                self.config.user.min_password_length,
            )
            if not ok:
                self.notify(msg, error=True)
                self.confirm_password.buffer.wipe()
                self.focus_field("password")
                self.editor.reset(Mode.INSERT)
                return
            self.selections.set_password(Secret.from_buffer(self.password.buffer))
            self.confirm_password.buffer.wipe()

        self.selections.username = name
        log.info("User step complete: %s", name)
        self.advance()

    def choose(self, value: str) -> None:
        attr = PICKER_TARGETS[self.state][1]
        setattr(self.selections, attr, value)
        log.info("Selected %s = %s", attr, value)
        self.advance()

    def toggle_package(self) -> None:
        if not self.package_rows:
            return
        key = self.package_rows[self.package_index]
        ci, pi = key
        package = self.config.updates[ci].packages[pi]
        if package.required:
            self.notify(f"{package.title} is required", error=True)
        elif key in self.selections.packages:
            self.selections.packages.discard(key)
        else:
            self.selections.packages.add(key)

    # -- Review / execution --------------------------------------------------

    def build_tasks(self) -> List[Tuple[TaskSpec, str]]:
        """(spec, category) pairs for everything selected, in display order."""
        s = self.selections
        user_cfg = self.config.user
        tasks: List[Tuple[TaskSpec, str]] = [(
            TaskSpec(
                "user", f"Create user {s.username}", (),
                CreateUser(s.username, s.password, tuple(user_cfg.groups), user_cfg.shell),
            ),
            SYSTEM_CATEGORY,
        )]
        if s.locale:
            tasks.append((TaskSpec("locale", f"Set locale {s.locale}", (), SetLocale(s.locale)), SYSTEM_CATEGORY))
        if s.keymap:
            tasks.append((TaskSpec("keymap", f"Set keyboard {s.keymap}", (), SetKeymap(s.keymap)), SYSTEM_CATEGORY))
        if s.timezone:
            tasks.append((TaskSpec("timezone", f"Set time zone {s.timezone}", (), SetTimezone(s.timezone)), SYSTEM_CATEGORY))

        for ci, pi in sorted(s.packages):
            category = self.config.updates[ci]
            package = category.packages[pi]
            previous = None
            for k, command in enumerate(package.commands):
                task_id = f"pkg-{ci}-{pi}-{k}"
                depends = ("user",) if previous is None else ("user", previous)
                op = RunPackageCommand(command.name, s.username, tuple(command.command), command.sudo)
                tasks.append((TaskSpec(task_id, f"{package.title}: {command.name}", depends, op), category.name))
                previous = task_id

        if self.config.completion.remove_initial_session:
            tasks.append((
                TaskSpec("greetd", "Remove automatic setup login", ("user",), RemoveInitialSession()),
                SYSTEM_CATEGORY,
            ))
        return tasks

    def review_lines(self) -> List[Tuple[str, str]]:
        return [(spec.label, spec.invocation.describe()) for spec, _ in self.build_tasks()]

    def commit(self) -> None:
        if self.state is not OnboardStep.REVIEWING or self.coordinator is not None:
            return
        if self.selections.password is None:
            self.notify("Create the user account first", error=True)
            return
        planned = self.build_tasks()
        self.tasks = {spec.id: ExecutionTask.from_spec(spec, category) for spec, category in planned}
        self.coordinator = ExecutionCoordinator(
            runner=self.configurator.run,
            simulate=self.dryrun,
            max_parallel=self.max_parallel,
            step_interval=self.step_interval,
            notify=self.wake,
        )
        self.coordinator.enqueue([spec for spec, _ in planned])
        self.state = OnboardStep.EXECUTING
        log.info("Committing %d task(s)", len(planned))
        self.coordinator.start()

    def _on_task_message(self, message) -> None:
        if isinstance(message, AllDone):
            self._finish_execution()
            return
        task = self.tasks.get(message.id)
        if task is not None:
            task.apply(message)
        if isinstance(message, Completed) and isinstance(message.outcome, Failed):
            log.warning("Task %s failed: %s", message.id, message.outcome.message)

    def _finish_execution(self) -> None:
        failed = [t for t in self.tasks.values() if t.status is TaskStatus.FAILED and not t.skipped]
        skipped = [t for t in self.tasks.values() if t.skipped]
        if not failed and not skipped:
            self.summary = "All changes were applied."
        else:
            self.summary = f"{len(failed)} task(s) failed, {len(skipped)} skipped."
        self.selections.clear_password()
        self.coordinator = None
        self.state = OnboardStep.DONE
        log.info("Execution finished: %s", self.summary)

    def tasks_by_category(self) -> List[Tuple[str, List[ExecutionTask]]]:
        grouped: Dict[str, List[ExecutionTask]] = {}
        for task in self.tasks.values():
            grouped.setdefault(task.category, []).append(task)
        return list(grouped.items())

    # -- Power ---------------------------------------------------------------

    def _run_power(self, action: str) -> None:
        if self.power is not None:
            return
        self.power = ExecutionCoordinator(runner=self.power_runner, notify=self.wake)
        self.power.enqueue([TaskSpec(action, action.capitalize(), invocation=action)])
        self.power.start()
        self.notify(f"{action.capitalize()}...")

    def _on_power_message(self, message) -> None:
        if isinstance(message, Completed) and isinstance(message.outcome, Failed):
            self.notify(f"{message.id.capitalize()} failed: {message.outcome.message}", error=True)
        elif isinstance(message, AllDone):
            self.power = None

    # -- Loop hooks ----------------------------------------------------------

    def channels(self) -> None:
        if not self._catalogs_requested:
            self._fetch_catalogs()
        self._collect_catalogs()
        if self.coordinator is not None:
            for message in self.coordinator.drain():
                self._on_task_message(message)
        if self.power is not None:
            for message in self.power.drain():
                self._on_power_message(message)

    def shutdown(self) -> None:
        if self.coordinator is not None:
            self.coordinator.abandon()
        self.selections.clear_password()
        for f in (self.password, self.confirm_password):
            f.buffer.wipe()
