# tests/test_onboard_controller.py
import asyncio
import subprocess
import threading
import time
import pytest

from conftest import press, type_text, wait_for
from onboard.controller import OnboardController, OnboardStep
import system.catalogs as catalogs_mod
from system.catalogs import Catalog
from system.operations import CreateUser, RunPackageCommand, SetLocale
from vim.editor import Mode


class RecordingConfigurator:
    """Stands in for SystemConfigurator; fails operations of the given types."""

    def __init__(self, fail=(), gate=None):
        self.fail = fail
        self.gate = gate
        self.ops = []
        self.lock = threading.Lock()

    def run(self, operation, progress=None):
        if self.gate is not None:
            self.gate.wait(5)
        with self.lock:
            self.ops.append(operation)
        if isinstance(operation, self.fail):
            raise RuntimeError(f"{type(operation).__name__} broke")
        return "ok"


@pytest.fixture
def configurator():
    return RecordingConfigurator()


@pytest.fixture
def wizard(onboard_config, configurator):
    return OnboardController(onboard_config, Catalog(dryrun=True), configurator, step_interval=0)


@pytest.fixture
def real_wizard(onboard_config, configurator):
    onboard_config.general.dryrun = False
    return OnboardController(onboard_config, Catalog(dryrun=True), configurator, step_interval=0)


def command(controller, text):
    press(controller, "escape", ":")
    type_text(controller, text)
    press(controller, "enter")


def fill_user(controller, name="alice", password="s3cret", confirm=None):
    type_text(controller, name)
    press(controller, "enter")
    type_text(controller, password)
    press(controller, "enter")
    type_text(controller, password if confirm is None else confirm)
    press(controller, "enter")


def walk_to_review(controller):
    fill_user(controller)
    press(controller, "enter", "enter", "enter")   # locale, keyboard, timezone
    press(controller, "enter")                     # packages
    assert controller.state is OnboardStep.REVIEWING


def test_initial_state(wizard):
    assert wizard.state is OnboardStep.USER
    assert wizard.steps == [
        OnboardStep.USER, OnboardStep.LOCALE, OnboardStep.KEYBOARD,
        OnboardStep.TIMEZONE, OnboardStep.PACKAGES,
    ]
    assert wizard.field is wizard.username
    assert wizard.editor.mode is Mode.INSERT
    assert wizard.selections.packages == {(0, 0)}


# -- User step ----------------------------------------------------------------

def test_user_step_records_choices(wizard):
    fill_user(wizard)
    assert wizard.state is OnboardStep.LOCALE
    assert wizard.selections.username == "alice"
    assert wizard.selections.password.reveal() == "s3cret"
    assert wizard.password.buffer.is_empty
    assert wizard.confirm_password.buffer.is_empty

def test_invalid_username(wizard):
    fill_user(wizard, name="Root")
    assert wizard.state is OnboardStep.USER
    assert wizard.field is wizard.username
    assert wizard.status_is_error

def test_password_mismatch(wizard):
    fill_user(wizard, password="s3cret", confirm="s3cr3t")
    assert wizard.state is OnboardStep.USER
    assert wizard.status == "Passwords do not match."
    assert wizard.field is wizard.password
    assert wizard.confirm_password.buffer.is_empty

def test_password_too_short(wizard):
    fill_user(wizard, password="abc")
    assert wizard.state is OnboardStep.USER
    assert "at least 4" in wizard.status

def test_user_step_cannot_be_skipped(wizard):
    command(wizard, "skip")
    assert wizard.state is OnboardStep.USER
    assert wizard.status == "This step cannot be skipped"

def test_back_at_first_step(wizard):
    command(wizard, "back")
    assert wizard.status == "Already at the first step"

def test_back_to_user_step_keeps_password(wizard):
    fill_user(wizard)
    command(wizard, "back")
    assert wizard.state is OnboardStep.USER
    assert wizard.username.buffer.text == "alice"
    command(wizard, "next")
    assert wizard.state is OnboardStep.LOCALE
    assert wizard.selections.password.reveal() == "s3cret"


# -- Picker steps ---------------------------------------------------------------

def test_picker_defaults_are_preselected(wizard):
    fill_user(wizard)
    assert wizard.picker.current == ("en_US.UTF-8", "en_US.UTF-8")
    press(wizard, "enter")
    assert wizard.selections.locale == "en_US.UTF-8"
    assert wizard.state is OnboardStep.KEYBOARD
    assert wizard.picker.current[0] == "us"

def test_picker_filter(wizard):
    fill_user(wizard)
    type_text(wizard, "de_")
    press(wizard, "enter")
    assert wizard.selections.locale == "de_DE.UTF-8"

def test_next_with_no_match(wizard):
    fill_user(wizard)
    type_text(wizard, "klingon")
    command(wizard, "next")
    assert wizard.state is OnboardStep.LOCALE
    assert wizard.status == "Nothing matches the filter"

def test_skip_picker_step(wizard):
    fill_user(wizard)
    command(wizard, "skip")
    assert wizard.selections.locale is None
    assert wizard.state is OnboardStep.KEYBOARD

async def test_system_lists_load_off_the_event_loop(onboard_config, configurator, monkeypatch):
    def slow_run(cmd, **kwargs):
        time.sleep(1)
        return subprocess.CompletedProcess(cmd, 0, stdout="de_DE.UTF-8\nen_US.UTF-8\n")

    monkeypatch.setattr(catalogs_mod.subprocess, "run", slow_run)
    onboard_config.general.dryrun = False
    wizard = OnboardController(onboard_config, Catalog(), configurator, step_interval=0)
    loop = asyncio.get_running_loop()

    started = loop.time()
    fill_user(wizard)
    await asyncio.sleep(0.01)
    assert loop.time() - started < 0.5
    assert wizard.state is OnboardStep.LOCALE
    assert wizard.picker.loading
    command(wizard, "next")
    assert wizard.status == "Still loading the list"
    assert wizard.state is OnboardStep.LOCALE

    await wait_for(wizard, lambda: not wizard.picker.loading)
    assert wizard.picker.items[0] == ("de_DE.UTF-8", "de_DE.UTF-8")
    assert wizard.field is wizard.picker.field
    command(wizard, "next")
    assert wizard.selections.locale == "en_US.UTF-8"

def test_choosing_again_replaces_the_value(wizard):
    fill_user(wizard)
    press(wizard, "enter")
    command(wizard, "back")
    assert wizard.state is OnboardStep.LOCALE
    type_text(wizard, "fr_")
    press(wizard, "enter")
    press(wizard, "enter", "enter", "enter")

    ids = [spec.id for spec, _ in wizard.build_tasks()]
    assert ids.count("locale") == 1
    assert len(ids) == len(set(ids))
    locale = next(spec for spec, _ in wizard.build_tasks() if spec.id == "locale")
    assert locale.invocation == SetLocale("fr_FR.UTF-8")


# -- Packages -------------------------------------------------------------------

def test_toggle_packages(wizard):
    fill_user(wizard)
    press(wizard, "enter", "enter", "enter")
    assert wizard.state is OnboardStep.PACKAGES
    press(wizard, " ", "j", " ")
    assert wizard.selections.packages == {(0, 1)}
    press(wizard, "enter")

    lines = dict(wizard.review_lines())
    assert lines["Chromium: Install"] == "sudo flatpak install -y chromium"
    assert "Firefox: Install" not in lines

def test_skip_packages_clears_selection(wizard):
    fill_user(wizard)
    press(wizard, "enter", "enter", "enter")
    command(wizard, "skip")
    assert wizard.state is OnboardStep.REVIEWING
    assert not any(spec.id.startswith("pkg-") for spec, _ in wizard.build_tasks())


# -- Review and execution -------------------------------------------------------

def test_review_describes_every_change(wizard):
    walk_to_review(wizard)
    lines = wizard.review_lines()
    assert lines == [
        ("Create user alice", "useradd -m -s /bin/bash -G wheel,audio alice"),
        ("Set locale en_US.UTF-8", "localectl set-locale LANG=en_US.UTF-8"),
        ("Set keyboard us", "localectl set-keymap us"),
        ("Set time zone UTC", "timedatectl set-timezone UTC"),
        ("Firefox: Install", "flatpak install -y firefox"),
        ("Remove automatic setup login", "remove [initial_session] from /etc/greetd/config.toml"),
    ]

def test_package_tasks_depend_on_user(wizard):
    walk_to_review(wizard)
    specs = {spec.id: spec for spec, _ in wizard.build_tasks()}
    assert specs["pkg-0-0-0"].depends_on == ("user",)
    assert specs["pkg-0-0-0"].invocation == RunPackageCommand(
        "Install", "alice", ("flatpak", "install", "-y", "firefox"), False)

async def test_nothing_is_applied_before_commit(real_wizard, configurator):
    walk_to_review(real_wizard)
    command(real_wizard, "back")
    press(real_wizard, "enter")
    assert configurator.ops == []

    press(real_wizard, "enter")
    assert real_wizard.state is OnboardStep.EXECUTING
    await wait_for(real_wizard, lambda: real_wizard.state is OnboardStep.DONE)
    assert isinstance(configurator.ops[0], CreateUser)
    assert len(configurator.ops) == 6
    assert real_wizard.summary == "All changes were applied."

async def test_failed_user_skips_dependents(onboard_config):
    onboard_config.general.dryrun = False
    configurator = RecordingConfigurator(fail=(CreateUser,))
    wizard = OnboardController(onboard_config, Catalog(dryrun=True), configurator)
    walk_to_review(wizard)
    press(wizard, "enter")
    await wait_for(wizard, lambda: wizard.state is OnboardStep.DONE)

    assert wizard.summary == "1 task(s) failed, 2 skipped."
    assert wizard.tasks["pkg-0-0-0"].skipped
    assert wizard.tasks["greetd"].skipped
    assert wizard.tasks["user"].error == "CreateUser broke"
    assert not any(isinstance(op, RunPackageCommand) for op in configurator.ops)

async def test_dryrun_execution_is_simulated(wizard, configurator):
    walk_to_review(wizard)
    press(wizard, "enter")
    await wait_for(wizard, lambda: wizard.state is OnboardStep.DONE)
    assert configurator.ops == []
    assert wizard.selections.password is None
    categories = [name for name, _ in wizard.tasks_by_category()]
    assert categories == ["System", "Browsers"]

async def test_dryrun_completion_exits_without_power_action(onboard_config):
    ran = []
    wizard = OnboardController(onboard_config, Catalog(dryrun=True),
                               power_runner=lambda action, progress: ran.append(action),
                               step_interval=0)
    walk_to_review(wizard)
    press(wizard, "enter")
    await wait_for(wizard, lambda: wizard.state is OnboardStep.DONE)
    press(wizard, "enter")
    assert wizard.confirming == "reboot"
    press(wizard, "y")
    assert wizard.should_exit and wizard.exit_code == 0
    assert ran == []

async def test_completion_runs_power_action(onboard_config, configurator):
    onboard_config.general.dryrun = False
    ran = []
    wizard = OnboardController(onboard_config, Catalog(dryrun=True), configurator,
                               power_runner=lambda action, progress: ran.append(action) or "")
    walk_to_review(wizard)
    press(wizard, "enter")
    await wait_for(wizard, lambda: wizard.state is OnboardStep.DONE)
    press(wizard, "enter", "y")
    await wait_for(wizard, lambda: wizard.power is None)
    assert ran == ["reboot"]

async def test_back_is_refused_after_commit(wizard):
    walk_to_review(wizard)
    press(wizard, "enter")
    command(wizard, "back")
    assert wizard.status == "Changes have already been applied"
    command(wizard, "reboot")
    assert wizard.status == "Wait for the changes to finish"
    assert wizard.confirming is None
    await wait_for(wizard, lambda: wizard.state is OnboardStep.DONE)


# -- Quit -----------------------------------------------------------------------

def test_quit_asks_for_confirmation(wizard):
    command(wizard, "q")
    assert wizard.confirming == "quit"
    press(wizard, "n")
    assert wizard.confirming is None
    assert not wizard.should_exit
    command(wizard, "quit")
    press(wizard, "y")
    assert wizard.should_exit and wizard.exit_code == 0

async def test_quit_abandons_simulated_execution(onboard_config):
    wizard = OnboardController(onboard_config, Catalog(dryrun=True), step_interval=10)
    walk_to_review(wizard)
    press(wizard, "enter")
    command(wizard, "q")
    assert wizard.should_exit

async def test_quit_refused_while_real_changes_run(onboard_config, gate):
    onboard_config.general.dryrun = False
    configurator = RecordingConfigurator(gate=gate)
    wizard = OnboardController(onboard_config, Catalog(dryrun=True), configurator)
    walk_to_review(wizard)
    press(wizard, "enter")
    command(wizard, "q")
    assert not wizard.should_exit
    assert "cannot be interrupted" in wizard.status
    gate.set()
    await wait_for(wizard, lambda: wizard.state is OnboardStep.DONE)


def test_help_overlay(wizard):
    command(wizard, "help")
    assert wizard.show_help
    press(wizard, "escape")
    assert not wizard.show_help

def test_shutdown_wipes_secrets(wizard):
    fill_user(wizard)
    secret = wizard.selections.password
    wizard.shutdown()
    assert secret.is_wiped
    assert wizard.selections.password is None
