# system/setup.py
from __future__ import annotations
import shlex
import subprocess
from pathlib import Path
from typing import Callable, List, Optional

from errors import ExecutionError
from logger import log
from system.operations import (
    CreateUser, RemoveInitialSession, RunPackageCommand, SetKeymap, SetLocale,
    SetTimezone,
)

Progress = Callable[[str], None]


def _noop(text: str) -> None:
    pass


def remove_initial_session_block(content: str) -> str:
    """Drop the ``[initial_session]`` table and its keys from greetd's TOML."""
    kept: List[str] = []
    in_block = False
    for line in content.splitlines():
        stripped = line.strip()
        if stripped == "[initial_session]":
            in_block = True
            continue
        if in_block and stripped.startswith("["):
            in_block = False
        if not in_block:
            kept.append(line)
    return "\n".join(kept) + ("\n" if content.endswith("\n") else "")


class SystemConfigurator:
    """Applies onboard operations to the running system.

    :meth:`run` has the signature the ExecutionCoordinator expects from a
    runner and is called on a worker thread.
    """

    def run(self, operation, progress: Optional[Progress] = None) -> str:
        progress = progress or _noop
        handlers = {
            CreateUser: self.create_user,
            SetLocale: self.set_locale,
            SetKeymap: self.set_keymap,
            SetTimezone: self.set_timezone,
            RunPackageCommand: self.run_package_command,
            RemoveInitialSession: self.remove_initial_session,
        }
        handler = handlers.get(type(operation))
        if handler is None:
            raise ExecutionError(f"unsupported operation {operation!r}")
        progress(operation.describe())
        return handler(operation, progress)

    # -- Helpers -------------------------------------------------------------

    def _run(self, cmd: List[str], input: Optional[str] = None, log_cmd: bool = True) -> str:
        if log_cmd:
            log.info("Running: %s", " ".join(cmd))
        try:
            proc = subprocess.run(cmd, input=input, capture_output=True, text=True)
        except OSError as e:
            raise ExecutionError(f"{cmd[0]}: {e}") from e
        if proc.returncode != 0:
            detail = (proc.stderr or proc.stdout).strip()
            raise ExecutionError(f"{cmd[0]} exited with {proc.returncode}: {detail}")
        return proc.stdout

    # -- Operations ----------------------------------------------------------

    def create_user(self, op: CreateUser, progress: Progress) -> str:
        cmd = ["useradd", "-m", "-s", op.shell]
        if op.groups:
            cmd += ["-G", ",".join(op.groups)]
        cmd.append(op.username)
        with op.password:
            self._run(cmd)
            progress("setting password")
            log.info("Setting password for %s", op.username)
            self._run(["chpasswd"], input=f"{op.username}:{op.password.reveal()}\n", log_cmd=False)
        log.info("User %s created", op.username)
        return f"created {op.username}"

    def set_locale(self, op: SetLocale, progress: Progress) -> str:
        return self._run(["localectl", "set-locale", f"LANG={op.locale}"])

    def set_keymap(self, op: SetKeymap, progress: Progress) -> str:
        return self._run(["localectl", "set-keymap", op.keymap])

    def set_timezone(self, op: SetTimezone, progress: Progress) -> str:
        return self._run(["timedatectl", "set-timezone", op.timezone])

    def run_package_command(self, op: RunPackageCommand, progress: Progress) -> str:
        if not op.command:
            raise ExecutionError(f"{op.name}: empty command")
        if op.sudo:
            # The wizard already runs as root.
            return self._run(list(op.command))
        return self._run(["su", "-l", op.username, "-c", shlex.join(op.command)])

    def remove_initial_session(self, op: RemoveInitialSession, progress: Progress) -> str:
        path = Path(op.config_path)
        try:
            content = path.read_text()
            path.write_text(remove_initial_session_block(content))
        except OSError as e:
            raise ExecutionError(f"cannot update {path}: {e}") from e
        log.info("Removed initial_session from %s", path)
        return ""
