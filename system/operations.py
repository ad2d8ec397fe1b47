# system/operations.py
"""Descriptors for the changes the onboard wizard makes.

They carry no behaviour besides ``describe()``, which yields the command
line shown on the review screen. :class:`system.setup.SystemConfigurator`
executes them.
"""
from __future__ import annotations
import shlex
from dataclasses import dataclass, field
from typing import Tuple

from auth.secret import Secret

GREETD_CONFIG = "/etc/greetd/config.toml"


@dataclass(frozen=True)
class CreateUser:
    username: str
    password: Secret = field(repr=False, compare=False)
    groups: Tuple[str, ...] = ()
    shell: str = "/bin/bash"

    def describe(self) -> str:
        parts = ["useradd", "-m", "-s", self.shell]
        if self.groups:
            parts += ["-G", ",".join(self.groups)]
        parts.append(self.username)
        return " ".join(parts)


@dataclass(frozen=True)
class SetLocale:
    locale: str

    def describe(self) -> str:
        return f"localectl set-locale LANG={self.locale}"


@dataclass(frozen=True)
class SetKeymap:
    keymap: str

    def describe(self) -> str:
        return f"localectl set-keymap {self.keymap}"


@dataclass(frozen=True)
class SetTimezone:
    timezone: str

    def describe(self) -> str:
        return f"timedatectl set-timezone {self.timezone}"


@dataclass(frozen=True)
class RunPackageCommand:
    name: str
    username: str
    command: Tuple[str, ...]
    sudo: bool = False

    def describe(self) -> str:
        line = shlex.join(self.command)
        return f"sudo {line}" if self.sudo else line


@dataclass(frozen=True)
class RemoveInitialSession:
    config_path: str = GREETD_CONFIG

    def describe(self) -> str:
        return f"remove [initial_session] from {self.config_path}"
