# onboard/config.py
"""Wizard configuration, read from YAML and validated into dataclasses.

Example::

    general:
      title: System Setup
    user:
      groups: [wheel, audio]
    timezone:
      default: Europe/Berlin
    updates:
      - name: Browsers
        enabled_by_default: true
        packages:
          - title: Firefox
            commands:
              - name: Install Firefox
                command: [flatpak, install, -y, flathub, org.mozilla.firefox]
"""
from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from errors import ConfigError
from logger import log

DEFAULT_CONFIG_PATH = Path("/etc/vimgreet/onboard.yaml")
COMPLETION_ACTIONS = ("reboot", "poweroff", "exit")


@dataclass
class GeneralConfig:
    title: str = "System Setup"
    subtitle: str = "Welcome to your new system"
    dryrun: bool = False


@dataclass
class UserConfig:
    groups: List[str] = field(default_factory=lambda: ["wheel"])
    shell: str = "/bin/bash"
    min_password_length: int = 8


@dataclass
class PickerConfig:
    """Shared shape of the locale, keyboard and timezone sections."""
    enabled: bool = True
    default: str = ""
    available: List[str] = field(default_factory=list)


@dataclass
class CompletionConfig:
    action: str = "reboot"
    remove_initial_session: bool = True


@dataclass
class CommandConfig:
    name: str
    command: List[str]
    sudo: bool = False


@dataclass
class PackageItem:
    title: str
    commands: List[CommandConfig]
    description: str = ""
    enabled_by_default: Optional[bool] = None
    required: bool = False

    def default_selected(self, category_default: bool) -> bool:
        if self.required:
            return True
        if self.enabled_by_default is None:
            return category_default
        return self.enabled_by_default


@dataclass
class UpdateCategory:
    name: str
    packages: List[PackageItem] = field(default_factory=list)
    description: str = ""
    enabled_by_default: bool = False


@dataclass
class OnboardConfig:
    general: GeneralConfig = field(default_factory=GeneralConfig)
    user: UserConfig = field(default_factory=UserConfig)
    locale: PickerConfig = field(default_factory=lambda: PickerConfig(default="en_US.UTF-8"))
    keyboard: PickerConfig = field(default_factory=lambda: PickerConfig(default="us"))
    timezone: PickerConfig = field(default_factory=lambda: PickerConfig(default="UTC"))
    completion: CompletionConfig = field(default_factory=CompletionConfig)
    updates: List[UpdateCategory] = field(default_factory=list)

    @property
    def steps(self) -> List[str]:
        """Enabled wizard steps, in order."""
        steps = ["user"]
        for name in ("locale", "keyboard", "timezone"):
            if getattr(self, name).enabled:
                steps.append(name)
        if any(c.packages for c in self.updates):
            steps.append("packages")
        return steps


# -- Validation ------------------------------------------------------------------

def _expect(value: Any, kind, where: str):
    # bool is an int subclass; keep "yes"/1 from passing as the wrong thing
    if kind is int and isinstance(value, bool) or not isinstance(value, kind):
        names = kind.__name__ if isinstance(kind, type) else "/".join(k.__name__ for k in kind)
        raise ConfigError(f"{where}: expected {names}, got {type(value).__name__}")
    return value


def _str_list(value: Any, where: str) -> List[str]:
    _expect(value, list, where)
    return [_expect(v, str, f"{where}[{i}]") for i, v in enumerate(value)]


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = data.get(name)
    if value is None:
        return {}
    return _expect(value, dict, name)


def _scalars(section: Dict[str, Any], where: str, spec: Dict[str, type]) -> Dict[str, Any]:
    out = {}
    for key, kind in spec.items():
        if key in section:
            if kind is list:
                out[key] = _str_list(section[key], f"{where}.{key}")
            else:
                out[key] = _expect(section[key], kind, f"{where}.{key}")
    return out


def _parse_picker(data: Dict[str, Any], name: str, default: str) -> PickerConfig:
    section = _section(data, name)
    values = _scalars(section, name, {"enabled": bool, "default": str, "available": list})
    cfg = PickerConfig(**{"default": default, **values})
    if cfg.available and cfg.default not in cfg.available:
        raise ConfigError(f"{name}.default {cfg.default!r} is not in {name}.available")
    return cfg


def _parse_command(raw: Any, where: str) -> CommandConfig:
    _expect(raw, dict, where)
    if "name" not in raw or "command" not in raw:
        raise ConfigError(f"{where}: 'name' and 'command' are required")
    command = _str_list(raw["command"], f"{where}.command")
    if not command:
        raise ConfigError(f"{where}.command must not be empty")
    return CommandConfig(
        name=_expect(raw["name"], str, f"{where}.name"),
        command=command,
        sudo=_expect(raw.get("sudo", False), bool, f"{where}.sudo"),
    )


def _parse_package(raw: Any, where: str) -> PackageItem:
    _expect(raw, dict, where)
    if "title" not in raw:
        raise ConfigError(f"{where}: 'title' is required")
    commands = [
        _parse_command(c, f"{where}.commands[{i}]")
        for i, c in enumerate(_expect(raw.get("commands", []), list, f"{where}.commands"))
    ]
    if not commands:
        raise ConfigError(f"{where}: at least one command is required")
    enabled = raw.get("enabled_by_default")
    return PackageItem(
        title=_expect(raw["title"], str, f"{where}.title"),
        commands=commands,
        description=_expect(raw.get("description", ""), str, f"{where}.description"),
        enabled_by_default=None if enabled is None else _expect(enabled, bool, f"{where}.enabled_by_default"),
        required=_expect(raw.get("required", False), bool, f"{where}.required"),
    )


def _parse_category(raw: Any, where: str) -> UpdateCategory:
    _expect(raw, dict, where)
    if "name" not in raw:
        raise ConfigError(f"{where}: 'name' is required")
    packages = _expect(raw.get("packages", []), list, f"{where}.packages")
    return UpdateCategory(
        name=_expect(raw["name"], str, f"{where}.name"),
        packages=[_parse_package(p, f"{where}.packages[{i}]") for i, p in enumerate(packages)],
        description=_expect(raw.get("description", ""), str, f"{where}.description"),
        enabled_by_default=_expect(raw.get("enabled_by_default", False), bool, f"{where}.enabled_by_default"),
    )


def parse_config(data: Optional[Dict[str, Any]]) -> OnboardConfig:
    """Validate an already-decoded YAML document."""
    if data is None:
        return OnboardConfig()
    _expect(data, dict, "config")

    general = GeneralConfig(**_scalars(
        _section(data, "general"), "general",
        {"title": str, "subtitle": str, "dryrun": bool},
    ))
    user = UserConfig(**_scalars(
        _section(data, "user"), "user",
        {"groups": list, "shell": str, "min_password_length": int},
    ))
    if user.min_password_length < 1:
        raise ConfigError("user.min_password_length must be at least 1")
    completion = CompletionConfig(**_scalars(
        _section(data, "completion"), "completion",
        {"action": str, "remove_initial_session": bool},
    ))
    if completion.action not in COMPLETION_ACTIONS:
        raise ConfigError(
            f"completion.action must be one of {', '.join(COMPLETION_ACTIONS)}, "
            f"got {completion.action!r}"
        )
    updates = _expect(data.get("updates") or [], list, "updates")

    return OnboardConfig(
        general=general,
        user=user,
        locale=_parse_picker(data, "locale", "en_US.UTF-8"),
        keyboard=_parse_picker(data, "keyboard", "us"),
        timezone=_parse_picker(data, "timezone", "UTC"),
        completion=completion,
        updates=[_parse_category(c, f"updates[{i}]") for i, c in enumerate(updates)],
    )


def load_config(path: Optional[Union[str, Path]] = None) -> OnboardConfig:
    path = Path(path) if path else DEFAULT_CONFIG_PATH
    if not path.exists():
        log.info("Config file %s not found, using defaults", path)
        return OnboardConfig()
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"{path}: invalid YAML: {e}") from e
    except OSError as e:
        raise ConfigError(f"{path}: {e}") from e
    config = parse_config(data)
    log.info("Loaded config from %s", path)
    return config
