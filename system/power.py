# system/power.py
from __future__ import annotations
import subprocess
from typing import Callable, List, Optional

from errors import ExecutionError
from logger import log

POWER_ACTIONS = ("reboot", "poweroff")


def power_command(action: str) -> List[str]:
    if action not in POWER_ACTIONS:
        raise ValueError(f"unknown power action {action!r}")
    return ["systemctl", action]


def run_power_action(action: str, progress: Optional[Callable[[str], None]] = None) -> str:
    """Run ``systemctl reboot|poweroff``. Matches the coordinator's runner signature."""
    cmd = power_command(action)
    log.info("Running: %s", " ".join(cmd))
    if progress is not None:
        progress(" ".join(cmd))
    try:
        subprocess.run(cmd, check=True, capture_output=True, text=True)
    except subprocess.CalledProcessError as e:
        raise ExecutionError(f"{' '.join(cmd)} failed: {(e.stderr or '').strip() or e.returncode}") from e
    except OSError as e:
        raise ExecutionError(f"{cmd[0]}: {e}") from e
    return ""
