# system/catalogs.py
"""Locale, keymap and timezone lists for the onboard pickers."""
from __future__ import annotations
import subprocess
from typing import List, Sequence
from logger import log

DEMO_LOCALES = [
    "en_US.UTF-8", "en_GB.UTF-8", "de_DE.UTF-8", "fr_FR.UTF-8", "es_ES.UTF-8",
    "it_IT.UTF-8", "pt_BR.UTF-8", "ja_JP.UTF-8", "zh_CN.UTF-8", "ko_KR.UTF-8",
]
DEMO_KEYMAPS = [
    "us", "uk", "de", "fr", "es", "it", "pt", "ru", "jp", "cn", "dvorak", "colemak",
]
DEMO_TIMEZONES = [
    "UTC", "America/New_York", "America/Chicago", "America/Denver",
    "America/Los_Angeles", "America/Sao_Paulo", "Europe/London", "Europe/Paris",
    "Europe/Berlin", "Asia/Tokyo", "Asia/Shanghai", "Asia/Kolkata",
    "Australia/Sydney",
]


def _list_from(cmd: Sequence[str], fallback: List[str]) -> List[str]:
    try:
        out = subprocess.run(list(cmd), capture_output=True, text=True, check=True, timeout=10)
    except (OSError, subprocess.SubprocessError) as e:
        log.warning("%s failed (%s), using fallback", " ".join(cmd), e)
        return list(fallback)
    items = [line.strip() for line in out.stdout.splitlines() if line.strip()]
    return items or list(fallback)


class Catalog:
    """Answers the picker queries; fixed lists when ``dryrun`` is set."""

    def __init__(self, dryrun: bool = False) -> None:
        self.dryrun = dryrun

    def locales(self) -> List[str]:
        if self.dryrun:
            return list(DEMO_LOCALES)
        return _list_from(["localectl", "list-locales"], ["en_US.UTF-8"])

    def keymaps(self) -> List[str]:
        if self.dryrun:
            return list(DEMO_KEYMAPS)
        return _list_from(["localectl", "list-keymaps"], ["us"])

    def timezones(self) -> List[str]:
        if self.dryrun:
            return list(DEMO_TIMEZONES)
        return _list_from(["timedatectl", "list-timezones"], ["UTC"])
