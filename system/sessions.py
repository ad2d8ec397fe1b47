# system/sessions.py
from __future__ import annotations
import configparser
import os
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple
from logger import log

DEFAULT_DATA_DIRS = "/usr/local/share:/usr/share"
SESSION_DIRS = (("wayland-sessions", "wayland"), ("xsessions", "x11"))


@dataclass(frozen=True)
class DesktopSession:
    name: str
    slug: str
    exec: str
    desktop_names: Tuple[str, ...] = ()
    session_type: str = "wayland"

    @property
    def label(self) -> str:
        return f"{self.name} ({self.session_type})"

    def command(self) -> List[str]:
        try:
            return shlex.split(self.exec)
        except ValueError:
            return [self.exec]

    def environment(self) -> List[str]:
        env = [f"XDG_SESSION_TYPE={self.session_type}"]
        if self.desktop_names:
            env.append(f"XDG_CURRENT_DESKTOP={':'.join(self.desktop_names)}")
        return env


def parse_desktop_file(path: Path, session_type: str) -> Optional[DesktopSession]:
    parser = configparser.ConfigParser(interpolation=None, strict=False)
    parser.optionxform = str  # keys are case-sensitive
    try:
        parser.read(path, encoding="utf-8")
    except (configparser.Error, UnicodeDecodeError) as e:
        log.warning("Ignoring malformed session file %s: %s", path, e)
        return None
    if not parser.has_section("Desktop Entry"):
        return None
    entry = parser["Desktop Entry"]
    if entry.get("Hidden") == "true" or entry.get("NoDisplay") == "true":
        return None
    name, exec_line = entry.get("Name"), entry.get("Exec")
    if not name or not exec_line:
        return None
    names = tuple(n for n in entry.get("DesktopNames", "").split(";") if n)
    return DesktopSession(name, path.stem, exec_line, names, session_type)


def discover_sessions(data_dirs: Optional[str] = None) -> List[DesktopSession]:
    """Sessions from every XDG data dir, sorted by name; earlier dirs win on slug clashes."""
    data_dirs = data_dirs or os.environ.get("XDG_DATA_DIRS") or DEFAULT_DATA_DIRS
    found: List[DesktopSession] = []
    seen = set()
    for base in data_dirs.split(":"):
        if not base:
            continue
        for subdir, session_type in SESSION_DIRS:
            directory = Path(base) / subdir
            if not directory.is_dir():
                continue
            for path in sorted(directory.glob("*.desktop")):
                session = parse_desktop_file(path, session_type)
                if session is not None and session.slug not in seen:
                    seen.add(session.slug)
                    found.append(session)

    sessions = sorted(found, key=lambda s: s.name.lower())
    log.debug("Discovered %d sessions", len(sessions))
    return sessions
