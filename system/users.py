# system/users.py
from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple
from logger import log

PASSWD = Path("/etc/passwd")
LOGIN_DEFS = Path("/etc/login.defs")
DEFAULT_UID_BOUNDS = (1000, 60000)
HIDDEN_USERS = ("nobody", "nfsnobody", "greeter")
NO_LOGIN_SHELLS = ("nologin", "false")


@dataclass(frozen=True)
class UserAccount:
    username: str
    display_name: Optional[str] = None

    @property
    def label(self) -> str:
        if self.display_name:
            return f"{self.username} ({self.display_name})"
        return self.username


def read_uid_bounds(path: Path = LOGIN_DEFS) -> Tuple[int, int]:
    """Return (UID_MIN, UID_MAX) from login.defs, with the usual defaults."""
    min_uid, max_uid = DEFAULT_UID_BOUNDS
    try:
        content = path.read_text()
    except OSError:
        log.warning("Could not read %s, using default UID bounds", path)
        return min_uid, max_uid

    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        parts = line.split()
        if len(parts) < 2 or not parts[1].isdigit():
            continue
        if parts[0] == "UID_MIN":
            min_uid = int(parts[1])
        elif parts[0] == "UID_MAX":
            max_uid = int(parts[1])
    return min_uid, max_uid


def parse_passwd_line(line: str, min_uid: int, max_uid: int) -> Optional[UserAccount]:
    parts = line.split(":")
    if len(parts) < 7:
        return None
    username, _, uid, _, gecos, _, shell = parts[:7]
    try:
        uid_num = int(uid)
    except ValueError:
        return None
    if not (min_uid <= uid_num <= max_uid):
        return None
    if any(s in shell for s in NO_LOGIN_SHELLS):
        return None
    name = gecos.split(",")[0].strip()
    return UserAccount(username, name if name and name != username else None)


def discover_users(passwd: Path = PASSWD, login_defs: Path = LOGIN_DEFS) -> List[UserAccount]:
    """Human login accounts, sorted by name."""
    min_uid, max_uid = read_uid_bounds(login_defs)
    try:
        lines = passwd.read_text().splitlines()
    except OSError:
        log.warning("Could not read %s", passwd)
        return []

    users = []
    for line in lines:
        user = parse_passwd_line(line, min_uid, max_uid)
        if user is not None and user.username not in HIDDEN_USERS:
            users.append(user)
    users.sort(key=lambda u: u.username)
    log.debug("Discovered %d users", len(users))
    return users
