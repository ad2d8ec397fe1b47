# validators.py
from __future__ import annotations
import re
from typing import Tuple

USERNAME_RE = re.compile(r"^[a-z_][a-z0-9_-]*\$?$")
MAX_USERNAME = 32
RESERVED_USERNAMES = ("root", "nobody", "greeter")


def validate_login_name(username: str) -> Tuple[bool, str]:
    """Loose check used by the greeter: greetd/PAM decide the rest."""
    if not username.strip():
        return False, "Username is required."
    if any(c.isspace() for c in username):
        return False, "Username must not contain whitespace."
    return True, ""


def validate_username(username: str) -> Tuple[bool, str]:
    if not username:
        return False, "Username is required."
    if len(username) > MAX_USERNAME:
        return False, f"Username must be at most {MAX_USERNAME} characters."
    if not USERNAME_RE.match(username):
        return False, (
            f"'{username}' is not a valid username: use lowercase letters, "
            "digits, '_' or '-', starting with a letter or '_'."
        )
    if username in RESERVED_USERNAMES:
        return False, f"'{username}' is reserved."
    return True, ""


def validate_password(password: str, confirm: str, min_length: int = 8) -> Tuple[bool, str]:
    if len(password) < min_length:
        return False, f"Password must be at least {min_length} characters."
    if password != confirm:
        return False, "Passwords do not match."
    return True, ""
