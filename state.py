# state.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional, Set, Tuple

from auth.secret import Secret, wipe

PackageKey = Tuple[int, int]   # (category index, package index)


@dataclass
class WizardSelections:
    """Values picked so far. Nothing here touches the system."""

    # User step
    username: str = ""
    password: Optional[Secret] = field(default=None, repr=False)

    # Picker steps; None = skipped
    locale: Optional[str] = None
    keymap: Optional[str] = None
    timezone: Optional[str] = None

    # Packages step
    packages: Set[PackageKey] = field(default_factory=set)

    def set_password(self, secret: Secret) -> None:
        wipe(self.password)
        self.password = secret

    def clear_password(self) -> None:
        wipe(self.password)
        self.password = None
