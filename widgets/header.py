# widgets/header.py
from __future__ import annotations
import pyfiglet
from textual.widgets import Static


class Banner(Static):
    """ASCII-art title shown at the top of both applications."""

    DEFAULT_CSS = """
    Banner {
        color: #7aa2f7;
        text-style: bold;
        width: 100%;
        padding: 0 2;
    }
    """

    def __init__(self, title: str = "vimgreet", subtitle: str = "") -> None:
        text = pyfiglet.figlet_format(title, font="small").rstrip("\n")
        if subtitle:
            text += f"\n{subtitle}"
        super().__init__(text, markup=False, id="banner")
