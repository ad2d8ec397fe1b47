# widgets/text.py
"""Rich markup for fields, the mode line and the status line."""
from __future__ import annotations
from typing import Optional

from rich.markup import escape

from control import Controller
from vim.buffer import InputBuffer
from vim.editor import Field, Mode

MODE_STYLES = {
    Mode.NORMAL: "bold black on #7aa2f7",
    Mode.INSERT: "bold black on #9ece6a",
    Mode.COMMAND: "bold black on #e0af68",
}


def buffer_markup(buffer: InputBuffer, show_cursor: bool) -> str:
    text = buffer.display()
    if not show_cursor:
        return escape(text)
    cursor = buffer.cursor
    under = text[cursor] if cursor < len(text) else " "
    return f"{escape(text[:cursor])}[reverse]{escape(under)}[/reverse]{escape(text[cursor + 1:])}"


def field_markup(field: Field, focused: bool, show_cursor: bool = True, width: int = 12) -> str:
    marker = "[bold #7aa2f7]>[/]" if focused else " "
    label = escape(field.label.ljust(width))
    value = buffer_markup(field.buffer, focused and show_cursor)
    return f"{marker} {label} {value}"


def mode_markup(controller: Controller) -> str:
    editor = controller.editor
    tag = f"[{MODE_STYLES[editor.mode]}] {editor.mode.value} [/]"
    if editor.mode is Mode.COMMAND:
        return f"{tag} :{buffer_markup(editor.command_buffer, True)}"
    if editor.pending_operator:
        return f"{tag} {escape(editor.pending_operator)}"
    return tag


def status_markup(controller: Controller, busy: Optional[str] = None, demo: bool = False) -> str:
    parts = [mode_markup(controller)]
    if busy:
        parts.append(f"[#e0af68]{controller.spinner} {escape(busy)}[/]")
    if controller.status:
        color = "#f7768e" if controller.status_is_error else "#9ece6a"
        parts.append(f"[{color}]{escape(controller.status)}[/]")
    if demo:
        parts.append("[bold #f7768e]\\[DEMO][/]")
    return "  ".join(parts)


def picker_markup(picker, rows: int = 10) -> str:
    """Filter line followed by a window of matches around the highlight."""
    lines = [f"[bold]{escape(picker.field.label)}[/]  filter: {buffer_markup(picker.field.buffer, True)}"]
    if picker.loading:
        lines.append("[dim]  loading...[/]")
        return "\n".join(lines)
    matches = picker.matches
    if not matches:
        lines.append("[dim]  no matches[/]")
        return "\n".join(lines)
    current = picker.current
    start = max(0, min(picker.index - rows // 2, len(matches) - rows))
    for item in matches[start:start + rows]:
        label = escape(item[1])
        if item == current:
            lines.append(f"[reverse] > {label} [/reverse]")
        else:
            lines.append(f"   {label}")
    if len(matches) > rows:
        lines.append(f"[dim]  {picker.index + 1}/{len(matches)}[/]")
    return "\n".join(lines)
