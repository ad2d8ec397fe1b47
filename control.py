# control.py
"""The single consumer of the merged event stream.

One event is handled to completion, every controller channel is drained,
then the view is rendered. Nothing here blocks.
"""
from __future__ import annotations
from typing import Callable, Optional

from events import EventSource, Event, KeyInput, MouseInput, Tick
from vim.editor import Field, FocusState, ModalEditor
from logger import log

SPINNER_FRAMES = ["⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏"]


class Controller:
    """State shared by the greeter and onboard controllers."""

    def __init__(self, editor: ModalEditor) -> None:
        self.editor = editor
        self.focus = FocusState()
        self.status = ""
        self.status_is_error = False
        self.should_exit = False
        self.exit_code = 0
        self.spinner_index = 0
        # Replaced by the ControlLoop so background replies wake it up.
        self.wake: Callable[[], None] = lambda: None

    # -- Status line -------------------------------------------------------

    def notify(self, message: str, error: bool = False) -> None:
        self.status = message
        self.status_is_error = error
        if error:
            log.warning(message)

    @property
    def spinner(self) -> str:
        return SPINNER_FRAMES[self.spinner_index % len(SPINNER_FRAMES)]

    # -- Focus -------------------------------------------------------------

    @property
    def field(self) -> Optional[Field]:
        return self.focus.current

    def set_fields(self, fields, focus: Optional[str] = None) -> None:
        self.focus = FocusState(list(fields))
        if focus is not None:
            self.focus.focus(focus)
        self.editor.focus(self.focus.current)

    def focus_field(self, name: str) -> None:
        self.focus.focus(name)
        self.editor.focus(self.focus.current)

    def focus_next(self) -> None:
        self.focus.next()
        self.editor.focus(self.focus.current)

    def focus_prev(self) -> None:
        self.focus.prev()
        self.editor.focus(self.focus.current)

    # -- Event entry points ------------------------------------------------

    def dispatch(self, event: Event) -> None:
        if isinstance(event, KeyInput):
            self.status = ""
            self.status_is_error = False
            self.handle_key(event)
        elif isinstance(event, Tick):
            self.spinner_index += 1
            self.tick()
        elif isinstance(event, MouseInput):
            self.handle_mouse(event)

    def handle_key(self, key: KeyInput) -> None:
        raise NotImplementedError

    def handle_mouse(self, event: MouseInput) -> None:
        pass

    def tick(self) -> None:
        pass

    def channels(self) -> None:
        """Drain every background channel owned by the controller."""

    def request_exit(self, code: int = 0) -> None:
        log.info("Exit requested (code %d)", code)
        self.should_exit = True
        self.exit_code = code

    def shutdown(self) -> None:
        """Tear down background work; called once when the loop ends."""


class ControlLoop:
    def __init__(
        self,
        controller: Controller,
        events: EventSource,
        render: Callable[[], None] = lambda: None,
    ) -> None:
        self.controller = controller
        self.events = events
        self.render = render
        self.iterations = 0
        controller.wake = events.poke

    def step(self, event: Event) -> None:
        self.controller.dispatch(event)
        self.controller.channels()
        self.render()
        self.iterations += 1

    async def run(self) -> int:
        self.events.start()
        try:
            self.controller.channels()
            self.render()
            while not self.controller.should_exit:
                event = await self.events.next()
                self.step(event)
        finally:
            self.events.stop()
            self.controller.shutdown()
        return self.controller.exit_code
