# app.py
from __future__ import annotations
import asyncio
from typing import Optional

from textual.app import App
from textual.screen import Screen

from control import ControlLoop, Controller
from events import TICK_INTERVAL, EventSource
from greeter.controller import GreeterController
from logger import log
from onboard.controller import OnboardController


class VimgreetApp(App, inherit_bindings=False):
    """Owns the terminal and runs the ControlLoop for one controller.

    Textual restores the terminal on every exit path; the loop's return
    code becomes the process exit code.
    """

    ENABLE_COMMAND_PALETTE = False

    CSS = """
    Screen {
        background: $surface;
    }
    .title {
        text-style: bold;
        color: $accent;
        margin-bottom: 1;
    }
    #banner {
        color: $primary;
        margin: 1 2;
    }
    #content {
        margin: 1 2;
    }
    #form, #body {
        margin-bottom: 1;
    }
    #prompt, #overlay {
        margin-top: 1;
    }
    #statusbar {
        dock: bottom;
        height: 1;
        background: $panel;
    }
    """

    def __init__(self, controller: Controller, tick_interval: float = TICK_INTERVAL) -> None:
        super().__init__()
        self.controller = controller
        self.event_source = EventSource(tick_interval)
        self.control_loop = ControlLoop(controller, self.event_source, self.redraw_screen)
        self.main_screen: Optional[Screen] = None
        self._loop_task: Optional[asyncio.Task] = None

    def make_screen(self) -> Screen:
        raise NotImplementedError

    async def on_mount(self) -> None:
        self.main_screen = self.make_screen()
        await self.push_screen(self.main_screen)
        self._loop_task = asyncio.create_task(self._run_loop())

    def on_unmount(self) -> None:
        if self._loop_task is not None and not self._loop_task.done():
            self._loop_task.cancel()

    def redraw_screen(self) -> None:
        if self.main_screen is not None and self.main_screen.is_mounted:
            self.main_screen.refresh_view()

    async def _run_loop(self) -> None:
        try:
            code = await self.control_loop.run()
        except Exception:
            log.exception("Control loop crashed")
            self.exit(return_code=1)
            return
        log.info("%s exiting with code %d", type(self).__name__, code)
        self.exit(return_code=code)


class GreeterApp(VimgreetApp):
    """vimgreet login screen."""

    def __init__(self, controller: GreeterController, **kwargs) -> None:
        super().__init__(controller, **kwargs)
        log.info("GreeterApp started")

    def make_screen(self) -> Screen:
        from screens.greeter import GreeterScreen
        return GreeterScreen(self.controller)


class OnboardApp(VimgreetApp):
    """vimgreet first-boot setup wizard."""

    def __init__(self, controller: OnboardController, **kwargs) -> None:
        super().__init__(controller, **kwargs)
        log.info("OnboardApp started")

    def make_screen(self) -> Screen:
        from screens.onboard import OnboardScreen
        return OnboardScreen(self.controller)
