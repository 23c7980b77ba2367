"""Visual feedback: glow, status badge and click ring across surfaces.

Feedback is cosmetic. Every call here is fire-and-forget and every
delivery failure (no overlay, tab gone, page mid-navigation) is dropped
with a debug log; the action that triggered it is never affected.
"""
import asyncio
from typing import Any, Callable, List, Optional, Sequence

from lulo.models.messages import LuloStart, LuloEnd, LuloStatus, LuloRipple
from lulo.utils.logger import setup_logger
from lulo.utils.config import config
from lulo.utils.tasks import BackgroundTasks


class FeedbackSurface:
    """Something that can show the glow, badge and ring for a tab."""

    name = "surface"

    async def start(self, tab_id: Optional[int]):
        pass

    async def end(self, tab_id: Optional[int]):
        pass

    async def status(self, tab_id: Optional[int], text: str):
        pass

    async def ripple(self, tab_id: Optional[int], x: float, y: float):
        pass


class TabSurface(FeedbackSurface):
    """The overlay inside the tab itself, reached through the tab host."""

    name = "tab"

    def __init__(self, host):
        self.host = host

    async def start(self, tab_id):
        if tab_id is not None:
            await self.host.send_message(tab_id, LuloStart())

    async def end(self, tab_id):
        if tab_id is not None:
            await self.host.send_message(tab_id, LuloEnd())

    async def status(self, tab_id, text):
        if tab_id is not None:
            await self.host.send_message(tab_id, LuloStatus(text=text))

    async def ripple(self, tab_id, x, y):
        if tab_id is not None:
            await self.host.send_message(tab_id, LuloRipple(x=x, y=y))


class ListenerSurface(FeedbackSurface):
    """
    Privileged-context listeners (side panel, popup, CLI).

    Callbacks receive `(event, tab_id, payload)` where event is one of
    start/end/status/ripple. They may be sync or async.
    """

    name = "listeners"

    def __init__(self, listeners: Optional[List[Callable]] = None):
        self.listeners: List[Callable] = list(listeners or [])

    def add_listener(self, callback: Callable):
        self.listeners.append(callback)

    async def _emit(self, event: str, tab_id, payload: Any = None):
        for callback in list(self.listeners):
            result = callback(event, tab_id, payload)
            if asyncio.iscoroutine(result):
                await result

    async def start(self, tab_id):
        await self._emit("start", tab_id)

    async def end(self, tab_id):
        await self._emit("end", tab_id)

    async def status(self, tab_id, text):
        await self._emit("status", tab_id, text)

    async def ripple(self, tab_id, x, y):
        await self._emit("ripple", tab_id, {"x": x, "y": y})


class DriverOverlaySurface(FeedbackSurface):
    """The overlay layer of an ExternalAutomationDriver; ignores tab ids."""

    name = "driver"

    def __init__(self, driver):
        self.driver = driver

    def _overlay(self):
        overlay = self.driver.overlay
        if overlay is None or not self.driver.is_running():
            raise RuntimeError("Driver overlay not available")
        return overlay

    async def start(self, tab_id):
        await self._overlay().show()

    async def end(self, tab_id):
        await self._overlay().hide()

    async def status(self, tab_id, text):
        await self._overlay().set_status(text)

    async def ripple(self, tab_id, x, y):
        await self._overlay().ring(x, y)


class VisualFeedbackSynchronizer:
    """
    Fans start/end/status/ripple signals out to every surface.

    Each signal is spawned on a BackgroundTasks set and returns immediately;
    surfaces are tried independently so one broken surface does not hide
    feedback on the others.
    """

    def __init__(self, surfaces: Sequence[FeedbackSurface] = (), tasks: Optional[BackgroundTasks] = None):
        self.surfaces: List[FeedbackSurface] = list(surfaces)
        self.tasks = tasks or BackgroundTasks("feedback")
        self.logger = setup_logger("VisualFeedback")

    def add_surface(self, surface: FeedbackSurface):
        self.surfaces.append(surface)

    async def _deliver(self, signal: str, tab_id, *args):
        for surface in list(self.surfaces):
            try:
                await getattr(surface, signal)(tab_id, *args)
            except Exception as e:
                self.logger.debug(f"{signal} not delivered to {surface.name} (tab {tab_id}): {e}")

    def _spawn(self, signal: str, tab_id, *args) -> asyncio.Task:
        return self.tasks.spawn(self._deliver(signal, tab_id, *args), name=f"feedback-{signal}")

    def start(self, tab_id) -> asyncio.Task:
        return self._spawn("start", tab_id)

    def end(self, tab_id) -> asyncio.Task:
        return self._spawn("end", tab_id)

    def update_status(self, tab_id, text: str) -> asyncio.Task:
        return self._spawn("status", tab_id, text)

    def ripple(self, tab_id, x: float, y: float) -> asyncio.Task:
        return self._spawn("ripple", tab_id, x, y)

    def end_later(self, tab_id, delay: Optional[float] = None) -> asyncio.Task:
        """End the glow after a delay, so rapid plans don't flicker."""
        delay = config.glow_end_delay if delay is None else delay

        async def _end():
            await asyncio.sleep(delay)
            await self._deliver("end", tab_id)

        return self.tasks.spawn(_end(), name="feedback-end-later")

    async def drain(self, timeout: Optional[float] = None) -> bool:
        return await self.tasks.drain(timeout)
