"""Tracking for fire-and-forget coroutines.

Detached work (post-navigation readiness waits, delayed glow teardown) is
spawned here instead of being left unobserved, so sessions and tests can
wait for it to finish.
"""
import asyncio
from typing import Awaitable, Optional, Set

from lulo.utils.logger import setup_logger


class BackgroundTasks:
    """
    A set of detached asyncio tasks that can be drained.

    Usage:
        tasks = BackgroundTasks("feedback")
        tasks.spawn(do_something(), name="glow-end")
        ...
        await tasks.drain()  # wait for everything spawned so far (and since)
    """

    def __init__(self, name: str = "background"):
        self.name = name
        self._tasks: Set[asyncio.Task] = set()
        self.logger = setup_logger(f"Tasks:{name}")

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Awaitable, name: Optional[str] = None) -> asyncio.Task:
        """Schedule a coroutine without awaiting it."""
        task = asyncio.ensure_future(coro)
        if name:
            task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.logger.warning(f"Background task {task.get_name()} failed: {exc}")

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until no background work is left.

        Tasks spawned while draining are waited for as well.

        Returns:
            True if everything finished, False if the timeout hit first
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout

        while self._tasks:
            pending = list(self._tasks)
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                return False
            done, _ = await asyncio.wait(pending, timeout=remaining)
            if not done:
                return False
            self._tasks.difference_update(done)
        return True

    async def cancel_all(self):
        """Cancel outstanding work (shutdown path)."""
        pending = list(self._tasks)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
