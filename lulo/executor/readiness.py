"""Bounded, fail-open wait for a tab to finish loading."""
import asyncio
from typing import Optional

from lulo.models.step import TabStatus
from lulo.utils.logger import setup_logger
from lulo.utils.config import config


class ReadinessWaiter:
    """
    Polls a tab until it reports `complete`, disappears, or a deadline passes.

    The wait always ends: a tab that vanished (or whose lookup fails) has
    nothing left to wait for, and a tab stuck loading is treated as ready
    once the timeout elapses so the caller can carry on.
    """

    def __init__(self, host, poll_interval: Optional[float] = None, timeout: Optional[float] = None):
        """
        Args:
            host: Browser host exposing `async get_tab(tab_id) -> TabHandle`
            poll_interval: Seconds between status checks
            timeout: Default deadline in seconds
        """
        self.host = host
        self.poll_interval = poll_interval if poll_interval is not None else config.readiness_poll_interval
        self.timeout = timeout if timeout is not None else config.readiness_timeout
        self.logger = setup_logger("ReadinessWaiter")

    async def wait_until_ready(self, tab_id: int, timeout: Optional[float] = None) -> None:
        """Resolve when the tab is ready, gone, or the timeout elapsed. Never raises."""
        timeout = self.timeout if timeout is None else timeout
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            try:
                tab = await self.host.get_tab(tab_id)
            except Exception as e:
                self.logger.debug(f"Tab {tab_id} lookup failed, not waiting: {e}")
                return

            if tab is None or tab.status == TabStatus.GONE:
                self.logger.debug(f"Tab {tab_id} is gone, not waiting")
                return

            if tab.status == TabStatus.COMPLETE:
                return

            remaining = deadline - loop.time()
            if remaining <= 0:
                self.logger.warning(
                    f"Tab {tab_id} still loading after {timeout:.1f}s, proceeding anyway"
                )
                return

            await asyncio.sleep(min(self.poll_interval, remaining))
