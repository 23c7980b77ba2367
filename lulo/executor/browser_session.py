"""Browser session: the privileged host that owns tabs."""
import asyncio
from pathlib import Path
from typing import Dict, Optional, Set, Union

from playwright.async_api import (
    async_playwright,
    Playwright,
    Browser,
    BrowserContext,
    Page,
    Error as PlaywrightError,
)

from lulo.errors import TabNotFoundError, NoReceiverError
from lulo.executor.overlay_scripts import READY_STATE_JS
from lulo.executor.page_agent import PageAgent
from lulo.models.messages import Ack, PageMessage
from lulo.models.step import TabHandle, TabStatus
from lulo.utils.logger import setup_logger
from lulo.utils.config import config
from lulo.utils.tasks import BackgroundTasks


class BrowserSession:
    """
    One Playwright browser context whose pages are addressed as tabs.

    Tabs get small integer ids in the order they appear, including pages
    the site opens itself (popups, target=_blank). Navigation started by
    `create_tab` / `update_tab` runs in the background; the tab reports
    `loading` until it finishes, so callers poll readiness the same way
    whoever started the load.

    Usage:
        async with BrowserSession() as session:
            tab = await session.launch("https://example.com")
            await session.send_message(tab.tab_id, ClickElement(selector="#go"))
    """

    def __init__(
        self,
        headless: Optional[bool] = None,
        channel: Optional[str] = None,
        downloads_dir: Optional[Path] = None,
        debug: bool = False
    ):
        self.headless = config.browser_headless if headless is None else headless
        self.channel = channel or config.browser_channel
        self.downloads_dir = Path(downloads_dir or config.downloads_dir)
        self.debug = debug
        self.logger = setup_logger("BrowserSession")

        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None

        self._pages: Dict[int, Page] = {}
        self._agents: Dict[int, PageAgent] = {}
        self._loading: Dict[int, asyncio.Task] = {}
        self._closed: Set[int] = set()
        self._next_id = 1
        self.navigations = BackgroundTasks("navigation")

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def launch(self, url: Optional[str] = None) -> TabHandle:
        """Start the browser and open the first tab."""
        self.logger.info("Launching browser...")
        self.playwright = await async_playwright().start()
        self.browser = await self.playwright.chromium.launch(
            headless=self.headless,
            channel=self.channel,
            args=["--disable-blink-features=AutomationControlled"]
        )
        context = await self.browser.new_context(
            viewport={"width": config.viewport_width, "height": config.viewport_height}
        )
        self.attach(context)
        return await self.create_tab(url or config.browser_default_url)

    def attach(self, context: BrowserContext):
        """Adopt an already-open browser context and its pages."""
        self.context = context
        for page in context.pages:
            self._adopt(page)
        context.on("page", self._adopt)

    async def close(self):
        """Close browser and cleanup."""
        await self.navigations.cancel_all()

        if self.context:
            try:
                await self.context.close()
            except PlaywrightError as e:
                self.logger.debug(f"Context close: {e}")
            self.context = None

        if self.browser:
            try:
                await self.browser.close()
            except PlaywrightError as e:
                self.logger.debug(f"Browser close: {e}")
            self.browser = None

        if self.playwright:
            await self.playwright.stop()
            self.playwright = None

        self._pages.clear()
        self._agents.clear()
        self._loading.clear()
        self._closed.clear()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # =========================================================================
    # TABS
    # =========================================================================

    def _adopt(self, page: Page) -> int:
        for tab_id, known in self._pages.items():
            if known is page:
                return tab_id

        tab_id = self._next_id
        self._next_id += 1
        self._pages[tab_id] = page
        self._agents[tab_id] = PageAgent(tab_id, page, debug=self.debug)
        page.on("close", lambda _: self._forget(tab_id))
        self.logger.debug(f"Tracking tab {tab_id}")
        return tab_id

    def _forget(self, tab_id: int):
        """Drop a closed page; its id keeps reporting `gone`."""
        self._pages.pop(tab_id, None)
        self._agents.pop(tab_id, None)
        load = self._loading.pop(tab_id, None)
        if load is not None:
            load.cancel()
        self._closed.add(tab_id)
        self.logger.debug(f"Tab {tab_id} closed")

    def page(self, tab_id: int) -> Page:
        try:
            return self._pages[tab_id]
        except KeyError:
            raise TabNotFoundError(tab_id) from None

    async def _load(self, tab_id: int, page: Page, url: str):
        try:
            await page.goto(url, wait_until="load", timeout=config.navigation_timeout * 1000)
        except PlaywrightError as e:
            self.logger.warning(f"Tab {tab_id} did not finish loading {url}: {e}")
        finally:
            # A newer load may have replaced this one
            if self._loading.get(tab_id) is asyncio.current_task():
                del self._loading[tab_id]

    def _start_load(self, tab_id: int, page: Page, url: str):
        previous = self._loading.get(tab_id)
        if previous is not None:
            previous.cancel()
        self._loading[tab_id] = self.navigations.spawn(
            self._load(tab_id, page, url), name=f"load-tab-{tab_id}"
        )

    async def create_tab(self, url: str) -> TabHandle:
        """Open a new tab and start loading url in it."""
        if self.context is None:
            raise RuntimeError("Browser not launched")

        page = await self.context.new_page()
        tab_id = self._adopt(page)
        self._start_load(tab_id, page, url)
        self.logger.info(f"Opened tab {tab_id}: {url}")
        return TabHandle(tab_id=tab_id, status=TabStatus.LOADING, url=url)

    async def update_tab(self, tab_id: int, url: str) -> TabHandle:
        """Point an existing tab at a new URL."""
        page = self.page(tab_id)
        if page.is_closed():
            raise TabNotFoundError(tab_id)
        self._start_load(tab_id, page, url)
        self.logger.info(f"Tab {tab_id} -> {url}")
        return TabHandle(tab_id=tab_id, status=TabStatus.LOADING, url=url)

    async def get_tab(self, tab_id: int) -> TabHandle:
        """Current status of a tab."""
        if tab_id in self._closed:
            return TabHandle(tab_id=tab_id, status=TabStatus.GONE)
        page = self.page(tab_id)
        if page.is_closed():
            self._forget(tab_id)
            return TabHandle(tab_id=tab_id, status=TabStatus.GONE)

        if tab_id in self._loading:
            return TabHandle(tab_id=tab_id, status=TabStatus.LOADING, url=page.url)

        try:
            state = await page.evaluate(READY_STATE_JS)
        except PlaywrightError:
            # Mid-navigation: the execution context is being replaced
            state = "loading"

        status = TabStatus.COMPLETE if state == "complete" else TabStatus.LOADING
        return TabHandle(tab_id=tab_id, status=status, url=page.url)

    @property
    def tab_ids(self):
        return [tab_id for tab_id, page in self._pages.items() if not page.is_closed()]

    # =========================================================================
    # MESSAGES / CAPTURE / FILES
    # =========================================================================

    async def send_message(self, tab_id: int, message: PageMessage) -> Ack:
        """Deliver a message to the tab's in-page surface and return its ack."""
        agent = self._agents.get(tab_id)
        if agent is None:
            raise NoReceiverError(tab_id)
        return await agent.handle(message)

    async def capture_tab(self, tab_id: int, quality: int = 50) -> bytes:
        """JPEG capture of the visible part of a tab."""
        page = self.page(tab_id)
        if page.is_closed():
            raise TabNotFoundError(tab_id)
        return await page.screenshot(type="jpeg", quality=quality)

    async def save_download(self, filename: str, content: Union[str, bytes]) -> Path:
        """Write content into the downloads directory."""
        self.downloads_dir.mkdir(parents=True, exist_ok=True)
        path = self.downloads_dir / filename
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
        self.logger.info(f"Saved {path}")
        return path

    async def page_title(self, tab_id: int) -> str:
        page = self.page(tab_id)
        if page.is_closed():
            return ""
        try:
            return await page.title()
        except PlaywrightError:
            return ""
