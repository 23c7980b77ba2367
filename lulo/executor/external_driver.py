"""External automation driver: a browser process Lulo owns outright."""
import base64
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

from playwright.async_api import (
    async_playwright,
    Playwright,
    Browser,
    BrowserContext,
    Page,
)

from lulo.errors import DriverNotLaunchedError, BlockedUrlError
from lulo.executor.overlay_scripts import PageOverlay
from lulo.utils.logger import setup_logger
from lulo.utils.config import config
from lulo.utils.safety_guard import safety_guard


@dataclass
class DriverResult:
    """Uniform outcome of every driver operation."""
    success: bool
    error: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"success": self.success}
        if self.error is not None:
            result["error"] = self.error
        if self.message is not None:
            result["message"] = self.message
        return result


class OverlayWindow:
    """
    Glow border and status badge pinned over the driven page.

    The layer is top-most and pointer-transparent, so it never intercepts
    the driver's own clicks. It is registered as an init script and comes
    back on every document the page loads.
    """

    def __init__(self, page: Page, idle_text: Optional[str] = None):
        self.page = page
        self.idle_text = idle_text or config.idle_status_text
        self.overlay = PageOverlay(page)
        self.status_text = self.idle_text
        self.visible = False

    async def open(self):
        relight = (
            "document.addEventListener('DOMContentLoaded', "
            f"() => window.__lulo && window.__lulo.glow(true, {json.dumps(self.idle_text)}));"
        )
        await self.overlay.persist(relight)
        await self.show()

    async def show(self):
        self.visible = await self.overlay.glow(True, self.status_text)

    async def hide(self):
        await self.overlay.glow(False)
        self.visible = False

    async def set_status(self, text: str):
        self.status_text = text
        await self.overlay.status(text)

    async def ring(self, x: float, y: float):
        await self.overlay.ring(x, y)

    async def close(self):
        if self.visible:
            await self.hide()


class ExternalAutomationDriver:
    """
    Drives a separate browser with an overlay showing what it is doing.

    Every public operation returns a result instead of raising; calls made
    before `launch()` fail with "Browser not launched".

    Usage:
        driver = ExternalAutomationDriver()
        await driver.launch(url="https://example.com")
        await driver.click(200, 300)
        await driver.close()
    """

    def __init__(self, headless: Optional[bool] = None, channel: Optional[str] = None):
        self.headless = config.browser_headless if headless is None else headless
        self.channel = channel or config.browser_channel
        self.logger = setup_logger("ExternalDriver")

        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None
        self.overlay: Optional[OverlayWindow] = None

    def is_running(self) -> bool:
        return self.page is not None and not self.page.is_closed()

    def _require_page(self) -> Page:
        if not self.is_running():
            raise DriverNotLaunchedError()
        return self.page

    async def _restore_idle(self):
        if self.overlay is not None and self.is_running():
            await self.overlay.set_status(self.overlay.idle_text)

    async def launch(
        self,
        url: Optional[str] = None,
        headless: Optional[bool] = None,
        width: Optional[int] = None,
        height: Optional[int] = None
    ) -> DriverResult:
        """Start a fresh browser (closing any previous one) and show the overlay."""
        if self.playwright is not None:
            await self.close()

        try:
            self.playwright = await async_playwright().start()
            self.browser = await self.playwright.chromium.launch(
                headless=self.headless if headless is None else headless,
                channel=self.channel,
                args=["--disable-blink-features=AutomationControlled"]
            )
            self.context = await self.browser.new_context(
                viewport={
                    "width": width or config.viewport_width,
                    "height": height or config.viewport_height,
                }
            )
            self.page = await self.context.new_page()

            self.overlay = OverlayWindow(self.page)
            await self.overlay.open()
        except Exception as e:
            self.logger.error(f"Launch failed: {e}")
            await self.close()
            return DriverResult(success=False, error=str(e))

        self.logger.info("Browser launched")
        if url:
            result = await self.navigate(url)
            if not result.success:
                return DriverResult(success=True, message=f"Browser launched; {result.error}")
        return DriverResult(success=True, message="Browser launched")

    async def navigate(self, url: str) -> DriverResult:
        try:
            page = self._require_page()
            check = safety_guard.check_url(url)
            if not check.allowed:
                raise BlockedUrlError(check.reason)

            await self.update_status("Navigating...")
            await page.goto(url, wait_until="networkidle", timeout=config.navigation_timeout * 1000)
            return DriverResult(success=True)
        except Exception as e:
            self.logger.warning(f"Navigate failed: {e}")
            return DriverResult(success=False, error=str(e))
        finally:
            await self._restore_idle()

    async def click(self, x: float, y: float) -> DriverResult:
        try:
            page = self._require_page()
            await self.update_status("Clicking...")
            await self.overlay.ring(x, y)
            await page.mouse.click(x, y)
            return DriverResult(success=True)
        except Exception as e:
            self.logger.warning(f"Click failed: {e}")
            return DriverResult(success=False, error=str(e))
        finally:
            await self._restore_idle()

    async def type(self, text: str, delay: Optional[int] = None) -> DriverResult:
        """Type into whatever has focus; delay is per keystroke in ms."""
        try:
            page = self._require_page()
            await self.update_status("Typing...")
            await page.keyboard.type(text, delay=config.type_delay_ms if delay is None else delay)
            return DriverResult(success=True)
        except Exception as e:
            self.logger.warning(f"Type failed: {e}")
            return DriverResult(success=False, error=str(e))
        finally:
            await self._restore_idle()

    async def screenshot(self) -> Optional[str]:
        """PNG data URL of the viewport, or None."""
        try:
            page = self._require_page()
            data = await page.screenshot(type="png")
        except Exception as e:
            self.logger.warning(f"Screenshot failed: {e}")
            return None
        return "data:image/png;base64," + base64.b64encode(data).decode("ascii")

    async def get_page_content(self) -> Optional[str]:
        try:
            return await self._require_page().content()
        except Exception as e:
            self.logger.warning(f"Could not read page content: {e}")
            return None

    async def update_status(self, text: str) -> DriverResult:
        if self.overlay is None or not self.is_running():
            return DriverResult(success=False, error=str(DriverNotLaunchedError()))
        await self.overlay.set_status(text)
        return DriverResult(success=True)

    async def close(self) -> DriverResult:
        """Tear down overlay, then browser, then the Playwright runtime."""
        if self.overlay is not None:
            if self.is_running():
                try:
                    await self.overlay.close()
                except Exception as e:
                    self.logger.debug(f"Overlay close: {e}")
            self.overlay = None

        for name in ("context", "browser"):
            resource = getattr(self, name)
            if resource is not None:
                try:
                    await resource.close()
                except Exception as e:
                    self.logger.debug(f"{name} close: {e}")
                setattr(self, name, None)
        self.page = None

        if self.playwright is not None:
            try:
                await self.playwright.stop()
            except Exception as e:
                self.logger.debug(f"Playwright stop: {e}")
            self.playwright = None

        self.logger.info("Browser closed")
        return DriverResult(success=True)
