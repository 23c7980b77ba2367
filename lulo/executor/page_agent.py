"""The in-page surface: answers typed messages sent to one tab."""
from typing import Awaitable, Callable, Dict

from playwright.async_api import Page, Error as PlaywrightError

from lulo.errors import NoReceiverError
from lulo.executor.dom_executor import DomActionExecutor
from lulo.executor.overlay_scripts import PageOverlay, PAGE_INFO_JS, EXTRACT_JS
from lulo.models.messages import (
    Ack,
    MessageType,
    PageMessage,
    ClickElement,
    TypeText,
    LuloStatus,
    LuloRipple,
    Guide,
    Preview,
    ExtractData,
)
from lulo.utils.logger import setup_logger
from lulo.utils.config import config


WORKING_TEXT = "Lulo is working..."


class PageAgent:
    """
    Receives messages for one tab and performs them in its page.

    Action messages (click, type, extract, ...) are answered with an Ack
    describing the outcome. Feedback messages always ack success; the
    overlay swallows its own delivery problems. A closed page has no
    receiver and raises NoReceiverError.
    """

    def __init__(self, tab_id: int, page: Page, debug: bool = False):
        self.tab_id = tab_id
        self.page = page
        self.overlay = PageOverlay(page)
        self.executor = DomActionExecutor(page, overlay=self.overlay, debug=debug)
        self.logger = setup_logger("PageAgent")

        self._handlers: Dict[MessageType, Callable[[PageMessage], Awaitable[Ack]]] = {
            MessageType.CLICK_ELEMENT: self._click,
            MessageType.TYPE_TEXT: self._type,
            MessageType.LULO_START: self._start,
            MessageType.LULO_END: self._end,
            MessageType.LULO_STATUS: self._status,
            MessageType.LULO_RIPPLE: self._ripple,
            MessageType.GUIDE: self._guide,
            MessageType.GUIDE_HIDE: self._hide_guide,
            MessageType.PREVIEW: self._preview,
            MessageType.GET_PAGE_INFO: self._page_info,
            MessageType.EXTRACT_DATA: self._extract,
        }

    async def handle(self, message: PageMessage) -> Ack:
        if self.page.is_closed():
            raise NoReceiverError(self.tab_id)

        handler = self._handlers.get(message.type)
        if handler is None:
            return Ack.fail(f"Unsupported message: {message.type}")

        try:
            return await handler(message)
        except PlaywrightError as e:
            if self.page.is_closed():
                raise NoReceiverError(self.tab_id, str(e)) from e
            self.logger.warning(f"{message.type.value} failed on tab {self.tab_id}: {e}")
            return Ack.fail(str(e))

    # Actions

    async def _click(self, message: ClickElement) -> Ack:
        result = await self.executor.click(message.selector)
        if not result.success:
            return Ack.fail(result.error)
        return Ack.ok(description=result.description, selector=result.selector)

    async def _type(self, message: TypeText) -> Ack:
        result = await self.executor.type(message.selector, message.text)
        if not result.success:
            return Ack.fail(result.error)
        return Ack.ok(description=result.description, selector=result.selector)

    async def _guide(self, message: Guide) -> Ack:
        element = None
        if message.target:
            element = await self.executor.resolver.resolve(message.target)
            if element is None:
                self.logger.warning(f"Guide target not found: {message.target}")
        shown = await self.overlay.guide(message.message, element)
        return Ack.ok(shown=shown, highlighted=element is not None)

    async def _hide_guide(self, message: PageMessage) -> Ack:
        await self.overlay.hide_guide()
        return Ack.ok()

    async def _preview(self, message: Preview) -> Ack:
        shown = await self.overlay.preview(message.html, message.css, message.js)
        if not shown:
            return Ack.fail("Preview could not be rendered")
        return Ack.ok()

    async def _page_info(self, message: PageMessage) -> Ack:
        info = await self.page.evaluate(PAGE_INFO_JS, config.page_snippet_limit)
        return Ack.ok(**(info or {}))

    async def _extract(self, message: ExtractData) -> Ack:
        content = await self.page.evaluate(EXTRACT_JS, [message.selector, message.format])
        return Ack.ok(content=content or "")

    # Feedback

    async def _start(self, message: PageMessage) -> Ack:
        await self.overlay.glow(True, WORKING_TEXT)
        return Ack.ok()

    async def _end(self, message: PageMessage) -> Ack:
        await self.overlay.glow(False)
        return Ack.ok()

    async def _status(self, message: LuloStatus) -> Ack:
        await self.overlay.status(message.text)
        return Ack.ok()

    async def _ripple(self, message: LuloRipple) -> Ack:
        await self.overlay.ring(message.x, message.y)
        return Ack.ok()
