"""Concrete DOM effects against resolved elements."""
import asyncio
from dataclasses import dataclass
from typing import Optional

from playwright.async_api import Page, Locator, Error as PlaywrightError

from lulo.executor.element_resolver import ElementResolver
from lulo.executor.overlay_scripts import (
    PageOverlay,
    ELEMENT_INFO_JS,
    SCROLL_CENTER_JS,
    NATIVE_CLICK_JS,
    SET_VALUE_JS,
    READ_TEXT_JS,
)
from lulo.models.element_info import ElementInfo
from lulo.utils.logger import setup_logger
from lulo.utils.config import config


@dataclass
class DomActionResult:
    """Result of a DOM action."""
    success: bool
    error: Optional[str] = None
    description: Optional[str] = None  # Human-readable element description
    selector: Optional[str] = None     # Generated selector for the element


class DomActionExecutor:
    """
    Clicks and types on a page the way a user would see it happen.

    Elements are found through ElementResolver; every outcome, good or bad,
    is announced with an in-page toast. Nothing raises past this class: a
    failure is a DomActionResult with success=False.
    """

    def __init__(self, page: Page, overlay: Optional[PageOverlay] = None, debug: bool = False):
        self.page = page
        self.resolver = ElementResolver(page, debug=debug)
        self.overlay = overlay or PageOverlay(page)
        self.logger = setup_logger("DomActionExecutor")

    async def describe(self, element: Locator) -> ElementInfo:
        """Read what we need to describe an element."""
        try:
            info = await element.evaluate(ELEMENT_INFO_JS)
        except PlaywrightError as e:
            self.logger.debug(f"Could not read element info: {e}")
            return ElementInfo()
        return ElementInfo.model_validate(info or {})

    async def click(self, target: str) -> DomActionResult:
        """
        Click the element a target refers to.

        Highlight, scroll to centre, let the scroll settle, show a ring at
        the element's centre, then activate it natively.
        """
        element = await self.resolver.resolve(target)
        if element is None:
            self.logger.warning(f"Could not find element: {target}")
            await self.overlay.toast(f"Could not find element: {target}", "error")
            return DomActionResult(success=False, error=f"Element not found: {target}")

        try:
            info = await self.describe(element)
            await self.overlay.highlight(element)
            await element.evaluate(SCROLL_CENTER_JS)
            await asyncio.sleep(config.click_settle_delay)

            box = await element.bounding_box()
            if box:
                await self.overlay.ring(box["x"] + box["width"] / 2, box["y"] + box["height"] / 2)

            await element.evaluate(NATIVE_CLICK_JS)
        except PlaywrightError as e:
            self.logger.error(f"Click failed on {target}: {e}")
            await self.overlay.toast(f"Click failed: {target}", "error")
            return DomActionResult(success=False, error=f"Click failed: {e}")

        description = info.describe()
        self.logger.info(f"Clicked: {description}")
        await self.overlay.toast(f"Clicked: {description}")
        return DomActionResult(success=True, description=description, selector=info.to_selector())

    async def type(self, target: str, text: str) -> DomActionResult:
        """Set an input's value and fire both input and change events."""
        element = await self.resolver.resolve_input(target)
        if element is None:
            self.logger.warning(f"Could not find input: {target}")
            await self.overlay.toast(f"Could not find input: {target}", "error")
            return DomActionResult(success=False, error=f"Input not found: {target}")

        try:
            info = await self.describe(element)
            await element.evaluate(SCROLL_CENTER_JS)
            await element.evaluate(SET_VALUE_JS, text)
        except PlaywrightError as e:
            self.logger.error(f"Type failed on {target}: {e}")
            await self.overlay.toast(f"Could not type into: {target}", "error")
            return DomActionResult(success=False, error=f"Type failed: {e}")

        self.logger.info(f"Typed {len(text)} chars into {info.describe()}")
        await self.overlay.toast(f'Typed: "{text[:30]}..."')
        return DomActionResult(success=True, description=info.describe(), selector=info.to_selector())

    async def read_text(self, target: str) -> Optional[str]:
        """Visible text of the element a target refers to, or None."""
        element = await self.resolver.resolve(target)
        if element is None:
            return None
        try:
            return await element.evaluate(READ_TEXT_JS)
        except PlaywrightError as e:
            self.logger.debug(f"Could not read text of {target}: {e}")
            return None
