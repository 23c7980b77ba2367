"""Element resolution with a first-match-wins fallback chain."""
from typing import Awaitable, Callable, Optional, Sequence

from playwright.async_api import Page, Locator, Error as PlaywrightError

from lulo.utils.logger import setup_logger


Strategy = Callable[[str, Page], Awaitable[Optional[Locator]]]

# Elements a user would call "the X button"
INTERACTIVE_SELECTOR = 'button, a, [role="button"], input[type="submit"]'
LABELLED_SELECTOR = "[aria-label]"
PLACEHOLDER_SELECTOR = "input[placeholder], textarea[placeholder]"


async def by_selector(target: str, page: Page) -> Optional[Locator]:
    """Direct selector match, as given."""
    try:
        locator = page.locator(target)
        if await locator.count() > 0:
            return locator.first
    except PlaywrightError:
        # Free text is rarely valid selector syntax
        pass
    return None


async def _first_containing(page: Page, selector: str, target: str, read) -> Optional[Locator]:
    needle = target.lower()
    for element in await page.locator(selector).all():
        try:
            value = await read(element)
        except PlaywrightError:
            continue
        if value and needle in value.lower():
            return element
    return None


async def by_interactive_text(target: str, page: Page) -> Optional[Locator]:
    """Buttons and links whose text contains the target (case-insensitive)."""
    return await _first_containing(
        page, INTERACTIVE_SELECTOR, target, lambda el: el.text_content()
    )


async def by_aria_label(target: str, page: Page) -> Optional[Locator]:
    """Elements whose aria-label contains the target (case-insensitive)."""
    return await _first_containing(
        page, LABELLED_SELECTOR, target, lambda el: el.get_attribute("aria-label")
    )


async def by_placeholder(target: str, page: Page) -> Optional[Locator]:
    """Inputs and textareas whose placeholder contains the target (case-insensitive)."""
    return await _first_containing(
        page, PLACEHOLDER_SELECTOR, target, lambda el: el.get_attribute("placeholder")
    )


def first_match(strategies: Sequence[Strategy]) -> Strategy:
    """Compose strategies: the first one that finds something wins."""
    async def resolve(target: str, page: Page) -> Optional[Locator]:
        for strategy in strategies:
            element = await strategy(target, page)
            if element is not None:
                return element
        return None
    return resolve


CLICK_STRATEGIES = (by_selector, by_interactive_text, by_aria_label)
INPUT_STRATEGIES = (by_selector, by_placeholder)

resolve_clickable = first_match(CLICK_STRATEGIES)
resolve_text_input = first_match(INPUT_STRATEGIES)


class ElementResolver:
    """
    Resolves a symbolic target (selector, visible text or label fragment)
    to an element on a page.

    Strategy order for clickable targets:
    1. Direct selector
    2. Interactive element text
    3. aria-label

    For text inputs:
    1. Direct selector
    2. Placeholder text
    """

    def __init__(self, page: Page, debug: bool = False):
        self.page = page
        self.debug = debug
        self.logger = setup_logger("ElementResolver")

    async def _run(self, target: Optional[str], resolve: Strategy) -> Optional[Locator]:
        if not target or not target.strip():
            return None

        element = await resolve(target, self.page)
        if self.debug:
            if element is None:
                self.logger.warning(f"No strategy matched {target!r}")
            else:
                self.logger.info(f"Resolved {target!r}")
        return element

    async def resolve(self, target: Optional[str]) -> Optional[Locator]:
        """Resolve a clickable target; None if every strategy fails."""
        return await self._run(target, resolve_clickable)

    async def resolve_input(self, target: Optional[str]) -> Optional[Locator]:
        """Resolve a text-input target; None if every strategy fails."""
        return await self._run(target, resolve_text_input)
