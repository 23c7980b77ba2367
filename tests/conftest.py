"""Test configuration and in-memory browser fakes.

The fakes implement the slice of the Playwright async API the orchestrator
uses (locators, evaluate, screenshots, contexts) over a flat list of
elements, so no real browser is ever started.
"""
import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest
from playwright.async_api import Error as PlaywrightError

from lulo.errors import NoReceiverError, TabNotFoundError
from lulo.executor import overlay_scripts as js
from lulo.models.messages import Ack, MessageType, PageMessage
from lulo.models.step import TabHandle, TabStatus
from lulo.utils.config import config


@pytest.fixture(autouse=True)
def fast_timings(monkeypatch):
    """Shrink every delay so tests run in milliseconds."""
    monkeypatch.setattr(config, "readiness_poll_interval", 0.01)
    monkeypatch.setattr(config, "readiness_timeout", 0.5)
    monkeypatch.setattr(config, "click_settle_delay", 0)
    monkeypatch.setattr(config, "glow_end_delay", 0)
    monkeypatch.setattr(config, "new_tab_glow_duration", 0)


# =============================================================================
# SELECTORS
# =============================================================================

_SIMPLE = re.compile(
    r"(?P<tag>[a-zA-Z][\w-]*|\*)?"
    r"(?P<rest>(?:#[\w-]+|\.[\w-]+|\[[\w-]+(?:=(?:\"[^\"]*\"|'[^']*'|[\w-]+))?\]|:focus)*)"
)
_PART = re.compile(r"#[\w-]+|\.[\w-]+|\[[\w-]+(?:=(?:\"[^\"]*\"|'[^']*'|[\w-]+))?\]|:focus")


def _parse(selector: str):
    groups = []
    for simple in selector.split(","):
        simple = simple.strip()
        match = _SIMPLE.fullmatch(simple)
        if not simple or not match:
            raise PlaywrightError(f"Unexpected token in selector: {selector!r}")
        groups.append((match.group("tag"), _PART.findall(match.group("rest"))))
    return groups


def _matches_simple(element: "FakeElement", tag: Optional[str], parts: List[str]) -> bool:
    if tag and tag != "*" and tag.lower() != element.tag:
        return False
    for part in parts:
        if part.startswith("#"):
            if element.attrs.get("id") != part[1:]:
                return False
        elif part.startswith("."):
            if part[1:] not in element.attrs.get("class", "").split():
                return False
        elif part == ":focus":
            if not element.focused:
                return False
        else:
            name, _, value = part[1:-1].partition("=")
            if name not in element.attrs:
                return False
            if value and element.attrs[name] != value.strip("\"'"):
                return False
    return True


# =============================================================================
# PAGE FAKES
# =============================================================================

class FakeElement:
    def __init__(self, tag: str, text: str = "", box: Optional[Dict[str, float]] = None, **attrs):
        self.tag = tag
        self.text = text
        self.attrs = {k.replace("_", "-"): v for k, v in attrs.items()}
        if "class-" in self.attrs:
            self.attrs["class"] = self.attrs.pop("class-")
        self.box = box or {"x": 10, "y": 20, "width": 100, "height": 40}
        self.value = ""
        self.events: List[str] = []
        self.clicks = 0
        self.scrolls = 0
        self.focused = False

    def info(self) -> Dict[str, Any]:
        return {
            "tag": self.tag,
            "id": self.attrs.get("id"),
            "classes": self.attrs.get("class", "").split(),
            "ariaLabel": self.attrs.get("aria-label"),
            "text": self.text[:100],
            "placeholder": self.attrs.get("placeholder"),
        }


class FakeLocator:
    def __init__(self, page: "FakePage", selector: Optional[str] = None, elements: Optional[List[FakeElement]] = None):
        self.page = page
        self.selector = selector
        self._elements = elements

    def _resolve(self) -> List[FakeElement]:
        if self._elements is not None:
            return self._elements
        groups = _parse(self.selector)
        return [
            el for el in self.page.elements
            if any(_matches_simple(el, tag, parts) for tag, parts in groups)
        ]

    @property
    def element(self) -> FakeElement:
        elements = self._resolve()
        if not elements:
            raise PlaywrightError(f"No element for {self.selector!r}")
        return elements[0]

    @property
    def first(self) -> "FakeLocator":
        return FakeLocator(self.page, elements=self._resolve()[:1])

    async def count(self) -> int:
        return len(self._resolve())

    async def all(self) -> List["FakeLocator"]:
        return [FakeLocator(self.page, elements=[el]) for el in self._resolve()]

    async def text_content(self) -> str:
        return self.element.text

    async def get_attribute(self, name: str) -> Optional[str]:
        return self.element.attrs.get(name)

    async def bounding_box(self) -> Optional[Dict[str, float]]:
        return self.element.box

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        self.page._check_open()
        element = self.element
        if script == js.ELEMENT_INFO_JS:
            return element.info()
        if script == js.SCROLL_CENTER_JS:
            element.scrolls += 1
            return None
        if script == js.NATIVE_CLICK_JS:
            element.clicks += 1
            self.page.clicked.append(element)
            return None
        if script == js.SET_VALUE_JS:
            element.focused = True
            element.value = arg
            element.events.extend(["input", "change"])
            return True
        if script == js.READ_TEXT_JS:
            return element.text
        self.page.overlay_calls.append((script, arg))
        return True


class FakeMouse:
    def __init__(self, log: List):
        self.log = log
        self.clicks: List = []

    async def click(self, x, y):
        self.clicks.append((x, y))
        self.log.append(("mouse.click", x, y))


class FakeKeyboard:
    def __init__(self, log: List):
        self.log = log
        self.typed: List = []

    async def type(self, text, delay=0):
        self.typed.append((text, delay))
        self.log.append(("keyboard.type", text, delay))


class FakePage:
    """
    Page over a flat element list.

    `eval_results` maps a script to a value (or a callable taking the
    argument) for page-level evaluate calls; overlay calls are recorded in
    `overlay_calls` as (script, arg).
    """

    def __init__(self, elements: Optional[List[FakeElement]] = None, url: str = "about:blank", log: Optional[List] = None):
        self.elements = list(elements or [])
        self.url = url
        self.title_text = ""
        self.html = "<html></html>"
        self.ready_state = "complete"
        self.closed = False
        self.log = log if log is not None else []

        self.eval_results: Dict[str, Any] = {}
        self.overlay_calls: List = []
        self.init_scripts: List[str] = []
        self.clicked: List[FakeElement] = []
        self.screenshots: List = []
        self.gotos: List = []
        self.goto_gate = None
        self.goto_error: Optional[Exception] = None

        self._handlers: Dict[str, List[Callable]] = {}

        self.mouse = FakeMouse(self.log)
        self.keyboard = FakeKeyboard(self.log)

    def _check_open(self):
        if self.closed:
            raise PlaywrightError("Target page, context or browser has been closed")

    def calls_to(self, script: str) -> List[Any]:
        return [arg for s, arg in self.overlay_calls if s == script]

    def on(self, event: str, callback: Callable):
        self._handlers.setdefault(event, []).append(callback)

    def is_closed(self) -> bool:
        return self.closed

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator(self, selector)

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        self._check_open()
        if script in self.eval_results:
            result = self.eval_results[script]
            return result(arg) if callable(result) else result
        if script == js.READY_STATE_JS:
            return self.ready_state
        if script == js.OVERLAY_JS:
            return True
        self.overlay_calls.append((script, arg))
        self.log.append(("overlay", script, arg))
        return True

    async def add_init_script(self, script: Optional[str] = None, path=None):
        self.init_scripts.append(script)

    async def goto(self, url: str, wait_until: Optional[str] = None, timeout: Optional[float] = None):
        self._check_open()
        self.gotos.append((url, wait_until, timeout))
        if self.goto_gate is not None:
            await self.goto_gate.wait()
        if self.goto_error is not None:
            raise self.goto_error
        self.url = url

    async def screenshot(self, type: str = "png", quality: Optional[int] = None) -> bytes:
        self._check_open()
        self.screenshots.append((type, quality))
        return b"\x89fake-image"

    async def title(self) -> str:
        return self.title_text

    async def content(self) -> str:
        self._check_open()
        return self.html

    async def close(self):
        self.closed = True
        self.log.append(("page.close",))
        for callback in self._handlers.get("close", []):
            callback(self)


class FakeContext:
    def __init__(self, pages: Optional[List[FakePage]] = None, log: Optional[List] = None):
        self.pages = list(pages or [])
        self.log = log if log is not None else []
        self._handlers: Dict[str, List[Callable]] = {}
        self.closed = False

    def on(self, event: str, callback: Callable):
        self._handlers.setdefault(event, []).append(callback)

    def open_popup(self, page: FakePage):
        """Simulate the site opening a page by itself."""
        self.pages.append(page)
        for callback in self._handlers.get("page", []):
            callback(page)

    async def new_page(self) -> FakePage:
        page = FakePage(log=self.log)
        self.open_popup(page)
        return page

    async def close(self):
        self.closed = True
        self.log.append(("context.close",))


# =============================================================================
# TAB HOST FAKE
# =============================================================================

class FakeTabHost:
    """
    Records everything the dispatcher asks of a tab host.

    `replies` maps a MessageType to an Ack, a callable(message) returning
    an Ack, or an exception to raise.
    """

    def __init__(self):
        self.tabs: Dict[int, TabHandle] = {}
        self.created: List[str] = []
        self.updated: List = []
        self.messages: List = []
        self.captures: List[int] = []
        self.downloads: List = []
        self.replies: Dict[MessageType, Any] = {}
        self.no_receiver: set = set()
        self._next_id = 100

    def add_tab(self, status: TabStatus = TabStatus.COMPLETE, url: Optional[str] = None) -> int:
        tab_id = self._next_id
        self._next_id += 1
        self.tabs[tab_id] = TabHandle(tab_id=tab_id, status=status, url=url)
        return tab_id

    def set_status(self, tab_id: int, status: TabStatus):
        self.tabs[tab_id] = self.tabs[tab_id].model_copy(update={"status": status})

    def messages_of(self, message_type: MessageType, tab_id: Optional[int] = None) -> List[PageMessage]:
        return [
            m for t, m in self.messages
            if m.type == message_type and (tab_id is None or t == tab_id)
        ]

    async def create_tab(self, url: str) -> TabHandle:
        tab_id = self.add_tab(TabStatus.LOADING, url)
        self.created.append(url)
        return self.tabs[tab_id]

    async def update_tab(self, tab_id: int, url: str) -> TabHandle:
        if tab_id not in self.tabs:
            raise TabNotFoundError(tab_id)
        self.updated.append((tab_id, url))
        self.tabs[tab_id] = TabHandle(tab_id=tab_id, status=TabStatus.LOADING, url=url)
        return self.tabs[tab_id]

    async def get_tab(self, tab_id: int) -> TabHandle:
        if tab_id not in self.tabs:
            raise TabNotFoundError(tab_id)
        return self.tabs[tab_id]

    async def send_message(self, tab_id: int, message: PageMessage) -> Ack:
        self.messages.append((tab_id, message))
        if tab_id in self.no_receiver:
            raise NoReceiverError(tab_id)
        reply = self.replies.get(message.type)
        if reply is None:
            return Ack.ok()
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return await reply(message)
        return reply

    async def capture_tab(self, tab_id: int, quality: int = 50) -> bytes:
        self.captures.append(quality)
        return b"jpeg-bytes"

    async def save_download(self, filename: str, content) -> Path:
        self.downloads.append((filename, content))
        return Path(filename)


@pytest.fixture
def host() -> FakeTabHost:
    return FakeTabHost()


@pytest.fixture
def page() -> FakePage:
    return FakePage(
        [
            FakeElement("button", "Sign in", id="login", class_="btn primary"),
            FakeElement("a", "Pricing", href="/pricing"),
            FakeElement("div", "", aria_label="Close dialog", role="button"),
            FakeElement("span", "", aria_label="Notifications"),
            FakeElement("input", "", placeholder="Search products", name="q"),
            FakeElement("textarea", "", placeholder="Write a message"),
        ],
        url="https://shop.example.com/",
    )
