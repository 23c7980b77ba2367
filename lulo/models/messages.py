"""Typed messages exchanged between the tab host and the in-page surface."""
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, Literal
from enum import Enum


class MessageType(str, Enum):
    """Wire tags understood by the in-page surface."""
    CLICK_ELEMENT = "CLICK_ELEMENT"
    TYPE_TEXT = "TYPE_TEXT"
    LULO_START = "LULO_START"
    LULO_END = "LULO_END"
    LULO_STATUS = "LULO_STATUS"
    LULO_RIPPLE = "LULO_RIPPLE"
    GUIDE = "GUIDE"
    GUIDE_HIDE = "GUIDE_HIDE"
    PREVIEW = "PREVIEW"
    GET_PAGE_INFO = "GET_PAGE_INFO"
    EXTRACT_DATA = "EXTRACT_DATA"


# Default TYPE target: whatever input currently has focus
FOCUSED_INPUT = "input:focus, textarea:focus"

# Messages that only change what the user sees; delivery is best-effort.
FEEDBACK_MESSAGES = frozenset({
    MessageType.LULO_START,
    MessageType.LULO_END,
    MessageType.LULO_STATUS,
    MessageType.LULO_RIPPLE,
})


class PageMessage(BaseModel):
    """Base class for everything sent to a tab."""
    type: MessageType

    @property
    def is_feedback(self) -> bool:
        return self.type in FEEDBACK_MESSAGES


class ClickElement(PageMessage):
    type: Literal[MessageType.CLICK_ELEMENT] = MessageType.CLICK_ELEMENT
    selector: str


class TypeText(PageMessage):
    type: Literal[MessageType.TYPE_TEXT] = MessageType.TYPE_TEXT
    selector: str = FOCUSED_INPUT
    text: str


class LuloStart(PageMessage):
    type: Literal[MessageType.LULO_START] = MessageType.LULO_START


class LuloEnd(PageMessage):
    type: Literal[MessageType.LULO_END] = MessageType.LULO_END


class LuloStatus(PageMessage):
    type: Literal[MessageType.LULO_STATUS] = MessageType.LULO_STATUS
    text: str


class LuloRipple(PageMessage):
    type: Literal[MessageType.LULO_RIPPLE] = MessageType.LULO_RIPPLE
    x: float
    y: float


class Guide(PageMessage):
    type: Literal[MessageType.GUIDE] = MessageType.GUIDE
    message: str = ""
    target: Optional[str] = None


class GuideHide(PageMessage):
    type: Literal[MessageType.GUIDE_HIDE] = MessageType.GUIDE_HIDE


class Preview(PageMessage):
    type: Literal[MessageType.PREVIEW] = MessageType.PREVIEW
    html: str = ""
    css: str = ""
    js: str = ""


class GetPageInfo(PageMessage):
    type: Literal[MessageType.GET_PAGE_INFO] = MessageType.GET_PAGE_INFO


class ExtractData(PageMessage):
    type: Literal[MessageType.EXTRACT_DATA] = MessageType.EXTRACT_DATA
    selector: str = "body"
    format: Literal["json", "csv"] = "json"


class Ack(BaseModel):
    """Acknowledgement returned by the in-page surface."""
    success: bool
    error: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def ok(cls, **data: Any) -> "Ack":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, **data: Any) -> "Ack":
        return cls(success=False, error=error, data=data)
