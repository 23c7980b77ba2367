from .step import (
    ActionKind,
    Step,
    Plan,
    TabStatus,
    TabHandle,
    ExecutionResult,
    StepUpdate,
    Report,
    REPLY_PLACEHOLDER,
)
from .element_info import ElementInfo
from .messages import (
    MessageType,
    PageMessage,
    ClickElement,
    TypeText,
    LuloStart,
    LuloEnd,
    LuloStatus,
    LuloRipple,
    Guide,
    GuideHide,
    Preview,
    GetPageInfo,
    ExtractData,
    Ack,
)

__all__ = [
    # Plan / Report
    "ActionKind",
    "Step",
    "Plan",
    "TabStatus",
    "TabHandle",
    "ExecutionResult",
    "StepUpdate",
    "Report",
    "REPLY_PLACEHOLDER",
    # Elements
    "ElementInfo",
    # Page messages
    "MessageType",
    "PageMessage",
    "ClickElement",
    "TypeText",
    "LuloStart",
    "LuloEnd",
    "LuloStatus",
    "LuloRipple",
    "Guide",
    "GuideHide",
    "Preview",
    "GetPageInfo",
    "ExtractData",
    "Ack",
]
