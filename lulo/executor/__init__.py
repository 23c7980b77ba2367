from .readiness import ReadinessWaiter
from .element_resolver import ElementResolver, first_match
from .dom_executor import DomActionExecutor, DomActionResult
from .page_agent import PageAgent
from .feedback import (
    VisualFeedbackSynchronizer,
    FeedbackSurface,
    TabSurface,
    ListenerSurface,
    DriverOverlaySurface,
)
from .browser_session import BrowserSession
from .dispatcher import StepDispatcher, DispatchState
from .external_driver import ExternalAutomationDriver, DriverResult, OverlayWindow
from .request_handler import RequestHandler

__all__ = [
    "ReadinessWaiter",
    "ElementResolver",
    "first_match",
    "DomActionExecutor",
    "DomActionResult",
    "PageAgent",
    "VisualFeedbackSynchronizer",
    "FeedbackSurface",
    "TabSurface",
    "ListenerSurface",
    "DriverOverlaySurface",
    "BrowserSession",
    "StepDispatcher",
    "DispatchState",
    "ExternalAutomationDriver",
    "DriverResult",
    "OverlayWindow",
    "RequestHandler",
]
