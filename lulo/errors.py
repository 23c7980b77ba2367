"""Exception types shared across the orchestrator."""


class LuloError(Exception):
    """Base class for orchestrator errors."""


class PlannerError(LuloError):
    """The planning service could not be reached or returned garbage."""


class TabNotFoundError(LuloError):
    """The tab id is not (or no longer) known to the browser host."""

    def __init__(self, tab_id):
        super().__init__(f"No tab with id: {tab_id}")
        self.tab_id = tab_id


class NoReceiverError(LuloError):
    """The tab has no live in-page surface to receive a message."""

    def __init__(self, tab_id, reason: str = "Receiving end does not exist"):
        super().__init__(f"Could not deliver to tab {tab_id}: {reason}")
        self.tab_id = tab_id


class SessionBusyError(LuloError):
    """A plan is already being dispatched against this session."""


class DriverNotLaunchedError(LuloError):
    """External driver used before launch()."""

    def __init__(self):
        super().__init__("Browser not launched")


class BlockedUrlError(LuloError):
    """The safety guard refused a URL."""
