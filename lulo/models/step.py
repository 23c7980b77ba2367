"""Plan and Step models - the planner's intent and the dispatcher's report."""
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Optional, Dict, Any, List, Tuple
from enum import Enum
from pathlib import Path


REPLY_PLACEHOLDER = "Working on your request..."


class ActionKind(str, Enum):
    """Closed set of actions a planner may emit."""
    NAVIGATE = "NAVIGATE"        # Change the URL of the current tab
    BROWSE = "BROWSE"            # Open a URL in a new tab
    CLICK = "CLICK"              # Click an element on the current page
    TYPE = "TYPE"                # Type into an input on the current page
    EXTRACT = "EXTRACT"          # Pull data out of the current page
    EMAIL = "EMAIL"              # Open a pre-filled Gmail draft
    SEARCH = "SEARCH"            # Open a Google search
    GUIDE = "GUIDE"              # Show an on-page instruction
    PREVIEW = "PREVIEW"          # Render generated html/css/js in the page
    THINK = "THINK"              # Narration only
    CALENDAR = "CALENDAR"        # Open a pre-filled calendar event
    LOOK = "LOOK"                # Capture the visible tab for the planner
    SCREENSHOT = "SCREENSHOT"    # Save the visible tab to downloads
    WRITE_FILE = "WRITE_FILE"    # Save planner content to downloads
    UNKNOWN = "UNKNOWN"          # Anything else - always a no-op

    @classmethod
    def parse(cls, value: Any) -> "ActionKind":
        """Map a raw tag to a member, falling back to UNKNOWN."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().upper())
            except ValueError:
                pass
        return cls.UNKNOWN


class Step(BaseModel):
    """
    One planned unit of work.

    `description` is always present (possibly empty) and feeds both the
    report reply and the live status badge. `data` is the action payload.
    """
    model_config = ConfigDict(frozen=True)

    action: ActionKind = ActionKind.UNKNOWN
    description: str = ""
    data: Optional[Dict[str, Any]] = None
    raw_action: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _keep_raw_action(cls, values: Any) -> Any:
        if isinstance(values, dict) and "raw_action" not in values:
            raw = values.get("action")
            values = {**values, "raw_action": raw if isinstance(raw, str) else None}
        return values

    @field_validator("action", mode="before")
    @classmethod
    def _parse_action(cls, value: Any) -> ActionKind:
        return ActionKind.parse(value)

    @field_validator("description", mode="before")
    @classmethod
    def _coerce_description(cls, value: Any) -> str:
        if value is None:
            return ""
        return value if isinstance(value, str) else str(value)

    @field_validator("data", mode="before")
    @classmethod
    def _coerce_data(cls, value: Any) -> Optional[Dict[str, Any]]:
        return value if isinstance(value, dict) else None

    def get(self, key: str, default: Any = None) -> Any:
        """Read a field from the payload."""
        if not self.data:
            return default
        value = self.data.get(key)
        return default if value is None else value


class Plan(BaseModel):
    """Ordered, immutable sequence of steps for one user request."""
    model_config = ConfigDict(frozen=True)

    steps: Tuple[Step, ...] = Field(default_factory=tuple)

    @field_validator("steps", mode="before")
    @classmethod
    def _coerce_steps(cls, value: Any) -> Any:
        if not isinstance(value, (list, tuple)):
            return ()
        return tuple(item if isinstance(item, (Step, dict)) else {} for item in value)

    def __len__(self) -> int:
        return len(self.steps)

    @classmethod
    def from_response(cls, body: Any) -> "Plan":
        """Build a plan from the planner's `{"steps": [...]}` response body."""
        if not isinstance(body, dict):
            return cls()
        return cls.model_validate({"steps": body.get("steps")})

    def save(self, path):
        """Save plan to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            f.write(self.model_dump_json(indent=2, exclude={"steps": {"__all__": {"raw_action"}}}))

    @classmethod
    def load(cls, path) -> "Plan":
        """Load a plan from a JSON file (a bare list of steps is accepted too)."""
        import json
        with open(Path(path)) as f:
            body = json.load(f)
        if isinstance(body, list):
            body = {"steps": body}
        return cls.from_response(body)


class TabStatus(str, Enum):
    """Readiness of a browser tab, as observed by the orchestrator."""
    LOADING = "loading"
    COMPLETE = "complete"
    GONE = "gone"


class TabHandle(BaseModel):
    """Snapshot of a browser tab owned by the browser host."""
    model_config = ConfigDict(frozen=True)

    tab_id: int
    status: TabStatus = TabStatus.LOADING
    url: Optional[str] = None


class ExecutionResult(BaseModel):
    """Outcome of a step that produced an effect."""
    model_config = ConfigDict(populate_by_name=True)

    type: str
    description: str
    tab_id: Optional[int] = Field(default=None, alias="tabId")
    extracted_data: Optional[str] = Field(default=None, alias="extractedData")


class StepUpdate(BaseModel):
    """Progress notification broadcast to step listeners."""
    status: str  # running, completed, failed
    action: ActionKind
    description: str = ""
    index: int = 0


class Report(BaseModel):
    """Final structured outcome of dispatching a plan."""
    success: bool
    reply: str = ""
    actions: List[ExecutionResult] = Field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def build(cls, descriptions: List[str], actions: List[ExecutionResult]) -> "Report":
        """Assemble a successful report from collected descriptions and results."""
        reply = "".join(f"{d}\n\n" for d in descriptions if d).strip()
        return cls(success=True, reply=reply or REPLY_PLACEHOLDER, actions=list(actions))

    @classmethod
    def failure(cls, error: str) -> "Report":
        """Report for a request that failed before dispatch began."""
        return cls(success=False, error=error)

    def to_dict(self) -> Dict[str, Any]:
        """Render the caller-facing shape."""
        if not self.success:
            return {"success": False, "error": self.error or "Unknown error"}
        return {
            "success": True,
            "reply": self.reply,
            "actions": [a.model_dump(by_alias=True, exclude_none=True) for a in self.actions],
        }
