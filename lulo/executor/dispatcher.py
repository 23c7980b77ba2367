"""Step dispatcher: runs a Plan against a browser session and reports."""
import asyncio
import base64
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional

from lulo.errors import SessionBusyError
from lulo.executor.feedback import VisualFeedbackSynchronizer, TabSurface
from lulo.executor.providers import email_url, search_url, calendar_url
from lulo.executor.readiness import ReadinessWaiter
from lulo.models.messages import ClickElement, TypeText, Guide, Preview, ExtractData, FOCUSED_INPUT
from lulo.models.step import ActionKind, Step, Plan, ExecutionResult, StepUpdate, Report
from lulo.utils.logger import setup_logger, StepLogger
from lulo.utils.config import config
from lulo.utils.safety_guard import safety_guard
from lulo.utils.tasks import BackgroundTasks


# (prompt, images) -> next plan, or None to stop
FollowUp = Callable[[str, Optional[List[str]]], Awaitable[Optional[Plan]]]
StepListener = Callable[[StepUpdate], None]

LOOK_FOLLOW_UP_PROMPT = (
    "I have captured a visual snapshot of the page (attached). "
    "Please analyze it as requested."
)
TRUNCATED_SUFFIX = "... (truncated)"
DEFAULT_DOWNLOAD_NAME = "lulo-download.txt"


class DispatchState(str, Enum):
    IDLE = "idle"
    DISPATCHING = "dispatching"
    RESOLVING = "resolving"
    EXECUTING = "executing"
    RECORDING = "recording"
    COMPLETED = "completed"


@dataclass
class DispatchContext:
    """Per-request state threaded through step handlers."""
    tab_id: Optional[int] = None
    images: List[str] = field(default_factory=list)
    follow_up: Optional[FollowUp] = None
    descriptions: List[str] = field(default_factory=list)
    actions: List[ExecutionResult] = field(default_factory=list)


def to_data_url(data: bytes, mime: str = "image/jpeg") -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def substitute_user_images(html: str, images: List[str]) -> str:
    """Replace {{USER_IMAGE_n}} (and {{USER_IMAGE}} for the first) with the user's images."""
    for index, image in enumerate(images):
        if index == 0:
            html = html.replace("{{USER_IMAGE}}", image)
        html = html.replace(f"{{{{USER_IMAGE_{index}}}}}", image)
    return html


class StepDispatcher:
    """
    Turns a Plan into browser operations, one step at a time.

    Steps run strictly in order. Steps that change the current page (click,
    type, guide, preview, extract, ...) are awaited before the next one;
    steps that open or navigate tabs return as soon as the load has been
    started, leaving the readiness wait and the glow to background tasks.
    A failing step is logged and skipped; it never aborts the plan.

    One dispatcher serves one browser session and one plan at a time.
    """

    def __init__(
        self,
        host,
        feedback: Optional[VisualFeedbackSynchronizer] = None,
        waiter: Optional[ReadinessWaiter] = None,
        tasks: Optional[BackgroundTasks] = None
    ):
        """
        Args:
            host: Tab host (BrowserSession or compatible)
            feedback: Feedback fan-out; defaults to the in-tab overlay only
            waiter: Readiness waiter; defaults to one polling `host`
            tasks: Where detached work is spawned
        """
        self.host = host
        self.tasks = tasks or BackgroundTasks("dispatcher")
        self.feedback = feedback or VisualFeedbackSynchronizer([TabSurface(host)], tasks=self.tasks)
        self.waiter = waiter or ReadinessWaiter(host)
        self.logger = setup_logger("StepDispatcher")

        self.state = DispatchState.IDLE
        self._step_listeners: List[StepListener] = []

        self._handlers: Dict[ActionKind, Callable[[Step, DispatchContext], Awaitable[Optional[ExecutionResult]]]] = {
            ActionKind.NAVIGATE: self._navigate,
            ActionKind.BROWSE: self._browse,
            ActionKind.CLICK: self._click,
            ActionKind.TYPE: self._type,
            ActionKind.EXTRACT: self._extract,
            ActionKind.EMAIL: self._email,
            ActionKind.SEARCH: self._search,
            ActionKind.GUIDE: self._guide,
            ActionKind.PREVIEW: self._preview,
            ActionKind.CALENDAR: self._calendar,
            ActionKind.LOOK: self._look,
            ActionKind.SCREENSHOT: self._screenshot,
            ActionKind.WRITE_FILE: self._write_file,
        }

    @property
    def busy(self) -> bool:
        return self.state not in (DispatchState.IDLE, DispatchState.COMPLETED)

    def add_step_listener(self, callback: StepListener):
        """Register a callback receiving a StepUpdate before and after each step."""
        self._step_listeners.append(callback)

    def _notify(self, update: StepUpdate):
        for callback in list(self._step_listeners):
            try:
                callback(update)
            except Exception as e:
                self.logger.debug(f"Step listener failed: {e}")

    # =========================================================================
    # DISPATCH
    # =========================================================================

    async def dispatch(
        self,
        plan: Plan,
        tab_id: Optional[int] = None,
        images: Optional[List[str]] = None,
        follow_up: Optional[FollowUp] = None
    ) -> Report:
        """
        Execute every step of a plan and build the report.

        Args:
            plan: Steps to run
            tab_id: The user's current tab (target of CLICK/TYPE/...)
            images: User images attached to the request
            follow_up: Asked for another plan after EXTRACT / LOOK

        Returns:
            Report with success=True; per-step failures only show up as
            missing actions.

        Raises:
            SessionBusyError: another plan is still being dispatched
        """
        if self.busy:
            raise SessionBusyError("A plan is already running in this session")

        self.state = DispatchState.DISPATCHING
        ctx = DispatchContext(tab_id=tab_id, images=list(images or []), follow_up=follow_up)
        self.logger.info(f"Dispatching plan with {len(plan)} steps (tab {tab_id})")

        if tab_id is not None:
            self.feedback.start(tab_id)
        try:
            await self._run_plan(plan, ctx, depth=0)
        finally:
            if tab_id is not None:
                self.feedback.end_later(tab_id, config.glow_end_delay)
            self.state = DispatchState.COMPLETED

        report = Report.build(ctx.descriptions, ctx.actions)
        self.logger.info(f"Plan done: {len(ctx.actions)} actions recorded")
        return report

    async def _run_plan(self, plan: Plan, ctx: DispatchContext, depth: int):
        for index, step in enumerate(plan.steps, start=1):
            if step.description:
                ctx.descriptions.append(step.description)

            result = await self._run_step(index, step, ctx)

            self.state = DispatchState.RECORDING
            if result is not None:
                ctx.actions.append(result)
                await self._follow_up(result, ctx, depth)

    async def _run_step(self, index: int, step: Step, ctx: DispatchContext) -> Optional[ExecutionResult]:
        self._notify(StepUpdate(status="running", action=step.action, description=step.description, index=index))
        if ctx.tab_id is not None and step.description:
            self.feedback.update_status(ctx.tab_id, step.description)

        self.state = DispatchState.RESOLVING
        handler = self._handlers.get(step.action, self._noop)

        try:
            with StepLogger(self.logger, step.raw_action or step.action.value, step.description, index):
                self.state = DispatchState.EXECUTING
                result = await handler(step, ctx)
        except Exception:
            # Logged by StepLogger; the plan goes on
            self._notify(StepUpdate(status="failed", action=step.action, description=step.description, index=index))
            return None

        self._notify(StepUpdate(status="completed", action=step.action, description=step.description, index=index))
        return result

    async def _follow_up(self, result: ExecutionResult, ctx: DispatchContext, depth: int):
        if ctx.follow_up is None or not result.extracted_data:
            return
        if depth >= config.max_follow_up_turns:
            self.logger.info("Follow-up limit reached")
            return

        if result.type == "extract":
            excerpt = result.extracted_data[:config.follow_up_excerpt_limit]
            prompt = f"I have extracted the data: {excerpt}... Now please continue with the next step."
            images = None
        elif result.type == "look":
            prompt = LOOK_FOLLOW_UP_PROMPT
            images = [result.extracted_data]
        else:
            return

        try:
            plan = await ctx.follow_up(prompt, images)
        except Exception as e:
            self.logger.warning(f"Follow-up request failed: {e}")
            return

        if plan is not None and len(plan):
            self.logger.info(f"Follow-up turn {depth + 1}: {len(plan)} steps")
            await self._run_plan(plan, ctx, depth + 1)

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for detached readiness/feedback work to finish."""
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        pools = [self.tasks]
        if self.feedback.tasks is not self.tasks:
            pools.append(self.feedback.tasks)

        while any(len(pool) for pool in pools):
            for pool in pools:
                remaining = None if deadline is None else max(0.0, deadline - loop.time())
                if not await pool.drain(remaining):
                    return False
        return True

    # =========================================================================
    # DETACHED WORK
    # =========================================================================

    async def _light_up_new_tab(self, tab_id: int):
        await self.waiter.wait_until_ready(tab_id)
        self.feedback.start(tab_id)
        self.feedback.end_later(tab_id, config.new_tab_glow_duration)

    async def _settle_after_navigate(self, tab_id: int):
        # The new document starts without overlay; every re-light is paired with an end
        await self.waiter.wait_until_ready(tab_id)
        self.feedback.start(tab_id)
        self.feedback.update_status(tab_id, config.idle_status_text)
        self.feedback.end_later(tab_id, config.glow_end_delay)

    async def _open_tab(self, url: str, result_type: str, description: str) -> ExecutionResult:
        tab = await self.host.create_tab(url)
        self.tasks.spawn(self._light_up_new_tab(tab.tab_id), name=f"light-up-{tab.tab_id}")
        return ExecutionResult(type=result_type, description=description, tab_id=tab.tab_id)

    def _url_allowed(self, url: str) -> bool:
        check = safety_guard.check_url(url)
        if not check.allowed:
            self.logger.warning(f"Skipping step: {check.reason}")
        return check.allowed

    # =========================================================================
    # HANDLERS
    # =========================================================================

    async def _noop(self, step: Step, ctx: DispatchContext) -> None:
        if step.action == ActionKind.UNKNOWN:
            self.logger.debug(f"Ignoring unknown action {step.raw_action!r}")
        return None

    async def _navigate(self, step: Step, ctx: DispatchContext) -> Optional[ExecutionResult]:
        url = step.get("url")
        if not url or ctx.tab_id is None or not self._url_allowed(url):
            return None

        self.feedback.update_status(ctx.tab_id, "Navigating...")
        await self.host.update_tab(ctx.tab_id, url)
        self.tasks.spawn(self._settle_after_navigate(ctx.tab_id), name=f"navigate-{ctx.tab_id}")
        return ExecutionResult(type="navigate", description=f"Navigated to {url}")

    async def _browse(self, step: Step, ctx: DispatchContext) -> Optional[ExecutionResult]:
        url = step.get("url")
        if not url or not self._url_allowed(url):
            return None
        return await self._open_tab(url, "browse", f"Opened {url}")

    async def _email(self, step: Step, ctx: DispatchContext) -> ExecutionResult:
        to = step.get("to")
        url = email_url(to=to, subject=step.get("subject"), body=step.get("body"))
        return await self._open_tab(url, "email", f"Opened email draft to {to}" if to else "Opened email draft")

    async def _search(self, step: Step, ctx: DispatchContext) -> Optional[ExecutionResult]:
        query = step.get("query")
        if not query:
            return None
        return await self._open_tab(search_url(query), "search", f'Searched for "{query}"')

    async def _calendar(self, step: Step, ctx: DispatchContext) -> ExecutionResult:
        title = step.get("title")
        url = calendar_url(
            title=title,
            details=step.get("details"),
            location=step.get("location"),
            start=step.get("start"),
            end=step.get("end"),
        )
        return await self._open_tab(url, "calendar", f'Opened Calendar for "{title or "Event"}"')

    async def _click(self, step: Step, ctx: DispatchContext) -> Optional[ExecutionResult]:
        selector = step.get("selector")
        if not selector or ctx.tab_id is None:
            return None

        ack = await self.host.send_message(ctx.tab_id, ClickElement(selector=selector))
        if not ack.success:
            self.logger.warning(f"Click not performed: {ack.error}")
            return None
        return ExecutionResult(type="click", description=f"Clicked {selector}")

    async def _type(self, step: Step, ctx: DispatchContext) -> Optional[ExecutionResult]:
        text = step.get("text")
        if not text or ctx.tab_id is None:
            return None

        message = TypeText(text=text, selector=step.get("selector", FOCUSED_INPUT))
        ack = await self.host.send_message(ctx.tab_id, message)
        if not ack.success:
            self.logger.warning(f"Typing not performed: {ack.error}")
            return None
        return ExecutionResult(type="type", description=f'Typed "{text[:30]}..."')

    async def _guide(self, step: Step, ctx: DispatchContext) -> Optional[ExecutionResult]:
        message = step.get("message", "")
        target = step.get("target")
        if ctx.tab_id is None or not (message or target):
            return None

        ack = await self.host.send_message(ctx.tab_id, Guide(message=message, target=target))
        if not ack.success:
            return None
        if ack.data.get("highlighted"):
            return ExecutionResult(type="guide", description=f"Highlighted element: {message}")
        return ExecutionResult(type="guide", description=f"Showed message: {message}")

    async def _preview(self, step: Step, ctx: DispatchContext) -> Optional[ExecutionResult]:
        if not step.data or ctx.tab_id is None:
            return None

        html = substitute_user_images(step.get("html", ""), ctx.images)
        ack = await self.host.send_message(
            ctx.tab_id, Preview(html=html, css=step.get("css", ""), js=step.get("js", ""))
        )
        if not ack.success:
            return None
        return ExecutionResult(type="preview", description="Generated interactive preview")

    async def _extract(self, step: Step, ctx: DispatchContext) -> Optional[ExecutionResult]:
        if ctx.tab_id is None:
            return None

        selector = step.get("selector", "body")
        fmt = "csv" if step.get("format") == "csv" else "json"
        ack = await self.host.send_message(ctx.tab_id, ExtractData(selector=selector, format=fmt))
        if not ack.success:
            return None

        content = ack.data.get("content") or ""
        limit = config.extract_preview_limit
        if len(content) > limit:
            content = content[:limit] + TRUNCATED_SUFFIX
        return ExecutionResult(
            type="extract", description=f"Extracted data from {selector}", extracted_data=content
        )

    async def _look(self, step: Step, ctx: DispatchContext) -> Optional[ExecutionResult]:
        if ctx.tab_id is None:
            return None
        image = await self.host.capture_tab(ctx.tab_id, quality=50)
        return ExecutionResult(
            type="look", description="Captured visual snapshot of the page", extracted_data=to_data_url(image)
        )

    async def _screenshot(self, step: Step, ctx: DispatchContext) -> Optional[ExecutionResult]:
        if ctx.tab_id is None:
            return None
        image = await self.host.capture_tab(ctx.tab_id, quality=60)
        await self.host.save_download(f"lulo-snap-{int(time.time() * 1000)}.jpg", image)
        return ExecutionResult(type="screenshot", description="Saved screenshot to Downloads")

    async def _write_file(self, step: Step, ctx: DispatchContext) -> Optional[ExecutionResult]:
        content = step.get("content")
        if content is None:
            return None
        filename = safety_guard.safe_filename(step.get("filename"), DEFAULT_DOWNLOAD_NAME)
        await self.host.save_download(filename, content if isinstance(content, str) else str(content))
        return ExecutionResult(type="complete", description=f"Saved file: {filename}")
