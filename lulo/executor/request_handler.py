"""Request handling: user prompt -> planner -> dispatcher -> report."""
from typing import Any, Dict, List, Optional

from playwright.async_api import Error as PlaywrightError

from lulo.errors import LuloError, PlannerError, SessionBusyError
from lulo.executor.dispatcher import StepDispatcher
from lulo.models.messages import GetPageInfo
from lulo.models.step import Plan, Report
from lulo.utils.logger import setup_logger
from lulo.utils.planner_client import PlannerClient, PlannerContext


class RequestHandler:
    """
    Handles one user request end to end.

    Page context is gathered from the user's tab, the planner is asked for
    a plan, and the plan is dispatched. Failures before dispatch (planner
    unreachable, session busy) come back as a failed Report rather than an
    exception.
    """

    def __init__(self, host, dispatcher: StepDispatcher, planner: PlannerClient):
        self.host = host
        self.dispatcher = dispatcher
        self.planner = planner
        self.logger = setup_logger("RequestHandler")

    async def page_context(self, tab_id: Optional[int], user_profile: Optional[Dict[str, Any]] = None) -> PlannerContext:
        """Describe the user's current page; missing pieces are simply left out."""
        context = PlannerContext(user_profile=user_profile)
        if tab_id is None:
            return context

        try:
            tab = await self.host.get_tab(tab_id)
            ack = await self.host.send_message(tab_id, GetPageInfo())
        except (LuloError, PlaywrightError) as e:
            self.logger.debug(f"No page context for tab {tab_id}: {e}")
            return context

        info = ack.data if ack.success else {}
        parts = []
        if info.get("h1"):
            parts.append(f"H1: {info['h1']}")
        if info.get("description"):
            parts.append(f"Description: {info['description']}")
        if info.get("text"):
            parts.append(f"Content: {info['text']}")

        return context.model_copy(update={
            "current_url": info.get("url") or tab.url,
            "page_title": info.get("title"),
            "page_content": "\n".join(parts) or None,
        })

    async def handle(
        self,
        prompt: str,
        tab_id: Optional[int] = None,
        images: Optional[List[str]] = None,
        conversation_id: Optional[str] = None,
        user_profile: Optional[Dict[str, Any]] = None
    ) -> Report:
        """Plan and dispatch a prompt against the user's tab."""
        context = await self.page_context(tab_id, user_profile)

        try:
            plan = await self.planner.plan(prompt, context, images, conversation_id)
        except PlannerError as e:
            self.logger.error(f"Planning failed: {e}")
            return Report.failure(str(e))

        async def follow_up(next_prompt: str, next_images: Optional[List[str]]) -> Plan:
            refreshed = await self.page_context(tab_id, user_profile)
            return await self.planner.plan(next_prompt, refreshed, next_images, conversation_id)

        try:
            return await self.dispatcher.dispatch(plan, tab_id=tab_id, images=images, follow_up=follow_up)
        except SessionBusyError as e:
            self.logger.warning(str(e))
            return Report.failure(str(e))
