"""HTTP client for the external planning service."""
import json
from typing import Optional, Dict, Any, List

import httpx
from pydantic import BaseModel, Field

from lulo.errors import PlannerError
from lulo.models.step import Plan
from lulo.utils.logger import setup_logger
from lulo.utils.config import config


class PlannerContext(BaseModel):
    """What the planner is told about the user's current page."""
    current_url: Optional[str] = Field(default=None, alias="currentUrl")
    page_title: Optional[str] = Field(default=None, alias="pageTitle")
    is_extension: bool = Field(default=True, alias="isExtension")
    user_profile: Optional[Dict[str, Any]] = Field(default=None, alias="userProfile")
    page_content: Optional[str] = Field(default=None, alias="pageContent")

    model_config = {"populate_by_name": True}


class PlannerClient:
    """
    Sends a prompt plus page context to the planner and returns a Plan.

    Any transport failure, non-2xx status or undecodable body raises
    PlannerError; a body without usable steps yields an empty Plan.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.url = url or config.planner_url
        self.token = token if token is not None else config.api_token
        self.timeout = timeout or config.request_timeout
        self.logger = setup_logger("PlannerClient")

        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self):
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.token or ''}",
        }

    async def plan(
        self,
        prompt: str,
        context: Optional[PlannerContext] = None,
        images: Optional[List[str]] = None,
        conversation_id: Optional[str] = None
    ) -> Plan:
        """
        Ask the planner for the steps that fulfil a prompt.

        Args:
            prompt: The user's natural-language request
            context: Current page context
            images: Base64 images / data URLs attached to the request
            conversation_id: Conversation to continue, if any

        Returns:
            Plan (possibly empty)
        """
        payload: Dict[str, Any] = {
            "prompt": prompt,
            "context": (context or PlannerContext()).model_dump(by_alias=True),
        }
        if images:
            payload["images"] = images
        if conversation_id:
            payload["conversationId"] = conversation_id

        self.logger.info(f"Requesting plan: {prompt[:80]}")

        try:
            response = await self.client.post(self.url, json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            raise PlannerError(f"Planner unreachable: {e}") from e

        if response.status_code >= 400:
            raise PlannerError(
                f"API Error {response.status_code}: {response.reason_phrase} - {response.text[:200]}"
            )

        try:
            body = response.json()
        except (json.JSONDecodeError, ValueError) as e:
            raise PlannerError(f"Planner returned invalid JSON: {e}") from e

        if isinstance(body, dict) and body.get("error") and not body.get("steps"):
            raise PlannerError(f"Planner error: {body['error']}")

        plan = Plan.from_response(body)
        self.logger.info(f"Received plan with {len(plan)} steps")
        return plan
