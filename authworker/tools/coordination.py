"""HTTP client for the coordination backend (task queue, agent state, human channel)."""

from __future__ import annotations

import base64
import logging
import sys
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from ..config import COORDINATION_TIMEOUT, COORDINATION_URL, WORKER_ID, WORKER_SECRET
from ..errors import CoordinationError
from ..models.session import SessionArtifact
from ..models.task import Task
from ..models.worker import WorkerContext

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


class CoordinationClient:
    """Calls the backend's worker functions: ``POST {base}/functions/v1/<name>``.

    Bookkeeping calls (heartbeat, agent state, result report) log failures and
    carry on; a missed status update must not abort a login. Human-channel
    calls raise ``CoordinationError`` and leave the decision to the caller.
    """

    def __init__(
        self,
        base_url: str = COORDINATION_URL,
        worker_secret: str = WORKER_SECRET,
        worker_id: str = WORKER_ID,
        timeout: float = COORDINATION_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.worker_id = worker_id
        self._base_url = base_url.rstrip("/")
        self._worker_secret = worker_secret
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"Content-Type": "application/json", "x-worker-secret": self._worker_secret},
            timeout=self._timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _call(self, function: str, body: dict[str, Any]) -> dict[str, Any]:
        if self._client is None:
            raise RuntimeError("CoordinationClient used outside 'async with'.")
        try:
            resp = await self._client.post(f"/functions/v1/{function}", json={"workerId": self.worker_id, **body})
        except httpx.TransportError as e:
            raise CoordinationError(f"Edge function {function} unreachable: {e}", function) from e

        if resp.status_code >= 400:
            raise CoordinationError(
                f"Edge function {function} failed: {resp.text[:200]}",
                function,
                resp.status_code,
            )
        return resp.json() if resp.content else {}

    # ── Task queue ───────────────────────────────────────────────────────────

    async def poll_next_task(self) -> Optional[Task]:
        """Fetch the next task for any agent, or None when the queue is empty."""
        try:
            data = await self._call("worker-poll", {"limit": 1})
        except CoordinationError as e:
            logger.error(f"Poll error: {e}")
            return None

        actions = data.get("actions") or []
        if not actions:
            return None
        try:
            return Task.model_validate(actions[0])
        except ValidationError as e:
            logger.error(f"Discarding malformed task {actions[0].get('id')}: {e}")
            return None

    async def report_result(
        self,
        task_id: str,
        status: str,
        result: Optional[dict[str, Any]] = None,
        error_message: Optional[str] = None,
    ):
        try:
            await self._call(
                "worker-report",
                {"actionId": task_id, "status": status, "result": result, "errorMessage": error_message},
            )
        except CoordinationError as e:
            logger.error(f"Failed to report result for {task_id}: {e}")

    async def heartbeat(self, context: WorkerContext, status: Optional[str] = None):
        if status:
            context.status = status
        try:
            await self._call(
                "worker-heartbeat",
                {
                    "agentId": context.current_agent_id,
                    "status": context.status,
                    "currentActionId": context.current_task_id,
                    "actionsProcessed": context.actions_processed,
                    "actionsFailed": context.actions_failed,
                },
            )
        except CoordinationError as e:
            logger.error(f"Heartbeat error: {e}")

    # ── Agent state ──────────────────────────────────────────────────────────

    async def update_agent_state(self, agent_id: str, login_state: Optional[str] = None, **extra: Any):
        body: dict[str, Any] = {"agentId": agent_id, **extra}
        if login_state:
            body["loginState"] = login_state
        try:
            await self._call("worker-update-agent", body)
        except CoordinationError as e:
            logger.error(f"Failed to update agent state: {e}")

    async def persist_session(self, agent_id: str, artifact: SessionArtifact):
        """Hand the extracted session over to the backend. Raises on failure."""
        await self._call(
            "worker-update-agent",
            {
                "agentId": agent_id,
                "loginState": "completed",
                "status": "connected",
                "loginError": None,
                "sessionCookies": {
                    "li_at": artifact.primary_token,
                    "li_a": artifact.secondary_token,
                },
                "sessionConfidence": artifact.confidence,
            },
        )

    # ── Human channel ────────────────────────────────────────────────────────

    async def fetch_pending_otp(self, agent_id: str) -> Optional[str]:
        data = await self._call("worker-poll", {"checkAgent2FA": agent_id})
        code = data.get("twoFACode")
        return str(code).strip() if code else None

    async def clear_pending_otp(self, agent_id: str):
        await self._call("worker-update-agent", {"agentId": agent_id, "clearTwoFACode": True})

    async def publish_captcha_screenshot(self, agent_id: str, image: Optional[bytes]):
        """Publish a PNG for the operator; ``None`` removes the published image."""
        data_url = None
        if image is not None:
            data_url = f"data:image/png;base64,{base64.b64encode(image).decode('ascii')}"
        await self._call("worker-update-agent", {"agentId": agent_id, "captchaScreenshot": data_url})
