"""Coordination client against a mocked backend."""

import json

import httpx
import pytest

from authworker.errors import CoordinationError
from authworker.models.session import SessionArtifact
from authworker.models.worker import WorkerContext
from authworker.tools.coordination import CoordinationClient


class Backend:
    """Records edge-function calls and answers from a per-function table."""

    def __init__(self, responses=None):
        self.responses = responses or {}
        self.calls: list[tuple[str, dict]] = []
        self.headers: list[httpx.Headers] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        function = request.url.path.rsplit("/", 1)[-1]
        self.calls.append((function, json.loads(request.content)))
        self.headers.append(request.headers)
        status, body = self.responses.get(function, (200, {}))
        return httpx.Response(status, json=body)

    def bodies(self, function: str) -> list[dict]:
        return [body for name, body in self.calls if name == function]


def _client(backend: Backend) -> CoordinationClient:
    return CoordinationClient(
        base_url="https://backend.test",
        worker_secret="s3cret",
        worker_id="worker-1",
        transport=httpx.MockTransport(backend),
    )


@pytest.mark.asyncio
async def test_poll_returns_task_and_sends_worker_identity():
    backend = Backend({
        "worker-poll": (200, {"actions": [{
            "id": "a1",
            "action_type": "linkedin_login",
            "agent_id": "agent-1",
            "payload": {"linkedinEmail": "jane@example.com", "linkedinPassword": "pw"},
            "gologin_profile": {"profile_id": "p1"},
        }]}),
    })
    async with _client(backend) as client:
        task = await client.poll_next_task()

    assert task.id == "a1"
    assert task.is_login
    assert task.profile_ref == "p1"
    assert task.login_payload().email == "jane@example.com"
    assert backend.bodies("worker-poll") == [{"workerId": "worker-1", "limit": 1}]
    assert backend.headers[0]["x-worker-secret"] == "s3cret"


@pytest.mark.asyncio
async def test_poll_returns_none_on_empty_queue_or_error():
    async with _client(Backend({"worker-poll": (200, {"actions": []})})) as client:
        assert await client.poll_next_task() is None
    async with _client(Backend({"worker-poll": (500, {"error": "boom"})})) as client:
        assert await client.poll_next_task() is None


@pytest.mark.asyncio
async def test_bookkeeping_failures_are_logged_not_raised():
    backend = Backend({"worker-update-agent": (500, {}), "worker-report": (500, {}), "worker-heartbeat": (500, {})})
    async with _client(backend) as client:
        await client.update_agent_state("agent-1", "awaiting_2fa", twoFAMethod="sms")
        await client.report_result("a1", "failed", error_message="nope")
        await client.heartbeat(WorkerContext(worker_id="worker-1"), "polling")

    assert backend.bodies("worker-update-agent") == [
        {"workerId": "worker-1", "agentId": "agent-1", "twoFAMethod": "sms", "loginState": "awaiting_2fa"}
    ]


@pytest.mark.asyncio
async def test_heartbeat_reports_context_counters():
    backend = Backend()
    context = WorkerContext(worker_id="worker-1", actions_processed=3, actions_failed=1)
    context.begin("a9", "agent-2")
    async with _client(backend) as client:
        await client.heartbeat(context, "busy")

    body = backend.bodies("worker-heartbeat")[0]
    assert body["status"] == "busy"
    assert body["currentActionId"] == "a9"
    assert body["agentId"] == "agent-2"
    assert body["actionsProcessed"] == 3
    assert body["actionsFailed"] == 1


@pytest.mark.asyncio
async def test_persist_session_raises_on_failure():
    artifact = SessionArtifact(primary_token="t", secondary_token=None, confidence=0.25)
    async with _client(Backend({"worker-update-agent": (500, {})})) as client:
        with pytest.raises(CoordinationError) as exc_info:
            await client.persist_session("agent-1", artifact)
    assert exc_info.value.status_code == 500
    assert exc_info.value.function == "worker-update-agent"


@pytest.mark.asyncio
async def test_human_channel_calls():
    backend = Backend({"worker-poll": (200, {"twoFACode": " 123456 "})})
    async with _client(backend) as client:
        assert await client.fetch_pending_otp("agent-1") == "123456"
        await client.clear_pending_otp("agent-1")
        await client.publish_captcha_screenshot("agent-1", b"png")
        await client.publish_captcha_screenshot("agent-1", None)

    assert backend.bodies("worker-poll") == [{"workerId": "worker-1", "checkAgent2FA": "agent-1"}]
    updates = backend.bodies("worker-update-agent")
    assert updates[0]["clearTwoFACode"] is True
    assert updates[1]["captchaScreenshot"] == "data:image/png;base64,cG5n"
    assert updates[2]["captchaScreenshot"] is None


@pytest.mark.asyncio
async def test_unreachable_backend_raises_coordination_error():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = CoordinationClient(
        base_url="https://backend.test", worker_secret="s", worker_id="w", transport=httpx.MockTransport(refuse)
    )
    async with client:
        with pytest.raises(CoordinationError):
            await client.fetch_pending_otp("agent-1")
