"""Status service endpoints."""

import pytest
from aiohttp.test_utils import TestClient, TestServer

from authworker.models.worker import WorkerContext
from authworker.session_manager.manager import create_app


@pytest.mark.asyncio
async def test_status_attempts_and_stats(repo):
    context = WorkerContext(worker_id="worker-1", actions_processed=2)
    context.begin("task-7", "agent-3")
    await repo.start_attempt("task-7", "agent-3", "profile-1")

    async with TestClient(TestServer(create_app(context, repo))) as client:
        resp = await client.get("/status")
        assert resp.status == 200
        status = await resp.json()
        assert status["worker_id"] == "worker-1"
        assert status["status"] == "busy"
        assert status["current_task_id"] == "task-7"
        assert status["actions_processed"] == 2

        resp = await client.get("/attempts", params={"limit": "5"})
        body = await resp.json()
        assert body["count"] == 1
        assert body["attempts"][0]["agent_id"] == "agent-3"

        resp = await client.get("/stats")
        assert (await resp.json())["total_attempts"] == 1


@pytest.mark.asyncio
async def test_attempts_rejects_bad_limit(repo):
    async with TestClient(TestServer(create_app(WorkerContext(worker_id="w"), repo))) as client:
        resp = await client.get("/attempts", params={"limit": "lots"})
        assert resp.status == 400
