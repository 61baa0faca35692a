"""Local status service.

Runs as a lightweight web server next to the worker loop so an operator
can see what the worker is doing without going through the backend.

Endpoints:
    GET /status    - Worker context (status, counters, current task)
    GET /attempts  - Recent login attempts from the journal (?limit=&agent_id=)
    GET /stats     - Aggregate login outcomes
"""

from __future__ import annotations

import logging
import sys

from aiohttp import web

from ..database.repository import AttemptRepository
from ..models.worker import WorkerContext

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)

CONTEXT_KEY = web.AppKey("context", WorkerContext)
REPO_KEY = web.AppKey("repo", AttemptRepository)


# ── HTTP Handlers ────────────────────────────────────────────────────────────


async def handle_status(request: web.Request) -> web.Response:
    context = request.app[CONTEXT_KEY]
    return web.json_response(context.model_dump())


async def handle_attempts(request: web.Request) -> web.Response:
    repo = request.app[REPO_KEY]
    try:
        limit = int(request.query.get("limit", "20"))
    except ValueError:
        logger.warning(f"Rejected /attempts query: limit={request.query.get('limit')!r}")
        return web.json_response({"error": "limit must be an integer"}, status=400)
    limit = max(1, min(limit, 200))

    attempts = await repo.recent_attempts(limit=limit, agent_id=request.query.get("agent_id", ""))
    return web.json_response({"attempts": attempts, "count": len(attempts)})


async def handle_stats(request: web.Request) -> web.Response:
    repo = request.app[REPO_KEY]
    return web.json_response(await repo.get_stats())


# ── App Factory ──────────────────────────────────────────────────────────────


def create_app(context: WorkerContext, repo: AttemptRepository) -> web.Application:
    app = web.Application()
    app[CONTEXT_KEY] = context
    app[REPO_KEY] = repo

    app.router.add_get("/status", handle_status)
    app.router.add_get("/attempts", handle_attempts)
    app.router.add_get("/stats", handle_stats)

    return app
