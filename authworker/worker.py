"""Worker entry point.

Polls the coordination backend for tasks, runs login tasks through the
login state machine and other tasks through the task scripts, and reports
every outcome back. A local status service (aiohttp on localhost:8025) is
started alongside the loop; if the port is taken the worker runs without it.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import aiosqlite
from aiohttp.web import AppRunner, TCPSite

from .config import (
    BROWSER_BACKEND,
    DB_PATH,
    GOLOGIN_API_TOKEN,
    HUMAN_PACE,
    LOG_LEVEL,
    POLL_INTERVAL_MS,
    STATUS_HOST,
    STATUS_PORT,
    WORKER_ID,
    ensure_dirs,
    missing_env,
)
from .database.models import initialize_db
from .database.repository import AttemptRepository
from .errors import AuthWorkerError, LoginFailedError, ProfileNotFoundError
from .models.session import LoginState
from .models.task import Task
from .models.worker import WorkerContext
from .session_manager.actions import TASK_SCRIPTS
from .session_manager.connector import BrowserConnector, CloudBrowserConnector, LocalBrowserConnector
from .session_manager.manager import create_app
from .session_manager.orchestrator import LoginOrchestrator
from .tools.coordination import CoordinationClient

logger = logging.getLogger("authworker")


class Worker:
    """One worker process: a poll loop over a shared connector and channel."""

    def __init__(
        self,
        channel: CoordinationClient,
        connector: BrowserConnector,
        orchestrator: LoginOrchestrator,
        context: WorkerContext,
        poll_interval: float = POLL_INTERVAL_MS / 1000,
        pace: float = HUMAN_PACE,
    ):
        self.channel = channel
        self.connector = connector
        self.orchestrator = orchestrator
        self.context = context
        self._poll_interval = poll_interval
        self._pace = pace

    async def process_task(self, task: Task) -> dict[str, Any]:
        """Run one task and return its result payload. Raises on failure."""
        if task.is_login:
            result = await self.orchestrator.run(task)
            if not result.success:
                await self._flag_reauth(task, result.final_state, result.message)
                raise LoginFailedError(
                    result.message or f"Login ended in {result.final_state.value}",
                    result.category or "Unexpected",
                    result.to_payload(),
                )
            return result.to_payload()

        script = TASK_SCRIPTS.get(task.action_type)
        if script is None:
            raise AuthWorkerError(f"Unknown action type: {task.action_type}")
        if not task.profile_ref:
            raise ProfileNotFoundError("No browser profile linked to this agent")

        async with self.connector.session(task.profile_ref) as handle:
            return await script(handle.page, task, pace=self._pace)

    async def handle(self, task: Task):
        logger.info(f"Received task: {task.action_type} ({task.id}) for agent {task.agent_id}")
        self.context.begin(task.id, task.agent_id)
        await self.channel.heartbeat(self.context, "busy")

        try:
            result = await self.process_task(task)
        except LoginFailedError as e:
            logger.error(f"Task {task.id} failed: {e}")
            await self.channel.report_result(task.id, "failed", e.payload, error_message=e.message)
            self.context.finish(succeeded=False)
            return
        except Exception as e:
            logger.error(f"Task {task.id} failed: {e}")
            await self.channel.report_result(task.id, "failed", error_message=str(e))
            self.context.finish(succeeded=False)
            return

        await self.channel.report_result(task.id, "completed", result)
        self.context.finish(succeeded=True)
        logger.info(f"Task {task.id} completed successfully")

    async def _flag_reauth(self, task: Task, final_state: LoginState, message: str):
        """Mark the agent as needing an operator before it is scheduled again."""
        # Rejections already carry a specific agent label
        login_state = None if final_state == LoginState.REJECTED else LoginState.ERROR.value
        await self.channel.update_agent_state(
            task.agent_id, login_state, status="needs_reauth", loginError=message
        )

    async def run(self, stop: asyncio.Event):
        await self.channel.heartbeat(self.context, "online")
        while not stop.is_set():
            try:
                await self.channel.heartbeat(self.context, "polling")
                task = await self.channel.poll_next_task()
                if task:
                    await self.handle(task)
            except Exception as e:
                logger.error(f"Main loop error: {e}", exc_info=True)

            try:
                await asyncio.wait_for(stop.wait(), timeout=self._poll_interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Worker loop stopped")
        await self.channel.heartbeat(self.context, "offline")


def build_connector() -> BrowserConnector:
    if BROWSER_BACKEND == "local":
        return LocalBrowserConnector()
    return CloudBrowserConnector(GOLOGIN_API_TOKEN)


# ── Lifespan: status service ─────────────────────────────────────────────────


@asynccontextmanager
async def status_service(context: WorkerContext, repo: AttemptRepository) -> AsyncIterator[bool]:
    """Start the status service for the lifetime of the block."""
    runner = AppRunner(create_app(context, repo))
    await runner.setup()
    site = TCPSite(runner, STATUS_HOST, STATUS_PORT)
    managed = False
    try:
        await site.start()
        logger.info(f"Status service started on {STATUS_HOST}:{STATUS_PORT}")
        managed = True
    except OSError as e:
        logger.warning(f"Status service not started on {STATUS_HOST}:{STATUS_PORT}: {e}")
        await runner.cleanup()

    try:
        yield managed
    finally:
        if managed:
            await runner.cleanup()
            logger.info("Status service stopped.")


def install_signal_handlers(stop: asyncio.Event):
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _request_stop, stop, sig)
        except NotImplementedError:
            # Windows event loops have no signal handler support
            signal.signal(sig, lambda signum, frame: loop.call_soon_threadsafe(stop.set))


def _request_stop(stop: asyncio.Event, sig: signal.Signals):
    logger.info(f"Received {sig.name}, shutting down...")
    stop.set()


async def serve():
    context = WorkerContext(worker_id=WORKER_ID)
    stop = asyncio.Event()
    install_signal_handlers(stop)

    logger.info(f"Worker {WORKER_ID} started")
    logger.info(f"Poll interval: {POLL_INTERVAL_MS}ms")
    logger.info(f"Browser backend: {BROWSER_BACKEND}")

    connector = build_connector()
    async with aiosqlite.connect(str(DB_PATH)) as db:
        db.row_factory = aiosqlite.Row
        await initialize_db(db)
        repo = AttemptRepository(db)

        async with CoordinationClient() as channel, status_service(context, repo):
            orchestrator = LoginOrchestrator(connector, channel, journal=repo)
            worker = Worker(channel, connector, orchestrator, context)
            try:
                await worker.run(stop)
            finally:
                await connector.shutdown()


def main():
    """Run the worker until SIGINT/SIGTERM."""
    logging.basicConfig(
        stream=sys.stderr,
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    missing = missing_env()
    if missing:
        logger.error(f"Missing required environment variables: {', '.join(missing)}")
        sys.exit(1)

    ensure_dirs()
    asyncio.run(serve())


if __name__ == "__main__":
    main()
