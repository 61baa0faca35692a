"""Pydantic model for worker-lifetime state."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class WorkerContext(BaseModel):
    """Counters and current assignment for one worker process.

    Passed explicitly to heartbeat reporting and the status service.
    """

    worker_id: str
    status: str = "idle"  # online, polling, busy, offline
    actions_processed: int = 0
    actions_failed: int = 0
    current_task_id: Optional[str] = None
    current_agent_id: Optional[str] = None
    started_at: str = Field(default_factory=lambda: datetime.utcnow().isoformat())

    def begin(self, task_id: str, agent_id: Optional[str]):
        self.status = "busy"
        self.current_task_id = task_id
        self.current_agent_id = agent_id

    def finish(self, succeeded: bool):
        if succeeded:
            self.actions_processed += 1
        else:
            self.actions_failed += 1
        self.status = "polling"
        self.current_task_id = None
        self.current_agent_id = None
