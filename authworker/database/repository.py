"""Async repository for the login-attempt journal."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime
from typing import Any, Optional

import aiosqlite

from ..models.session import LoginResult

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


class AttemptRepository:
    """Records every login attempt and each state it passed through."""

    def __init__(self, db: aiosqlite.Connection):
        self._db = db

    async def start_attempt(self, task_id: str, agent_id: str, profile_ref: str = "") -> int:
        """Open a journal entry and return its id."""
        cursor = await self._db.execute(
            "INSERT INTO login_attempts (task_id, agent_id, profile_ref, started_at) VALUES (?, ?, ?, ?)",
            (task_id, agent_id, profile_ref or "", datetime.utcnow().isoformat()),
        )
        await self._db.commit()
        return cursor.lastrowid

    async def record_transition(self, attempt_id: int, state: str, detail: Optional[dict[str, Any]] = None):
        await self._db.execute(
            "INSERT INTO state_transitions (attempt_id, state, detail, at) VALUES (?, ?, ?, ?)",
            (attempt_id, state, json.dumps(detail or {}), datetime.utcnow().isoformat()),
        )
        await self._db.commit()

    async def finish_attempt(self, attempt_id: int, result: LoginResult):
        await self._db.execute(
            """
            UPDATE login_attempts
            SET finished_at = ?, final_state = ?, category = ?, message = ?, confidence = ?
            WHERE id = ?
            """,
            (
                datetime.utcnow().isoformat(),
                result.final_state.value,
                result.category or "",
                result.message,
                result.confidence,
                attempt_id,
            ),
        )
        await self._db.commit()

    async def get_transitions(self, attempt_id: int) -> list[str]:
        """States recorded for one attempt, in order."""
        async with self._db.execute(
            "SELECT state FROM state_transitions WHERE attempt_id = ? ORDER BY id", (attempt_id,)
        ) as cursor:
            return [row[0] async for row in cursor]

    async def recent_attempts(self, limit: int = 20, agent_id: str = "") -> list[dict[str, Any]]:
        """Most recent attempts first, optionally for one agent."""
        where = "WHERE agent_id = ?" if agent_id else ""
        params: list[Any] = [agent_id] if agent_id else []
        params.append(limit)

        async with self._db.execute(
            f"SELECT * FROM login_attempts {where} ORDER BY id DESC LIMIT ?", params
        ) as cursor:
            col_names = [d[0] for d in cursor.description]
            return [dict(zip(col_names, row)) async for row in cursor]

    async def get_stats(self) -> dict[str, Any]:
        """Aggregate outcome counts across the journal."""
        stats: dict[str, Any] = {}

        async with self._db.execute("SELECT COUNT(*) FROM login_attempts") as cursor:
            stats["total_attempts"] = (await cursor.fetchone())[0]

        async with self._db.execute(
            "SELECT final_state, COUNT(*) FROM login_attempts WHERE final_state != '' GROUP BY final_state"
        ) as cursor:
            stats["by_state"] = {row[0]: row[1] async for row in cursor}

        async with self._db.execute(
            "SELECT category, COUNT(*) FROM login_attempts WHERE category != '' GROUP BY category"
        ) as cursor:
            stats["failures_by_category"] = {row[0]: row[1] async for row in cursor}

        async with self._db.execute(
            "SELECT AVG(confidence) FROM login_attempts WHERE confidence IS NOT NULL"
        ) as cursor:
            row = await cursor.fetchone()
            stats["avg_confidence"] = round(row[0], 3) if row[0] is not None else None

        return stats
