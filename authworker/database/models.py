"""SQLite schema for the local login-attempt journal."""

from __future__ import annotations

import aiosqlite

SCHEMA = """
CREATE TABLE IF NOT EXISTS login_attempts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    task_id TEXT NOT NULL,
    agent_id TEXT NOT NULL,
    profile_ref TEXT DEFAULT '',
    started_at TEXT NOT NULL,
    finished_at TEXT,
    final_state TEXT DEFAULT '',
    category TEXT DEFAULT '',
    message TEXT DEFAULT '',
    confidence REAL
);

CREATE TABLE IF NOT EXISTS state_transitions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    attempt_id INTEGER NOT NULL REFERENCES login_attempts(id),
    state TEXT NOT NULL,
    detail TEXT DEFAULT '{}',
    at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_attempts_agent ON login_attempts(agent_id);
CREATE INDEX IF NOT EXISTS idx_attempts_started ON login_attempts(started_at);
CREATE INDEX IF NOT EXISTS idx_transitions_attempt ON state_transitions(attempt_id);
"""


async def initialize_db(db: aiosqlite.Connection):
    """Create tables and indexes if they don't exist."""
    await db.executescript(SCHEMA)
    await db.commit()
