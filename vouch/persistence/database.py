"""SQLite database layer for escalation persistence.

Manages the SQLite database connection and schema creation. Uses
aiosqlite for async access with WAL mode so a CLI process can answer
escalations while a pipeline process waits on them.
"""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

logger = logging.getLogger(__name__)

# SQL schema for the escalation store
_SCHEMA = """
CREATE TABLE IF NOT EXISTS escalations (
    id           TEXT PRIMARY KEY,
    workflow_id  TEXT NOT NULL,
    step_id      TEXT NOT NULL DEFAULT '',
    question     TEXT NOT NULL,
    ai_reasoning TEXT NOT NULL DEFAULT '',
    confidence   REAL NOT NULL DEFAULT 0.0,
    context_json TEXT NOT NULL DEFAULT '{}',
    status       TEXT NOT NULL DEFAULT 'pending',
    answer_json  TEXT,
    created_at   TEXT NOT NULL,
    answered_at  TEXT
);

CREATE INDEX IF NOT EXISTS idx_escalations_status ON escalations(status);
CREATE INDEX IF NOT EXISTS idx_escalations_workflow ON escalations(workflow_id);
CREATE INDEX IF NOT EXISTS idx_escalations_created ON escalations(created_at);
"""


async def init_db(db_path: str) -> aiosqlite.Connection:
    """Initialize the database connection and create tables if needed.

    Creates parent directories if they don't exist, enables WAL mode,
    then runs the schema DDL.

    Args:
        db_path: Path to the SQLite database file. Supports ~ expansion
            and ``:memory:``.

    Returns:
        An open aiosqlite connection ready for use.
    """
    if db_path == ":memory:":
        target = db_path
    else:
        resolved = Path(db_path).expanduser()
        resolved.parent.mkdir(parents=True, exist_ok=True)
        target = str(resolved)

    db = await aiosqlite.connect(target)
    db.row_factory = aiosqlite.Row
    await db.execute("PRAGMA journal_mode=WAL")
    await db.executescript(_SCHEMA)
    await db.commit()

    logger.info("Escalation database initialized at %s", target)
    return db


async def close_db(db: aiosqlite.Connection) -> None:
    """Close the database connection."""
    await db.close()
