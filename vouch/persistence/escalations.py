"""Escalation store for saving, resolving and querying escalations.

Wraps low-level SQL with pydantic serialization. Resolution is a single
conditional UPDATE, so two processes racing to answer the same
escalation cannot both win.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime

import aiosqlite

from vouch.schemas.escalation import EscalationRecord, EscalationStatus

logger = logging.getLogger(__name__)


class EscalationStore:
    """Persistent escalation store backed by SQLite.

    All methods are async and operate on an aiosqlite connection
    initialized by database.init_db().
    """

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def insert(self, record: EscalationRecord) -> None:
        """Insert a new pending escalation."""
        await self._db.execute(
            """
            INSERT INTO escalations
                (id, workflow_id, step_id, question, ai_reasoning, confidence,
                 context_json, status, answer_json, created_at, answered_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, NULL, ?, NULL)
            """,
            (
                record.id,
                record.workflow_id,
                record.step_id,
                record.question,
                record.ai_reasoning,
                record.confidence,
                json.dumps(record.context, default=str),
                record.status.value,
                record.created_at.isoformat(),
            ),
        )
        await self._db.commit()

    async def get(self, escalation_id: str) -> EscalationRecord | None:
        """Fetch one escalation, or None if it does not exist."""
        async with self._db.execute(
            "SELECT * FROM escalations WHERE id = ?", (escalation_id,)
        ) as cursor:
            row = await cursor.fetchone()
        return _row_to_record(row) if row else None

    async def mark_answered(
        self, escalation_id: str, answer: object, answered_at: datetime
    ) -> bool:
        """Transition pending -> answered.

        Returns:
            True if this call performed the transition, False if the
            escalation was missing or already answered.
        """
        cursor = await self._db.execute(
            """
            UPDATE escalations
               SET status = ?, answer_json = ?, answered_at = ?
             WHERE id = ? AND status = ?
            """,
            (
                EscalationStatus.ANSWERED.value,
                json.dumps(answer, default=str),
                answered_at.isoformat(),
                escalation_id,
                EscalationStatus.PENDING.value,
            ),
        )
        await self._db.commit()
        return cursor.rowcount == 1

    async def list(
        self,
        status: EscalationStatus | None = None,
        workflow_id: str | None = None,
        limit: int | None = None,
    ) -> list[EscalationRecord]:
        """List escalations, oldest first, optionally filtered."""
        clauses: list[str] = []
        params: list[object] = []
        if status is not None:
            clauses.append("status = ?")
            params.append(status.value)
        if workflow_id is not None:
            clauses.append("workflow_id = ?")
            params.append(workflow_id)

        sql = "SELECT * FROM escalations"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY created_at ASC"
        if limit:
            sql += " LIMIT ?"
            params.append(limit)

        async with self._db.execute(sql, params) as cursor:
            rows = await cursor.fetchall()
        return [_row_to_record(row) for row in rows]


def _row_to_record(row: aiosqlite.Row) -> EscalationRecord:
    answer_json = row["answer_json"]
    return EscalationRecord(
        id=row["id"],
        workflow_id=row["workflow_id"],
        step_id=row["step_id"],
        question=row["question"],
        ai_reasoning=row["ai_reasoning"],
        confidence=row["confidence"],
        context=json.loads(row["context_json"]),
        status=EscalationStatus(row["status"]),
        answer=json.loads(answer_json) if answer_json is not None else None,
        created_at=datetime.fromisoformat(row["created_at"]),
        answered_at=(
            datetime.fromisoformat(row["answered_at"]) if row["answered_at"] else None
        ),
    )
