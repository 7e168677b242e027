"""Durable human-in-the-loop escalation queue.

An escalation pauses a workflow step until a human answers. Records live
in SQLite, so a pending escalation survives process restarts and can be
answered from another process (the ``vouch escalations respond`` CLI).

Within one process, waiters block on a per-escalation asyncio.Event that
resolve() sets, so every concurrent waiter is released at once. Waiters
also poll the store every ``poll_interval`` seconds to pick up answers
written by other processes. Registration and resolution share one lock:
a waiter that arrives after resolve() sees the answered record, and one
that arrives before it is holding the event resolve() will set.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter, defaultdict
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

import aiosqlite

from vouch.errors import AlreadyAnswered, EscalationNotFound, EscalationTimeout
from vouch.persistence.database import close_db, init_db
from vouch.persistence.escalations import EscalationStore
from vouch.schemas.escalation import (
    EscalationAnswer,
    EscalationMetrics,
    EscalationRecord,
    EscalationRequest,
    EscalationStatus,
    WorkflowEscalationStats,
)

logger = logging.getLogger(__name__)


def _new_escalation_id() -> str:
    return f"esc-{uuid4()}"


def _to_answer(record: EscalationRecord) -> EscalationAnswer:
    return EscalationAnswer(
        escalation_id=record.id,
        answer=record.answer,
        answered_at=record.answered_at,
    )


class EscalationQueue:
    """Pending-decision store with blocking waits.

    Args:
        store: Persistent escalation store.
        poll_interval: Seconds between store polls while waiting.
    """

    def __init__(self, store: EscalationStore, *, poll_interval: float = 1.0) -> None:
        self._store = store
        self._poll_interval = poll_interval
        self._lock = asyncio.Lock()
        self._events: dict[str, asyncio.Event] = {}
        self._waiters: Counter[str] = Counter()
        self._db: aiosqlite.Connection | None = None

    @classmethod
    async def open(cls, db_path: str, *, poll_interval: float = 1.0) -> EscalationQueue:
        """Open (creating if needed) the SQLite store at ``db_path``."""
        db = await init_db(db_path)
        queue = cls(EscalationStore(db), poll_interval=poll_interval)
        queue._db = db
        return queue

    async def close(self) -> None:
        """Close the database connection if this queue opened it."""
        if self._db is not None:
            await close_db(self._db)
            self._db = None

    # ── Lifecycle ─────────────────────────────────────────────

    async def add(self, request: EscalationRequest) -> str:
        """Persist a pending escalation and return its id immediately."""
        record = EscalationRecord(
            **request.model_dump(),
            id=_new_escalation_id(),
            created_at=datetime.now(UTC),
        )
        await self._store.insert(record)
        logger.info(
            "Escalation %s created for %s/%s (confidence %.2f): %s",
            record.id, record.workflow_id, record.step_id or "-",
            record.confidence, record.question,
        )
        return record.id

    async def resolve(self, escalation_id: str, answer: Any) -> EscalationRecord:
        """Record a human answer and release every waiter.

        Raises:
            EscalationNotFound: No escalation has this id.
            AlreadyAnswered: The escalation was answered before.
        """
        async with self._lock:
            answered = await self._store.mark_answered(
                escalation_id, answer, datetime.now(UTC)
            )
            if not answered:
                if await self._store.get(escalation_id) is None:
                    raise EscalationNotFound(escalation_id)
                raise AlreadyAnswered(escalation_id)
            self._release(escalation_id)

        logger.info("Escalation %s answered", escalation_id)
        return await self.get(escalation_id)

    async def wait_for_response(
        self, escalation_id: str, timeout: float | None = None
    ) -> EscalationAnswer:
        """Suspend until the escalation is answered.

        Args:
            escalation_id: Escalation to wait on.
            timeout: Seconds to wait; None waits indefinitely.

        Returns:
            The human answer (confidence 1.0).

        Raises:
            EscalationNotFound: No escalation has this id.
            EscalationTimeout: No answer arrived within ``timeout``.
        """
        async with self._lock:
            record = await self._store.get(escalation_id)
            if record is None:
                raise EscalationNotFound(escalation_id)
            if record.status == EscalationStatus.ANSWERED:
                return _to_answer(record)
            event = self._events.setdefault(escalation_id, asyncio.Event())
            self._waiters[escalation_id] += 1

        logger.info("Waiting for human answer on %s", escalation_id)
        try:
            async with asyncio.timeout(timeout):
                while not event.is_set():
                    try:
                        await asyncio.wait_for(event.wait(), timeout=self._poll_interval)
                    except TimeoutError:
                        if await self._answered_elsewhere(escalation_id):
                            break
        except TimeoutError:
            raise EscalationTimeout(escalation_id, timeout) from None
        finally:
            self._leave(escalation_id, event)

        record = await self.get(escalation_id)
        return _to_answer(record)

    async def _answered_elsewhere(self, escalation_id: str) -> bool:
        async with self._lock:
            record = await self._store.get(escalation_id)
            if record is not None and record.status == EscalationStatus.ANSWERED:
                self._release(escalation_id)
                return True
        return False

    def _release(self, escalation_id: str) -> None:
        event = self._events.pop(escalation_id, None)
        if event is not None:
            event.set()

    def _leave(self, escalation_id: str, event: asyncio.Event) -> None:
        # The last waiter out drops the event so unanswered escalations hold no state
        self._waiters[escalation_id] -= 1
        if self._waiters[escalation_id] > 0:
            return
        del self._waiters[escalation_id]
        if self._events.get(escalation_id) is event:
            del self._events[escalation_id]

    # ── Queries ───────────────────────────────────────────────

    async def get(self, escalation_id: str) -> EscalationRecord:
        """Fetch one escalation.

        Raises:
            EscalationNotFound: No escalation has this id.
        """
        record = await self._store.get(escalation_id)
        if record is None:
            raise EscalationNotFound(escalation_id)
        return record

    async def list(
        self,
        status: EscalationStatus | None = None,
        workflow_id: str | None = None,
        limit: int | None = None,
    ) -> list[EscalationRecord]:
        """List escalations, oldest first."""
        return await self._store.list(status=status, workflow_id=workflow_id, limit=limit)

    async def metrics(self) -> EscalationMetrics:
        """Aggregate counts and mean resolution time."""
        records = await self._store.list()
        by_workflow: dict[str, WorkflowEscalationStats] = defaultdict(WorkflowEscalationStats)
        resolution_times: list[float] = []

        for record in records:
            stats = by_workflow[record.workflow_id]
            stats.total += 1
            if record.status == EscalationStatus.ANSWERED:
                stats.answered += 1
                resolution_times.append(record.resolution_seconds or 0.0)

        answered = len(resolution_times)
        return EscalationMetrics(
            total=len(records),
            pending=len(records) - answered,
            answered=answered,
            average_resolution_seconds=(
                sum(resolution_times) / answered if answered else 0.0
            ),
            by_workflow=dict(by_workflow),
        )
