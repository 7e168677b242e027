"""Audit trail entry schema."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class AuditKind(StrEnum):
    """Kinds of events recorded in a run's audit trail."""

    RUN_STARTED = "run_started"
    DECISION = "decision"
    INVOCATION = "invocation"
    GATE = "gate"
    ASSESSMENT = "assessment"
    VERDICT = "verdict"
    ESCALATION = "escalation"
    APPLY = "apply"
    METRICS = "metrics"
    FAILURE = "failure"
    RUN_FINISHED = "run_finished"


class AuditEntry(BaseModel):
    """One append-only line in a run's audit log."""

    run_id: str = Field(description="Run this entry belongs to")
    kind: AuditKind = Field(description="What happened")
    stage: str = Field(default="", description="Pipeline stage, if any")
    payload: dict[str, Any] = Field(default_factory=dict, description="Event data")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC), description="When it was recorded"
    )
