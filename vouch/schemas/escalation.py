"""Escalation schemas for the human-in-the-loop queue.

An escalation is a pending question routed to a human decision-maker. It
moves from pending to answered exactly once; answered is terminal.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator


class EscalationStatus(StrEnum):
    """Lifecycle state of an escalation."""

    PENDING = "pending"
    ANSWERED = "answered"


class EscalationRequest(BaseModel):
    """What a workflow step submits when it needs a human decision."""

    workflow_id: str = Field(description="Workflow the question belongs to")
    step_id: str = Field(default="", description="Step within the workflow that paused")
    question: str = Field(description="Question for the human decision-maker")
    ai_reasoning: str = Field(default="", description="Reasoning behind the automated attempt")
    confidence: float = Field(
        default=0.0, ge=0.0, le=1.0, description="Confidence of the automated attempt"
    )
    context: dict[str, Any] = Field(
        default_factory=dict, description="Additional context shown to the human"
    )

    @field_validator("workflow_id", "question")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value


class EscalationRecord(EscalationRequest):
    """A persisted escalation with its lifecycle state."""

    id: str = Field(description="Unique escalation id (esc-<uuid>)")
    status: EscalationStatus = Field(
        default=EscalationStatus.PENDING, description="Current lifecycle state"
    )
    answer: Any = Field(default=None, description="Human answer, once answered")
    created_at: datetime = Field(description="When the escalation was created")
    answered_at: datetime | None = Field(default=None, description="When it was answered")

    @model_validator(mode="after")
    def _check_lifecycle(self) -> EscalationRecord:
        if self.status == EscalationStatus.PENDING:
            if self.answer is not None or self.answered_at is not None:
                raise ValueError("pending escalation cannot carry an answer")
        elif self.answered_at is None:
            raise ValueError("answered escalation requires answered_at")
        return self

    @property
    def resolution_seconds(self) -> float | None:
        """Seconds between creation and answer, or None while pending."""
        if self.answered_at is None:
            return None
        return (self.answered_at - self.created_at).total_seconds()


class EscalationAnswer(BaseModel):
    """A human answer delivered to waiters. Human answers are certain."""

    escalation_id: str = Field(description="Escalation this answers")
    answer: Any = Field(description="The human's answer")
    answered_at: datetime = Field(description="When the answer was recorded")
    confidence: float = Field(
        default=1.0, ge=1.0, le=1.0, description="Always 1.0 for human answers"
    )


class WorkflowEscalationStats(BaseModel):
    """Per-workflow escalation counters."""

    total: int = Field(default=0, ge=0, description="Escalations raised")
    answered: int = Field(default=0, ge=0, description="Escalations answered")


class EscalationMetrics(BaseModel):
    """Aggregate statistics over the escalation store."""

    total: int = Field(default=0, ge=0, description="Total escalations")
    pending: int = Field(default=0, ge=0, description="Escalations awaiting an answer")
    answered: int = Field(default=0, ge=0, description="Escalations answered")
    average_resolution_seconds: float = Field(
        default=0.0, ge=0.0, description="Mean time from creation to answer"
    )
    by_workflow: dict[str, WorkflowEscalationStats] = Field(
        default_factory=dict, description="Breakdown per workflow id"
    )
