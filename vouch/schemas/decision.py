"""Decision schemas for autonomous and human-made choices."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class DecisionSource(StrEnum):
    """Where a decision's value came from."""

    ONBOARDING = "onboarding"
    HEURISTIC = "heuristic"
    LLM = "llm"
    HUMAN = "human"


class Decision(BaseModel):
    """A scored answer to a single question.

    Decisions are immutable once produced. A decision below the escalation
    threshold is still returned by the DecisionEngine; routing it to a
    human is the caller's job.
    """

    model_config = ConfigDict(frozen=True)

    question: str = Field(description="The question that was decided")
    context: dict[str, Any] = Field(
        default_factory=dict, description="Context the decision was made against"
    )
    value: Any = Field(default=None, description="The chosen answer, if any")
    confidence: float = Field(ge=0.0, le=1.0, description="Confidence in the value")
    reasoning: str = Field(default="", description="Why this value was chosen")
    source: DecisionSource = Field(description="Where the value came from")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC), description="When the decision was made"
    )
