"""Autonomous decision making with confidence scoring.

The DecisionEngine answers a question in three tiers:

1. Onboarding docs. A markdown file whose content covers more than half
   of the question's keywords is taken as the answer (confidence 0.95).
2. Domain heuristics, then an optional LLM reasoner. Their confidence is
   scaled by the quality of the supplied context: a complete, internally
   consistent context keeps the full score, a poor one costs up to 30%.
3. Nothing applicable. The decision has no value and zero confidence.

The engine never escalates. A decision below the escalation threshold
is returned with a note in its reasoning; decide_or_escalate() routes
such decisions to the EscalationQueue.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel, Field

from vouch.errors import InvocationError, OutputShapeError
from vouch.escalation.queue import EscalationQueue
from vouch.invoker import RetryingInvoker
from vouch.providers.base import Capability
from vouch.providers.parsing import parse_structured
from vouch.schemas.capability import CapabilityOutput
from vouch.schemas.decision import Decision, DecisionSource
from vouch.schemas.escalation import EscalationRequest
from vouch.schemas.pipeline import VouchConfig, WorkerRole

logger = logging.getLogger(__name__)

# Confidence assigned to answers found in onboarding docs
_ONBOARDING_CONFIDENCE = 0.95

# Fraction of question keywords a doc must contain to count as an answer
_ONBOARDING_MATCH = 0.5

# Bounds for clarity-adjusted reasoner confidence
_MIN_REASONED = 0.3
_MAX_REASONED = 0.9

# Share of confidence that depends on context signal quality
_SIGNAL_WEIGHT = 0.3

_STOP_WORDS = frozenset({
    "the", "a", "an", "is", "are", "was", "were",
    "what", "how", "when", "where", "who", "why",
    "should", "could", "would", "will", "can",
    "do", "does", "did", "have", "has", "had",
    "be", "been", "being", "am", "to", "from",
    "in", "on", "at", "by", "for", "with", "about",
    "as", "of", "or", "and", "but", "if", "then",
})

_HIGH_CERTAINTY = ("definitely", "clearly", "certain", "confident", "sure")
_LOW_CERTAINTY = ("maybe", "perhaps", "might", "possibly", "unsure", "unclear")
_MISSING_CONTEXT = ("missing", "insufficient", "need more")

_REASONER_SYSTEM = (
    "You are an autonomous decision-making assistant. Answer with a JSON object "
    'of the form {"decision": ..., "confidence": 0.0-1.0, "reasoning": "..."}.'
)


@dataclass
class HeuristicAnswer:
    """A domain heuristic's proposed answer."""

    value: Any
    confidence: float
    reasoning: str = ""


class DecisionHeuristic(Protocol):
    """Pluggable rule that may answer a question from context alone."""

    def __call__(self, question: str, context: Mapping[str, Any]) -> HeuristicAnswer | None: ...


class _ReasonerAnswer(BaseModel):
    decision: Any = Field(default=None)
    confidence: float = Field(default=0.5)
    reasoning: str = Field(default="")


# ── Scoring helpers ──────────────────────────────────────────────


def extract_keywords(question: str) -> list[str]:
    """Lower-cased question words longer than two letters, minus stop words."""
    return [
        word for word in re.split(r"\W+", question.lower())
        if len(word) > 2 and word not in _STOP_WORDS
    ]


def match_score(content: str, keywords: Sequence[str]) -> float:
    """Fraction of keywords present in ``content``."""
    if not keywords:
        return 0.0
    lower = content.lower()
    return sum(1 for k in keywords if k in lower) / len(keywords)


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str | list | dict | tuple | set) and not value)


def context_signal_quality(context: Mapping[str, Any]) -> float:
    """Score a context's completeness times its internal consistency.

    Completeness is the share of non-empty values. Consistency drops for
    every pair of keys that name the same thing (ignoring case, ``-`` and
    ``_``) but carry different values. An empty context scores 0.5.
    """
    if not context:
        return 0.5

    completeness = sum(not _is_empty(v) for v in context.values()) / len(context)

    seen: dict[str, Any] = {}
    conflicts = 0
    for key, value in context.items():
        norm = re.sub(r"[-_\s]", "", str(key).lower())
        if norm in seen and seen[norm] != value:
            conflicts += 1
        seen.setdefault(norm, value)
    consistency = 1.0 - conflicts / len(context)

    return round(completeness * consistency, 4)


def adjust_confidence_by_clarity(decision: Any, reasoning: str, base: float) -> float:
    """Nudge a reasoner's self-reported confidence by the wording it used."""
    text = f"{decision} {reasoning}".lower()
    adjustment = 0.0
    if any(word in text for word in _HIGH_CERTAINTY):
        adjustment += 0.1
    if any(word in text for word in _LOW_CERTAINTY):
        adjustment -= 0.2
    if any(phrase in text for phrase in _MISSING_CONTEXT):
        adjustment -= 0.15
    if len(reasoning) < 50:
        adjustment -= 0.05
    return max(_MIN_REASONED, min(_MAX_REASONED, base + adjustment))


def confidence_from_text(text: str) -> float:
    """Estimate confidence from free text when no JSON answer was given."""
    lower = (text or "").lower()
    if "definitely" in lower or "clearly" in lower:
        return 0.7
    if "probably" in lower or "likely" in lower:
        return 0.6
    if "maybe" in lower or "perhaps" in lower:
        return 0.4
    if "unsure" in lower or "unclear" in lower:
        return 0.3
    return 0.5


# ── Engine ───────────────────────────────────────────────────────


class DecisionEngine:
    """Produce scored decisions without human involvement.

    Args:
        onboarding_dir: Directory of ``*.md`` docs consulted first.
        heuristics: Domain rules tried in order before the reasoner.
        reasoner: Optional LLM capability for open questions.
        invoker: Invoker used for the reasoner; defaults to the standard policy.
        escalation_threshold: Confidence below which a decision is flagged.
    """

    def __init__(
        self,
        *,
        onboarding_dir: Path | str | None = None,
        heuristics: Sequence[DecisionHeuristic] = (),
        reasoner: Capability | None = None,
        invoker: RetryingInvoker | None = None,
        escalation_threshold: float = 0.75,
    ) -> None:
        self._onboarding_dir = Path(onboarding_dir).expanduser() if onboarding_dir else None
        self._heuristics = list(heuristics)
        self._reasoner = reasoner
        self._invoker = invoker or RetryingInvoker()
        self.escalation_threshold = escalation_threshold
        self._owns_reasoner = False

    @classmethod
    def from_config(
        cls,
        config: VouchConfig,
        factories: Mapping[WorkerRole, Callable[[], Capability]] | None = None,
        *,
        heuristics: Sequence[DecisionHeuristic] = (),
    ) -> DecisionEngine:
        """Build an engine from pipeline configuration.

        Uses ``onboarding_dir``, ``escalation_threshold`` and the retry
        policy from ``config``. The reasoner is spawned from the
        DECISION_REASONER factory when one is registered; the engine then
        owns it and aclose() releases it.
        """
        factory = (factories or {}).get(WorkerRole.DECISION_REASONER)
        engine = cls(
            onboarding_dir=config.onboarding_dir or None,
            heuristics=heuristics,
            reasoner=factory() if factory is not None else None,
            invoker=RetryingInvoker(config.retry),
            escalation_threshold=config.escalation_threshold,
        )
        engine._owns_reasoner = factory is not None
        return engine

    async def aclose(self) -> None:
        """Close the reasoner if this engine spawned it."""
        if self._owns_reasoner and self._reasoner is not None:
            await self._reasoner.aclose()
            self._owns_reasoner = False

    def needs_escalation(self, decision: Decision) -> bool:
        return decision.confidence < self.escalation_threshold

    async def attempt_autonomous_decision(
        self, question: str, context: Mapping[str, Any] | None = None
    ) -> Decision:
        """Answer ``question`` and score the answer.

        Returns:
            Decision carrying a value (possibly None), confidence and reasoning.
        """
        context = dict(context or {})

        onboarding = self._check_onboarding_docs(question)
        if onboarding is not None:
            doc_name, content = onboarding
            decision = Decision(
                question=question,
                context=context,
                value=content,
                confidence=_ONBOARDING_CONFIDENCE,
                reasoning=f"Answer found in onboarding doc {doc_name}",
                source=DecisionSource.ONBOARDING,
            )
            return self._finish(decision)

        signal = context_signal_quality(context)
        answer = self._apply_heuristics(question, context)
        source = DecisionSource.HEURISTIC
        if answer is None and self._reasoner is not None:
            answer = await self._reason(question, context)
            source = DecisionSource.LLM

        if answer is None:
            decision = Decision(
                question=question,
                context=context,
                value=None,
                confidence=0.0,
                reasoning="No onboarding answer, heuristic or reasoner available",
                source=DecisionSource.HEURISTIC,
            )
            return self._finish(decision)

        scaled = answer.confidence * (1.0 - _SIGNAL_WEIGHT + _SIGNAL_WEIGHT * signal)
        decision = Decision(
            question=question,
            context=context,
            value=answer.value,
            confidence=round(max(0.0, min(1.0, scaled)), 4),
            reasoning=f"{answer.reasoning} (context signal {signal:.2f})".strip(),
            source=source,
        )
        return self._finish(decision)

    def _finish(self, decision: Decision) -> Decision:
        if self.needs_escalation(decision):
            decision = decision.model_copy(update={
                "reasoning": (
                    f"{decision.reasoning} [ESCALATION REQUIRED: confidence "
                    f"{decision.confidence:.2f} < threshold {self.escalation_threshold:.2f}]"
                ),
            })
        logger.info(
            "Decision (%s, confidence %.2f): %s",
            decision.source, decision.confidence, decision.question,
        )
        return decision

    def _check_onboarding_docs(self, question: str) -> tuple[str, str] | None:
        if self._onboarding_dir is None or not self._onboarding_dir.is_dir():
            return None

        keywords = extract_keywords(question)
        for doc in sorted(self._onboarding_dir.glob("*.md")):
            content = doc.read_text(encoding="utf-8")
            if match_score(content, keywords) > _ONBOARDING_MATCH:
                return doc.name, content
        return None

    def _apply_heuristics(
        self, question: str, context: Mapping[str, Any]
    ) -> HeuristicAnswer | None:
        for heuristic in self._heuristics:
            answer = heuristic(question, context)
            if answer is not None:
                return answer
        return None

    async def _reason(self, question: str, context: Mapping[str, Any]) -> HeuristicAnswer | None:
        payload = {
            "system": _REASONER_SYSTEM,
            "prompt": f"Question: {question}\n\nContext:\n{context!r}",
        }
        try:
            output = await self._invoker.invoke(self._reasoner, payload, label="decision reasoner")
        except InvocationError as e:
            logger.warning("Decision reasoner failed after %d attempt(s): %s", e.attempts, e)
            return None

        try:
            parsed = parse_structured(output, _ReasonerAnswer)
        except OutputShapeError:
            text = output.content if isinstance(output, CapabilityOutput) else str(output)
            return HeuristicAnswer(
                value=text.strip(),
                confidence=confidence_from_text(text),
                reasoning="Unstructured reasoner answer",
            )

        base = max(0.0, min(1.0, parsed.confidence))
        return HeuristicAnswer(
            value=parsed.decision,
            confidence=adjust_confidence_by_clarity(parsed.decision, parsed.reasoning, base),
            reasoning=parsed.reasoning,
        )


async def decide_or_escalate(
    engine: DecisionEngine,
    queue: EscalationQueue,
    question: str,
    context: Mapping[str, Any] | None = None,
    *,
    workflow_id: str,
    step_id: str = "",
    timeout: float | None = None,
) -> Decision:
    """Return a confident autonomous decision or a human one.

    Low-confidence decisions are escalated and this call blocks until a
    human answers. The human answer always wins and carries confidence 1.0.

    Raises:
        EscalationTimeout: No human answer within ``timeout``.
    """
    decision = await engine.attempt_autonomous_decision(question, context)
    if not engine.needs_escalation(decision):
        return decision

    escalation_id = await queue.add(EscalationRequest(
        workflow_id=workflow_id,
        step_id=step_id,
        question=question,
        ai_reasoning=decision.reasoning,
        confidence=decision.confidence,
        context={"proposed_value": decision.value, **decision.context},
    ))
    answer = await queue.wait_for_response(escalation_id, timeout=timeout)
    return Decision(
        question=question,
        context=decision.context,
        value=answer.answer,
        confidence=answer.confidence,
        reasoning=f"Answered by human via {escalation_id}",
        source=DecisionSource.HUMAN,
        timestamp=answer.answered_at,
    )
