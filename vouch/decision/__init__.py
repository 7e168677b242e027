"""Decision layer — scored autonomous decisions with human fallback."""

from vouch.decision.engine import (
    DecisionEngine,
    DecisionHeuristic,
    HeuristicAnswer,
    context_signal_quality,
    decide_or_escalate,
)

__all__ = [
    "DecisionEngine",
    "DecisionHeuristic",
    "HeuristicAnswer",
    "context_signal_quality",
    "decide_or_escalate",
]
