"""Vouch — trust pipeline for generative workers."""

__version__ = "0.1.0"

from .arbitration import arbitrate
from .decision import DecisionEngine, decide_or_escalate
from .escalation import EscalationQueue
from .gate import ValidationGate
from .invoker import RetryingInvoker
from .pipeline import PipelineOrchestrator, WorkerRegistry

__all__ = [
    "DecisionEngine",
    "EscalationQueue",
    "PipelineOrchestrator",
    "RetryingInvoker",
    "ValidationGate",
    "WorkerRegistry",
    "arbitrate",
    "decide_or_escalate",
]
