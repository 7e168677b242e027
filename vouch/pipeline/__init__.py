"""Pipeline layer — the orchestrator and its per-run helpers."""

from vouch.pipeline.context import validate_context
from vouch.pipeline.metrics import MetricsTracker
from vouch.pipeline.orchestrator import PipelineOrchestrator, is_approval
from vouch.pipeline.workers import WorkerPool, WorkerRegistry

__all__ = [
    "MetricsTracker",
    "PipelineOrchestrator",
    "WorkerPool",
    "WorkerRegistry",
    "is_approval",
    "validate_context",
]
