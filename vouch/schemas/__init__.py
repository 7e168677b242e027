"""Vouch schema definitions.

All Pydantic v2 models used across the invoker, gate, arbitration,
escalation queue and orchestrator.
"""

from vouch.schemas.apply import ApplyFailure, ApplyResult
from vouch.schemas.audit import AuditEntry, AuditKind
from vouch.schemas.capability import CapabilityOutput, TokenUsage
from vouch.schemas.context import (
    Artifact,
    ArtifactFile,
    FileOperation,
    Story,
    StoryContext,
)
from vouch.schemas.decision import Decision, DecisionSource
from vouch.schemas.escalation import (
    EscalationAnswer,
    EscalationMetrics,
    EscalationRecord,
    EscalationRequest,
    EscalationStatus,
    WorkflowEscalationStats,
)
from vouch.schemas.pipeline import (
    FailureKind,
    ModelConfig,
    PipelineMetrics,
    PipelineResult,
    PipelineStage,
    RetryPolicy,
    RunFailure,
    RunStatus,
    VouchConfig,
    WorkerRole,
)
from vouch.schemas.review import (
    AcceptanceCheck,
    ArbitrationDecision,
    ArbitrationRule,
    ChecklistItem,
    CodeSmell,
    CoverageQuality,
    FindingCategory,
    IndependentAssessment,
    ReviewDecision,
    ReviewFinding,
    ReviewSummary,
    SecurityFinding,
    SelfAssessment,
    Severity,
    Verdict,
)
from vouch.schemas.validation import GateMode, GateResult, ValidationReport

__all__ = [
    "AcceptanceCheck",
    "ApplyFailure",
    "ApplyResult",
    "ArbitrationDecision",
    "ArbitrationRule",
    "Artifact",
    "ArtifactFile",
    "AuditEntry",
    "AuditKind",
    "CapabilityOutput",
    "ChecklistItem",
    "CodeSmell",
    "CoverageQuality",
    "Decision",
    "DecisionSource",
    "EscalationAnswer",
    "EscalationMetrics",
    "EscalationRecord",
    "EscalationRequest",
    "EscalationStatus",
    "FailureKind",
    "FileOperation",
    "FindingCategory",
    "GateMode",
    "GateResult",
    "IndependentAssessment",
    "ModelConfig",
    "PipelineMetrics",
    "PipelineResult",
    "PipelineStage",
    "RetryPolicy",
    "ReviewDecision",
    "ReviewFinding",
    "ReviewSummary",
    "RunFailure",
    "RunStatus",
    "SecurityFinding",
    "SelfAssessment",
    "Severity",
    "Story",
    "StoryContext",
    "TokenUsage",
    "ValidationReport",
    "Verdict",
    "VouchConfig",
    "WorkerRole",
    "WorkflowEscalationStats",
]
