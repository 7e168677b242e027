"""Pipeline configuration, metrics and result schemas.

Defines the retry policy, the model registry entry, the run-level
configuration loaded from defaults.toml, and the PipelineResult returned
from every orchestrator run.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from vouch.errors import VouchError
from vouch.schemas.apply import ApplyResult
from vouch.schemas.context import Artifact
from vouch.schemas.decision import Decision
from vouch.schemas.review import IndependentAssessment, SelfAssessment, Verdict
from vouch.schemas.validation import GateMode, GateResult


class PipelineStage(StrEnum):
    """Stages of a trust pipeline run, in execution order."""

    VALIDATING_CONTEXT = "validating_context"
    INVOKING = "invoking"
    GATING = "gating"
    REVIEWING = "reviewing"
    ARBITRATING = "arbitrating"
    ESCALATING = "escalating"
    APPLYING = "applying"


class RunStatus(StrEnum):
    """Terminal state of a run."""

    DONE = "done"
    ABORTED = "aborted"


class FailureKind(StrEnum):
    """Why a run aborted."""

    CONTEXT_INVALID = "context_invalid"
    INVOCATION_EXHAUSTED = "invocation_exhausted"
    INVOCATION_FAILED = "invocation_failed"
    GATE_REJECTED = "gate_rejected"
    ARBITRATION_FAILED = "arbitration_failed"
    ESCALATION_TIMEOUT = "escalation_timeout"
    ESCALATION_FAILED = "escalation_failed"
    HUMAN_REJECTED = "human_rejected"
    SIDE_EFFECT_FAILED = "side_effect_failed"
    RUN_TIMEOUT = "run_timeout"


class WorkerRole(StrEnum):
    """Roles a generative worker can fill in a run."""

    GENERATOR = "generator"
    SELF_REVIEWER = "self_reviewer"
    INDEPENDENT_REVIEWER = "independent_reviewer"
    DECISION_REASONER = "decision_reasoner"


class RetryPolicy(BaseModel):
    """Bounded exponential backoff.

    The delay after failed attempt N is
    ``min(initial_backoff * multiplier ** (N - 1), max_backoff)``.
    """

    max_attempts: int = Field(default=3, ge=1, description="Total attempts, first included")
    initial_backoff: float = Field(
        default=1.0, ge=0.0, description="Delay in seconds after the first failure"
    )
    multiplier: float = Field(default=2.0, ge=1.0, description="Backoff growth factor")
    max_backoff: float = Field(default=32.0, ge=0.0, description="Upper bound on any delay")

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the given 1-based failed attempt."""
        if attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {attempt}")
        return min(self.initial_backoff * self.multiplier ** (attempt - 1), self.max_backoff)

    def schedule(self) -> list[float]:
        """All delays the policy can produce, in order."""
        return [self.delay_for(n) for n in range(1, self.max_attempts)]


class ModelConfig(BaseModel):
    """Configuration for a single LLM model in the registry.

    Loaded from models.toml. Each entry provides the LiteLLM routing
    information, capability flags and cost data.
    """

    provider: str = Field(description="Provider identifier (e.g. 'anthropic', 'openai')")
    model: str = Field(description="LiteLLM model identifier")
    display_name: str = Field(description="Human-friendly model name for CLI output")
    api_key_env: str = Field(description="Environment variable name holding the API key")
    api_base: str = Field(default="", description="Custom API base URL (empty = provider default)")
    context_window: int = Field(gt=0, description="Maximum context window size in tokens")
    supports_structured: bool = Field(
        default=False, description="Whether the model supports structured output"
    )
    cost_input: float = Field(default=0.0, ge=0, description="Cost per 1M input tokens in USD")
    cost_output: float = Field(default=0.0, ge=0, description="Cost per 1M output tokens in USD")
    timeout: int = Field(default=120, gt=0, description="Per-call timeout in seconds")


class VouchConfig(BaseModel):
    """Run-level configuration for the trust pipeline."""

    retry: RetryPolicy = Field(default_factory=RetryPolicy, description="Invocation retry policy")
    gate_mode: GateMode = Field(default=GateMode.STRICT, description="Quality gate mode")
    confidence_threshold: float = Field(
        default=0.85, gt=0.0, le=1.0,
        description="Combined review confidence required to pass arbitration",
    )
    escalation_threshold: float = Field(
        default=0.75, ge=0.0, le=1.0,
        description="Decision confidence below which a human is asked",
    )
    escalation_timeout: float | None = Field(
        default=None, gt=0, description="Seconds to wait for a human answer (None = forever)"
    )
    poll_interval: float = Field(
        default=1.0, gt=0, description="Seconds between escalation store polls"
    )
    run_timeout: float = Field(default=1800.0, gt=0, description="Overall run limit in seconds")
    stage_budget: float = Field(
        default=900.0, gt=0, description="Seconds a stage may take before it is a bottleneck"
    )
    total_budget: float = Field(
        default=3600.0, gt=0, description="Seconds a run may take before it is a bottleneck"
    )
    max_context_tokens: int = Field(
        default=50_000, gt=0, description="Context size above which a warning is logged"
    )
    workflow_id: str = Field(
        default="implementation", description="Workflow id recorded on escalations"
    )
    escalation_db_path: str = Field(
        default="~/.vouch/escalations.db", description="SQLite escalation store"
    )
    audit_dir: str = Field(default="~/.vouch/audit", description="Directory for run audit logs")
    onboarding_dir: str = Field(
        default="", description="Directory of onboarding markdown docs (empty = none)"
    )
    workers: dict[WorkerRole, str] = Field(
        default_factory=dict, description="Model registry key per worker role"
    )


class PipelineMetrics(BaseModel):
    """Timing and counters for one run."""

    stage_durations: dict[PipelineStage, float] = Field(
        default_factory=dict, description="Seconds spent per stage"
    )
    total_duration: float = Field(default=0.0, ge=0.0, description="Wall-clock run seconds")
    bottlenecks: list[str] = Field(
        default_factory=list, description="Stages (or 'total') that exceeded their budget"
    )
    invocation_attempts: int = Field(
        default=0, ge=0, description="Capability calls spent on generation"
    )
    findings_by_severity: dict[str, int] = Field(
        default_factory=dict, description="Review findings counted by severity"
    )


class RunFailure(BaseModel):
    """Why an aborted run stopped."""

    kind: FailureKind = Field(description="Failure classification")
    stage: PipelineStage = Field(description="Stage that was running")
    message: str = Field(description="Human-readable explanation")
    details: dict = Field(default_factory=dict, description="Structured error details")


class PipelineResult(BaseModel):
    """Everything a run produced, successful or not.

    Outputs of stages that completed before an abort are kept, so a
    side-effect failure still carries the artifact, verdict and any human
    decision that preceded it.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    run_id: str = Field(description="Unique run identifier")
    status: RunStatus = Field(description="done or aborted")
    stage: PipelineStage = Field(description="Last stage entered")
    artifact: Artifact | None = Field(default=None, description="Generated artifact")
    gate: GateResult | None = Field(default=None, description="Quality gate reports")
    self_assessment: SelfAssessment | None = Field(default=None, description="Producer review")
    independent_assessment: IndependentAssessment | None = Field(
        default=None, description="Independent review"
    )
    verdict: Verdict | None = Field(default=None, description="Arbitration verdict")
    escalation_id: str | None = Field(default=None, description="Escalation raised, if any")
    human_decision: Decision | None = Field(default=None, description="Human answer, if any")
    apply_result: ApplyResult | None = Field(default=None, description="Side-effect outcome")
    metrics: PipelineMetrics = Field(
        default_factory=PipelineMetrics, description="Timing and counters"
    )
    failure: RunFailure | None = Field(default=None, description="Set when aborted")
    error: VouchError | None = Field(
        default=None, exclude=True, description="Typed error behind the failure"
    )

    @model_validator(mode="after")
    def _aborted_has_failure(self) -> PipelineResult:
        if self.status == RunStatus.ABORTED and self.failure is None:
            raise ValueError("aborted run must record a failure")
        return self

    @property
    def success(self) -> bool:
        """True when the run completed."""
        return self.status == RunStatus.DONE

    def raise_for_status(self) -> None:
        """Re-raise the typed error of an aborted run."""
        if self.error is not None:
            raise self.error
