"""Typed error hierarchy for the trust pipeline.

Every failure a run can surface is a subclass of VouchError. Each error
carries a stable machine-readable code and a details dict so the CLI and
audit trail can report it without parsing messages. The orchestrator maps
these onto PipelineResult.failure; nothing is downgraded to a warning on
the way out.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from vouch.schemas.validation import GateResult


class VouchError(Exception):
    """Base exception for all trust pipeline errors."""

    def __init__(
        self,
        message: str,
        code: str = "vouch_error",
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a JSON-serialisable dictionary."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


# ── Input ────────────────────────────────────────────────────────


class ContextValidationError(VouchError):
    """Required run input is missing or empty."""

    def __init__(self, field: str, message: str | None = None) -> None:
        self.field = field
        super().__init__(
            message or f"Missing required context field: {field}",
            code="context_invalid",
            details={"field": field},
        )


# ── Invocation ───────────────────────────────────────────────────


class InvocationError(VouchError):
    """A capability call failed.

    ``attempts`` is filled in by the RetryingInvoker before the error
    leaves it, so callers can always tell how many calls were spent.
    """

    def __init__(
        self,
        message: str,
        code: str = "invocation_failed",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code=code, details=details)
        self.attempts = 0


class TransportError(InvocationError):
    """Transient failure reaching the capability (rate limit, 5xx, network)."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, code="transport_error", details=details)


class CapabilityError(InvocationError):
    """Non-retryable capability failure (auth, bad request, unknown model)."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, code="capability_error", details=details)


class OutputShapeError(InvocationError):
    """Capability returned output that does not match the expected shape."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, code="output_shape_invalid", details=details)


class InvocationExhausted(InvocationError):
    """Every attempt allowed by the retry policy failed."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(
            f"Invocation failed after {attempts} attempt(s): {last_error}",
            code="invocation_exhausted",
            details={"attempts": attempts, "last_error": str(last_error)},
        )
        self.attempts = attempts
        self.last_error = last_error


# ── Quality gate ─────────────────────────────────────────────────


class GateRejected(VouchError):
    """Strict-mode gate failure carrying every validator report."""

    def __init__(self, result: GateResult) -> None:
        self.result = result
        self.issues = result.issues
        failed = [r.category for r in result.reports if not r.passed]
        super().__init__(
            f"Validation failed for {', '.join(failed)}: "
            f"{len(self.issues)} issue(s)",
            code="gate_rejected",
            details={"failed_categories": failed, "issues": self.issues},
        )


# ── Escalation ───────────────────────────────────────────────────


class EscalationError(VouchError):
    """Base class for escalation queue errors."""


class EscalationNotFound(EscalationError):
    """No escalation exists with the given id."""

    def __init__(self, escalation_id: str) -> None:
        self.escalation_id = escalation_id
        super().__init__(
            f"Escalation not found: {escalation_id}",
            code="escalation_not_found",
            details={"escalation_id": escalation_id},
        )


class AlreadyAnswered(EscalationError):
    """The escalation has already been resolved."""

    def __init__(self, escalation_id: str) -> None:
        self.escalation_id = escalation_id
        super().__init__(
            f"Escalation already answered: {escalation_id}",
            code="escalation_already_answered",
            details={"escalation_id": escalation_id},
        )


class EscalationTimeout(EscalationError):
    """No human answer arrived before the wait deadline."""

    def __init__(self, escalation_id: str, timeout: float) -> None:
        self.escalation_id = escalation_id
        self.timeout = timeout
        super().__init__(
            f"Escalation {escalation_id} not answered within {timeout:.1f}s",
            code="escalation_timeout",
            details={"escalation_id": escalation_id, "timeout": timeout},
        )


class HumanRejected(VouchError):
    """A human answered an escalation by rejecting the artifact."""

    def __init__(self, escalation_id: str, answer: Any) -> None:
        self.escalation_id = escalation_id
        self.answer = answer
        super().__init__(
            f"Artifact rejected by human reviewer ({escalation_id}): {answer}",
            code="human_rejected",
            details={"escalation_id": escalation_id, "answer": answer},
        )


# ── Arbitration / side effects / run ─────────────────────────────


class ArbitrationFailed(VouchError):
    """Arbitration returned a fail verdict."""

    def __init__(self, rationale: str, rule: str) -> None:
        self.rationale = rationale
        self.rule = rule
        super().__init__(
            f"Arbitration failed: {rationale}",
            code="arbitration_failed",
            details={"rule": rule},
        )


class SideEffectFailure(VouchError):
    """One or more side-effect units could not be applied."""

    def __init__(self, failures: list[dict[str, str]]) -> None:
        self.failures = failures
        units = ", ".join(f["unit"] for f in failures)
        super().__init__(
            f"Failed to apply {len(failures)} unit(s): {units}",
            code="side_effect_failed",
            details={"failures": failures},
        )


class RunTimeout(VouchError):
    """The run exceeded its overall time limit."""

    def __init__(self, timeout: float, stage: str) -> None:
        self.timeout = timeout
        self.stage = stage
        super().__init__(
            f"Run exceeded {timeout:.0f}s limit during stage '{stage}'",
            code="run_timeout",
            details={"timeout": timeout, "stage": stage},
        )
