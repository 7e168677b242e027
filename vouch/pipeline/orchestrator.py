"""Trust pipeline engine.

Runs one artifact through the stages in order:
validating_context -> invoking -> gating -> reviewing -> arbitrating
-> escalating -> applying. Reviewing and arbitrating run only when an
independent reviewer is registered; escalating runs only when
arbitration asks for a human.

Every run ends in a PipelineResult. An aborted run carries a typed
failure (and the exception behind it, re-raised by raise_for_status())
together with everything produced before the abort. The whole run is
bounded by ``run_timeout``; expiry cancels the in-flight stage.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from functools import partial
from typing import Any, assert_never
from uuid import uuid4

from vouch.apply.writer import SideEffectApplier
from vouch.arbitration.engine import arbitrate, format_verdict_report, summarize_reviews
from vouch.errors import (
    ArbitrationFailed,
    ContextValidationError,
    EscalationError,
    EscalationTimeout,
    GateRejected,
    HumanRejected,
    InvocationError,
    InvocationExhausted,
    RunTimeout,
    SideEffectFailure,
    VouchError,
)
from vouch.escalation.queue import EscalationQueue
from vouch.gate.gate import ValidationGate
from vouch.gate.validators import default_validators
from vouch.invoker import RetryingInvoker
from vouch.persistence.audit import AuditLog
from vouch.pipeline.context import validate_context
from vouch.pipeline.metrics import MetricsTracker
from vouch.pipeline.workers import WorkerPool, WorkerRegistry
from vouch.providers.parsing import parse_structured
from vouch.review.reviewers import obtain_independent_assessment, obtain_self_assessment
from vouch.schemas.apply import ApplyResult
from vouch.schemas.audit import AuditKind
from vouch.schemas.context import Artifact, StoryContext
from vouch.schemas.decision import Decision, DecisionSource
from vouch.schemas.escalation import EscalationRequest
from vouch.schemas.pipeline import (
    FailureKind,
    PipelineResult,
    PipelineStage,
    RunFailure,
    RunStatus,
    VouchConfig,
    WorkerRole,
)
from vouch.schemas.review import (
    ArbitrationDecision,
    IndependentAssessment,
    SelfAssessment,
    Verdict,
)
from vouch.schemas.validation import GateResult

logger = logging.getLogger(__name__)

_GENERATOR_SYSTEM = (
    "Implement the story. Reply with a JSON object with keys files (each "
    "with path, content and operation: create, modify or delete), "
    "commit_message, implementation_notes and acceptance_mapping."
)

# Human answers that accept an escalated artifact
_APPROVALS = frozenset({"approve", "approved", "accept", "accepted", "yes", "y", "pass", "ok"})


@dataclass
class _RunState:
    """Outputs accumulated by a run, kept even if a later stage aborts."""

    run_id: str
    artifact: Artifact | None = None
    gate: GateResult | None = None
    self_assessment: SelfAssessment | None = None
    independent_assessment: IndependentAssessment | None = None
    verdict: Verdict | None = None
    escalation_id: str | None = None
    human_decision: Decision | None = None
    apply_result: ApplyResult | None = None


def _failure_kind(error: VouchError) -> FailureKind:
    match error:
        case ContextValidationError():
            return FailureKind.CONTEXT_INVALID
        case InvocationExhausted():
            return FailureKind.INVOCATION_EXHAUSTED
        case InvocationError():
            return FailureKind.INVOCATION_FAILED
        case GateRejected():
            return FailureKind.GATE_REJECTED
        case ArbitrationFailed():
            return FailureKind.ARBITRATION_FAILED
        case EscalationTimeout():
            return FailureKind.ESCALATION_TIMEOUT
        case EscalationError():
            return FailureKind.ESCALATION_FAILED
        case HumanRejected():
            return FailureKind.HUMAN_REJECTED
        case SideEffectFailure():
            return FailureKind.SIDE_EFFECT_FAILED
        case RunTimeout():
            return FailureKind.RUN_TIMEOUT
        case _:
            raise TypeError(f"Unmapped pipeline error: {type(error).__name__}")


def is_approval(answer: Any) -> bool:
    """Interpret a human escalation answer as accept (True) or reject."""
    if isinstance(answer, bool):
        return answer
    if isinstance(answer, str):
        return answer.strip().lower() in _APPROVALS
    if isinstance(answer, dict):
        return is_approval(answer.get("approved", answer.get("decision", False)))
    return False


def generation_payload(context: StoryContext) -> dict[str, Any]:
    return {
        "system": _GENERATOR_SYSTEM,
        "story": context.story.model_dump(),
        "prd_context": context.prd_context,
        "architecture_context": context.architecture_context,
        "onboarding_context": context.onboarding_context,
        "existing_code": context.existing_code,
    }


class PipelineOrchestrator:
    """Sequence invocation, gating, arbitration, escalation and apply.

    Args:
        config: Run-level settings (thresholds, budgets, timeouts).
        workers: Registry of worker factories; a GENERATOR is required.
            The producer's self-review uses SELF_REVIEWER when registered,
            otherwise the GENERATOR.
        queue: Shared escalation queue.
        applier: Side-effect applier for accepted artifacts.
        gate: Quality gate; defaults to the built-in validators in the
            configured mode.
        invoker: Retrying invoker; defaults to one using ``config.retry``.
        audit: Optional audit log receiving every decision and verdict.
    """

    def __init__(
        self,
        config: VouchConfig,
        workers: WorkerRegistry,
        *,
        queue: EscalationQueue,
        applier: SideEffectApplier,
        gate: ValidationGate | None = None,
        invoker: RetryingInvoker | None = None,
        audit: AuditLog | None = None,
    ) -> None:
        if not workers.has(WorkerRole.GENERATOR):
            raise ValueError("A generator worker must be registered")
        self._config = config
        self._workers = workers
        self._queue = queue
        self._applier = applier
        self._gate = gate or ValidationGate(default_validators(), mode=config.gate_mode)
        self._invoker = invoker or RetryingInvoker(config.retry)
        self._audit = audit

    async def run(self, context: StoryContext, *, run_id: str | None = None) -> PipelineResult:
        """Run one artifact through the trust pipeline.

        Returns:
            PipelineResult with status done or aborted. Unexpected
            (non-pipeline) exceptions propagate.
        """
        state = _RunState(run_id=run_id or f"run-{uuid4().hex[:12]}")
        tracker = MetricsTracker(
            stage_budget=self._config.stage_budget,
            total_budget=self._config.total_budget,
        )
        self._record(state.run_id, AuditKind.RUN_STARTED, {"story_id": context.story.id})
        logger.info("Run %s started for story %s", state.run_id, context.story.id or "-")

        error: VouchError | None = None
        deadline = asyncio.timeout(self._config.run_timeout)
        try:
            async with deadline:
                async with self._workers.scope() as pool:
                    await self._execute(context, pool, tracker, state)
        except VouchError as e:
            error = e
        except TimeoutError:
            if not deadline.expired():
                raise
            error = RunTimeout(self._config.run_timeout, tracker.current_stage)

        metrics = tracker.finish()
        self._record(state.run_id, AuditKind.METRICS, metrics)

        failure = None
        if error is not None:
            failure = RunFailure(
                kind=_failure_kind(error),
                stage=tracker.current_stage,
                message=error.message,
                details=error.details,
            )
            self._record(state.run_id, AuditKind.FAILURE, failure, stage=tracker.current_stage)
            logger.warning(
                "Run %s aborted at %s: %s", state.run_id, tracker.current_stage, error.message,
            )

        result = PipelineResult(
            run_id=state.run_id,
            status=RunStatus.ABORTED if error else RunStatus.DONE,
            stage=tracker.current_stage,
            artifact=state.artifact,
            gate=state.gate,
            self_assessment=state.self_assessment,
            independent_assessment=state.independent_assessment,
            verdict=state.verdict,
            escalation_id=state.escalation_id,
            human_decision=state.human_decision,
            apply_result=state.apply_result,
            metrics=metrics,
            failure=failure,
            error=error,
        )
        self._record(state.run_id, AuditKind.RUN_FINISHED, {"status": result.status})
        logger.info("Run %s %s in %.2fs", state.run_id, result.status, metrics.total_duration)
        return result

    # ── Stages ────────────────────────────────────────────────

    async def _execute(
        self,
        context: StoryContext,
        pool: WorkerPool,
        tracker: MetricsTracker,
        state: _RunState,
    ) -> None:
        with tracker.stage(PipelineStage.VALIDATING_CONTEXT):
            validate_context(context, max_tokens=self._config.max_context_tokens)

        with tracker.stage(PipelineStage.INVOKING):
            state.artifact = await self._generate(context, pool, tracker, state)

        with tracker.stage(PipelineStage.GATING):
            try:
                state.gate = await self._gate.run(state.artifact, context)
            except GateRejected as e:
                state.gate = e.result
                raise
            finally:
                if state.gate is not None:
                    self._record(state.run_id, AuditKind.GATE, state.gate, stage="gating")

        if pool.has(WorkerRole.INDEPENDENT_REVIEWER):
            with tracker.stage(PipelineStage.REVIEWING):
                await self._review(context, pool, state)

            with tracker.stage(PipelineStage.ARBITRATING):
                summary = summarize_reviews(state.self_assessment, state.independent_assessment)
                tracker.record_findings(summary.findings)
                state.verdict = arbitrate(
                    state.self_assessment,
                    state.independent_assessment,
                    self._config.confidence_threshold,
                )
                self._record(state.run_id, AuditKind.VERDICT, state.verdict, stage="arbitrating")

            match state.verdict.decision:
                case ArbitrationDecision.FAIL:
                    raise ArbitrationFailed(state.verdict.rationale, state.verdict.rule)
                case ArbitrationDecision.ESCALATE:
                    with tracker.stage(PipelineStage.ESCALATING):
                        await self._escalate(context, state, format_verdict_report(
                            state.verdict, summary,
                        ))
                case ArbitrationDecision.PASS:
                    pass
                case _:
                    assert_never(state.verdict.decision)

        with tracker.stage(PipelineStage.APPLYING):
            state.apply_result = await self._applier.apply(state.artifact.files)
            self._record(state.run_id, AuditKind.APPLY, state.apply_result, stage="applying")
            if state.apply_result.failed:
                raise SideEffectFailure(
                    [f.model_dump() for f in state.apply_result.failed]
                )

    async def _generate(
        self,
        context: StoryContext,
        pool: WorkerPool,
        tracker: MetricsTracker,
        state: _RunState,
    ) -> Artifact:
        try:
            invocation = await self._invoker.invoke_with_stats(
                pool.get(WorkerRole.GENERATOR),
                generation_payload(context),
                parse=partial(parse_structured, schema=Artifact),
                label="generator",
            )
        except InvocationError as e:
            tracker.invocation_attempts = e.attempts
            self._record(state.run_id, AuditKind.INVOCATION, {
                "attempts": e.attempts, "error": e.to_dict(),
            }, stage="invoking")
            raise

        tracker.invocation_attempts = invocation.attempts
        self._record(state.run_id, AuditKind.INVOCATION, {
            "attempts": invocation.attempts,
            "delays": invocation.delays,
            "files": [f.path for f in invocation.output.files],
        }, stage="invoking")
        return invocation.output

    async def _review(self, context: StoryContext, pool: WorkerPool, state: _RunState) -> None:
        producer = (
            pool.get(WorkerRole.SELF_REVIEWER)
            if pool.has(WorkerRole.SELF_REVIEWER)
            else pool.get(WorkerRole.GENERATOR)
        )
        self_review = await obtain_self_assessment(
            self._invoker, producer, state.artifact, context
        )
        state.self_assessment = self_review.output
        self._record(state.run_id, AuditKind.ASSESSMENT, {
            "source": "self", "assessment": state.self_assessment.model_dump(mode="json"),
        }, stage="reviewing")

        independent = await obtain_independent_assessment(
            self._invoker, pool.get(WorkerRole.INDEPENDENT_REVIEWER), state.artifact, context
        )
        state.independent_assessment = independent.output
        self._record(state.run_id, AuditKind.ASSESSMENT, {
            "source": "independent",
            "assessment": state.independent_assessment.model_dump(mode="json"),
        }, stage="reviewing")

    async def _escalate(self, context: StoryContext, state: _RunState, report: str) -> None:
        story = context.story
        escalation_id = await self._queue.add(EscalationRequest(
            workflow_id=self._config.workflow_id,
            step_id=f"{state.run_id}:{PipelineStage.ESCALATING}",
            question=f"Accept the implementation of story {story.id} ({story.title})?",
            ai_reasoning=report,
            confidence=state.verdict.combined_confidence,
            context={
                "run_id": state.run_id,
                "story_id": story.id,
                "rule": str(state.verdict.rule),
                "files": [f.path for f in state.artifact.files],
            },
        ))
        state.escalation_id = escalation_id
        self._record(state.run_id, AuditKind.ESCALATION, {
            "escalation_id": escalation_id, "rationale": state.verdict.rationale,
        }, stage="escalating")

        answer = await self._queue.wait_for_response(
            escalation_id, timeout=self._config.escalation_timeout
        )
        state.human_decision = Decision(
            question=f"Accept the implementation of story {story.id}?",
            context={"escalation_id": escalation_id, "run_id": state.run_id},
            value=answer.answer,
            confidence=answer.confidence,
            reasoning=f"Human answer to {escalation_id}",
            source=DecisionSource.HUMAN,
            timestamp=answer.answered_at,
        )
        self._record(state.run_id, AuditKind.DECISION, state.human_decision, stage="escalating")

        if not is_approval(answer.answer):
            raise HumanRejected(escalation_id, answer.answer)
        logger.info("Escalation %s approved by human", escalation_id)

    def _record(
        self, run_id: str, kind: AuditKind, payload: Any, *, stage: str = ""
    ) -> None:
        if self._audit is not None:
            self._audit.record(run_id, kind, payload, stage=stage)
