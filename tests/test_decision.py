"""Tests for vouch.decision.engine — tiered autonomous decisions."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from vouch.decision import (
    DecisionEngine,
    HeuristicAnswer,
    context_signal_quality,
    decide_or_escalate,
)
from vouch.decision.engine import (
    adjust_confidence_by_clarity,
    confidence_from_text,
    extract_keywords,
    match_score,
)
from vouch.errors import TransportError
from vouch.escalation import EscalationQueue
from vouch.invoker import RetryingInvoker
from vouch.persistence import EscalationStore, close_db, init_db
from vouch.providers.base import Capability
from vouch.schemas.capability import CapabilityOutput
from vouch.schemas.decision import DecisionSource
from vouch.schemas.escalation import EscalationStatus
from vouch.schemas.pipeline import RetryPolicy, VouchConfig, WorkerRole

_SLEEP = "vouch.invoker.asyncio.sleep"


# ── Fakes ──────────────────────────────────────────────────────────


class FakeReasoner(Capability):
    def __init__(self, *outputs):
        self._outputs = list(outputs)
        self.calls = 0

    async def invoke(self, payload):
        self.calls += 1
        outcome = self._outputs.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return CapabilityOutput(content=outcome)


def _always(value, confidence, reasoning="rule"):
    def heuristic(question, context):
        return HeuristicAnswer(value=value, confidence=confidence, reasoning=reasoning)
    return heuristic


def _never(question, context):
    return None


@pytest.fixture
async def queue():
    db = await init_db(":memory:")
    yield EscalationQueue(EscalationStore(db), poll_interval=0.05)
    await close_db(db)


# ── Scoring helpers ────────────────────────────────────────────────


class TestHelpers:
    def test_extract_keywords_drops_stop_words(self):
        assert extract_keywords("What database should we use for sessions?") == [
            "database", "use", "sessions",
        ]

    def test_match_score(self):
        assert match_score("We use Postgres for sessions", ["postgres", "sessions"]) == 1.0
        assert match_score("nothing relevant", ["postgres", "sessions"]) == 0.0
        assert match_score("anything", []) == 0.0

    def test_empty_context_signal_is_neutral(self):
        assert context_signal_quality({}) == 0.5

    def test_complete_consistent_context(self):
        assert context_signal_quality({"db": "postgres", "region": "eu"}) == 1.0

    def test_missing_values_lower_signal(self):
        assert context_signal_quality({"db": "postgres", "region": ""}) == 0.5

    def test_conflicting_keys_lower_signal(self):
        signal = context_signal_quality({"db_name": "orders", "db-name": "sales"})
        assert signal == 0.5

    def test_clarity_adjustment_bounds(self):
        assert adjust_confidence_by_clarity("x", "maybe, possibly, need more info", 0.1) == 0.3
        assert adjust_confidence_by_clarity("x", "definitely " * 10, 1.0) == 0.9

    def test_confidence_from_text(self):
        assert confidence_from_text("It is definitely Postgres") == 0.7
        assert confidence_from_text("probably Postgres") == 0.6
        assert confidence_from_text("maybe Postgres") == 0.4
        assert confidence_from_text("unclear") == 0.3
        assert confidence_from_text("Postgres") == 0.5


# ── Tiers ──────────────────────────────────────────────────────────


class TestOnboardingTier:
    async def test_onboarding_doc_answers(self, tmp_path):
        (tmp_path / "database.md").write_text("Our database is Postgres; we use it for all session storage.")
        engine = DecisionEngine(onboarding_dir=tmp_path, heuristics=[_always("redis", 0.9)])

        decision = await engine.attempt_autonomous_decision("Which database for session storage?")

        assert decision.source == DecisionSource.ONBOARDING
        assert decision.confidence == 0.95
        assert "Postgres" in decision.value
        assert "database.md" in decision.reasoning

    async def test_weak_doc_match_falls_through(self, tmp_path):
        (tmp_path / "unrelated.md").write_text("Deployment happens on Fridays.")
        engine = DecisionEngine(onboarding_dir=tmp_path, heuristics=[_always("redis", 0.9)])

        decision = await engine.attempt_autonomous_decision("Which database for session storage?")
        assert decision.source == DecisionSource.HEURISTIC

    async def test_missing_dir_is_ignored(self, tmp_path):
        engine = DecisionEngine(onboarding_dir=tmp_path / "nope")
        decision = await engine.attempt_autonomous_decision("Anything?")
        assert decision.value is None


class TestHeuristicTier:
    async def test_first_applicable_heuristic_wins(self):
        engine = DecisionEngine(heuristics=[_never, _always("a", 0.8), _always("b", 0.9)])
        decision = await engine.attempt_autonomous_decision("q", {"k": "v"})
        assert decision.value == "a"

    async def test_confidence_scaled_by_signal(self):
        engine = DecisionEngine(heuristics=[_always("a", 1.0)])

        full = await engine.attempt_autonomous_decision("q", {"db": "postgres"})
        empty = await engine.attempt_autonomous_decision("q", {})
        poor = await engine.attempt_autonomous_decision("q", {"db": ""})

        assert full.confidence == 1.0
        assert empty.confidence == pytest.approx(0.85)
        assert poor.confidence == pytest.approx(0.7)

    async def test_below_threshold_is_flagged_not_escalated(self):
        engine = DecisionEngine(heuristics=[_always("a", 0.5)], escalation_threshold=0.75)
        decision = await engine.attempt_autonomous_decision("q", {"k": "v"})

        assert engine.needs_escalation(decision)
        assert "[ESCALATION REQUIRED" in decision.reasoning

    async def test_nothing_applicable(self):
        engine = DecisionEngine(heuristics=[_never])
        decision = await engine.attempt_autonomous_decision("q")

        assert decision.value is None
        assert decision.confidence == 0.0
        assert engine.needs_escalation(decision)


class TestReasonerTier:
    async def test_structured_answer(self):
        reasoner = FakeReasoner(
            '{"decision": "postgres", "confidence": 0.8, '
            '"reasoning": "The service already depends on Postgres for orders and billing."}'
        )
        engine = DecisionEngine(reasoner=reasoner)
        decision = await engine.attempt_autonomous_decision("Which db?", {"db": "postgres"})

        assert decision.source == DecisionSource.LLM
        assert decision.value == "postgres"
        assert decision.confidence == pytest.approx(0.8)

    async def test_heuristic_preferred_over_reasoner(self):
        reasoner = FakeReasoner('{"decision": "x", "confidence": 0.9}')
        engine = DecisionEngine(heuristics=[_always("h", 0.9)], reasoner=reasoner)
        decision = await engine.attempt_autonomous_decision("q", {"k": "v"})

        assert decision.value == "h"
        assert reasoner.calls == 0

    async def test_unstructured_answer_uses_text_confidence(self):
        engine = DecisionEngine(reasoner=FakeReasoner("Probably Postgres."))
        decision = await engine.attempt_autonomous_decision("Which db?", {"db": "x"})

        assert decision.value == "Probably Postgres."
        assert decision.confidence == pytest.approx(0.6)

    async def test_reasoner_failure_means_no_answer(self):
        reasoner = FakeReasoner(TransportError("503"), TransportError("503"))
        engine = DecisionEngine(
            reasoner=reasoner, invoker=RetryingInvoker(RetryPolicy(max_attempts=2))
        )
        with patch(_SLEEP, new_callable=AsyncMock):
            decision = await engine.attempt_autonomous_decision("q")

        assert decision.value is None
        assert decision.confidence == 0.0
        assert reasoner.calls == 2


# ── Built from config ──────────────────────────────────────────────


class ClosableReasoner(FakeReasoner):
    closed = False

    async def aclose(self):
        self.closed = True


class TestFromConfig:
    async def test_uses_onboarding_dir_and_threshold(self, tmp_path):
        (tmp_path / "database.md").write_text("Our database is Postgres; we use it for all session storage.")
        config = VouchConfig(onboarding_dir=str(tmp_path), escalation_threshold=0.6)
        engine = DecisionEngine.from_config(config)

        assert engine.escalation_threshold == 0.6
        decision = await engine.attempt_autonomous_decision("Which database for session storage?")
        assert decision.source == DecisionSource.ONBOARDING

    async def test_empty_onboarding_dir_disables_docs(self):
        engine = DecisionEngine.from_config(VouchConfig())
        decision = await engine.attempt_autonomous_decision("Which database?")
        assert decision.value is None
        assert decision.confidence == 0.0

    async def test_reasoner_spawned_from_factory(self):
        reasoner = ClosableReasoner(
            '{"decision": "postgres", "confidence": 0.8, "reasoning": "already in use"}'
        )
        engine = DecisionEngine.from_config(
            VouchConfig(), {WorkerRole.DECISION_REASONER: lambda: reasoner}
        )

        decision = await engine.attempt_autonomous_decision("Which database?")
        assert decision.source == DecisionSource.LLM
        assert decision.value == "postgres"

        await engine.aclose()
        assert reasoner.closed

    async def test_other_roles_ignored(self):
        generator = ClosableReasoner("unused")
        engine = DecisionEngine.from_config(VouchConfig(), {WorkerRole.GENERATOR: lambda: generator})

        decision = await engine.attempt_autonomous_decision("Which database?")
        await engine.aclose()

        assert decision.value is None
        assert generator.calls == 0
        assert not generator.closed

    async def test_retry_policy_from_config(self):
        reasoner = ClosableReasoner(
            TransportError("503"),
            '{"decision": "postgres", "confidence": 0.8, "reasoning": "already in use"}',
        )
        config = VouchConfig(retry=RetryPolicy(max_attempts=1))
        engine = DecisionEngine.from_config(config, {WorkerRole.DECISION_REASONER: lambda: reasoner})

        decision = await engine.attempt_autonomous_decision("Which database?")
        assert reasoner.calls == 1
        assert decision.value is None


# ── decide_or_escalate ─────────────────────────────────────────────


class TestDecideOrEscalate:
    async def test_confident_decision_not_escalated(self, queue):
        engine = DecisionEngine(heuristics=[_always("a", 1.0)])
        decision = await decide_or_escalate(
            engine, queue, "q", {"k": "v"}, workflow_id="wf"
        )
        assert decision.value == "a"
        assert await queue.list() == []

    async def test_low_confidence_waits_for_human(self, queue):
        engine = DecisionEngine(heuristics=[_always("a", 0.2)])
        task = asyncio.create_task(decide_or_escalate(
            engine, queue, "Use Redis?", {"k": "v"}, workflow_id="wf", step_id="s1"
        ))

        for _ in range(100):
            pending = await queue.list(status=EscalationStatus.PENDING)
            if pending:
                break
            await asyncio.sleep(0.01)
        assert pending[0].context["proposed_value"] == "a"
        await queue.resolve(pending[0].id, "no, use postgres")

        decision = await asyncio.wait_for(task, timeout=2)
        assert decision.source == DecisionSource.HUMAN
        assert decision.confidence == 1.0
        assert decision.value == "no, use postgres"
