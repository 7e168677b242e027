"""Tests for vouch.gate.gate — ValidationGate aggregation and modes."""

from __future__ import annotations

import pytest

from vouch.errors import GateRejected
from vouch.gate import ValidationGate
from vouch.schemas.context import Artifact, ArtifactFile, Story, StoryContext
from vouch.schemas.validation import GateMode, ValidationReport

# ── Factories ──────────────────────────────────────────────────────


def _make_artifact() -> Artifact:
    return Artifact(
        files=[ArtifactFile(path="app/service.py", content='"""Service."""\n')],
        commit_message="feat: add service",
    )


def _make_context() -> StoryContext:
    return StoryContext(story=Story(id="1-1", title="Service", acceptance_criteria=["works"]))


class PassingValidator:
    def __init__(self, category: str = "passing", warnings: list[str] | None = None):
        self.category = category
        self._warnings = warnings or []
        self.calls = 0

    def validate(self, artifact, context):
        self.calls += 1
        return ValidationReport(category=self.category, passed=True, warnings=self._warnings)


class FailingValidator:
    def __init__(self, category: str = "failing", issues: list[str] | None = None):
        self.category = category
        self._issues = issues or ["broken"]

    def validate(self, artifact, context):
        return ValidationReport(category=self.category, passed=False, issues=self._issues)


class AsyncValidator:
    category = "async_check"

    async def validate(self, artifact, context):
        return ValidationReport(category=self.category, passed=True)


class RaisingValidator:
    category = "exploding"

    def validate(self, artifact, context):
        raise RuntimeError("validator bug")


class NoneValidator:
    category = "silent"

    def validate(self, artifact, context):
        return None


class MutationSpy:
    category = "spy"

    def validate(self, artifact, context):
        self.seen = artifact.model_dump()
        return ValidationReport(category=self.category, passed=True)


# ── Tests ──────────────────────────────────────────────────────────


class TestValidationGate:
    async def test_all_pass(self):
        gate = ValidationGate([PassingValidator("a"), PassingValidator("b")])
        result = await gate.run(_make_artifact(), _make_context())

        assert result.passed
        assert [r.category for r in result.reports] == ["a", "b"]
        assert result.mode == GateMode.STRICT

    async def test_one_report_per_validator(self):
        gate = ValidationGate([PassingValidator("a"), AsyncValidator(), PassingValidator("c")])
        result = await gate.run(_make_artifact(), _make_context())
        assert len(result.reports) == 3

    async def test_strict_rejects_with_all_reports(self):
        gate = ValidationGate([
            FailingValidator("security_practices", ["hardcoded secret"]),
            PassingValidator("coding_standards"),
            FailingValidator("error_handling", ["bare except"]),
        ])
        with pytest.raises(GateRejected) as exc_info:
            await gate.run(_make_artifact(), _make_context())

        error = exc_info.value
        assert len(error.result.reports) == 3
        assert error.issues == [
            "[security_practices] hardcoded secret",
            "[error_handling] bare except",
        ]

    async def test_strict_rejection_keeps_passing_warnings(self):
        gate = ValidationGate([
            PassingValidator("architecture_compliance", ["large module"]),
            PassingValidator("coding_standards", ["long line", "missing docstring"]),
            FailingValidator("security_practices", ["eval() call"]),
            PassingValidator("error_handling", ["broad except"]),
        ])
        with pytest.raises(GateRejected) as exc_info:
            await gate.run(_make_artifact(), _make_context())

        result = exc_info.value.result
        assert len(result.reports) == 4
        assert result.issues == ["[security_practices] eval() call"]
        assert result.warnings == [
            "[architecture_compliance] large module",
            "[coding_standards] long line",
            "[coding_standards] missing docstring",
            "[error_handling] broad except",
        ]

    async def test_advisory_records_and_continues(self):
        gate = ValidationGate(
            [FailingValidator("a", ["x"]), PassingValidator("b", ["note"])],
            mode=GateMode.ADVISORY,
        )
        result = await gate.run(_make_artifact(), _make_context())

        assert not result.passed
        assert result.mode == GateMode.ADVISORY
        assert result.issues == ["[a] x"]
        assert result.warnings == ["[b] note"]

    async def test_raising_validator_becomes_failed_report(self):
        gate = ValidationGate([RaisingValidator(), PassingValidator("b")], mode=GateMode.ADVISORY)
        result = await gate.run(_make_artifact(), _make_context())

        exploding = result.reports[0]
        assert exploding.category == "exploding"
        assert not exploding.passed
        assert exploding.issues == ["Validation error: validator bug"]
        assert result.reports[1].passed

    async def test_non_report_return_becomes_failed_report(self):
        gate = ValidationGate([NoneValidator(), PassingValidator("b")], mode=GateMode.ADVISORY)
        result = await gate.run(_make_artifact(), _make_context())

        silent = result.reports[0]
        assert silent.category == "silent"
        assert not silent.passed
        assert silent.issues == ["Validation error: validator returned NoneType"]
        assert result.reports[1].passed

    async def test_raising_validator_rejects_in_strict(self):
        gate = ValidationGate([RaisingValidator()])
        with pytest.raises(GateRejected):
            await gate.run(_make_artifact(), _make_context())

    async def test_short_circuit_stops_at_first_failure(self):
        after = PassingValidator("after")
        gate = ValidationGate([FailingValidator(), after], short_circuit=True)
        with pytest.raises(GateRejected) as exc_info:
            await gate.run(_make_artifact(), _make_context())

        assert len(exc_info.value.result.reports) == 1
        assert after.calls == 0

    async def test_artifact_unchanged(self):
        artifact = _make_artifact()
        before = artifact.model_dump()
        spy = MutationSpy()
        await ValidationGate([spy]).run(artifact, _make_context())
        assert artifact.model_dump() == before
        assert spy.seen == before

    async def test_empty_gate_passes(self):
        result = await ValidationGate([]).run(_make_artifact(), _make_context())
        assert result.passed
        assert result.reports == []
