"""Tests for vouch.review.reviewers — obtaining the two assessments."""

from __future__ import annotations

import json

import pytest

from vouch.errors import OutputShapeError
from vouch.invoker import RetryingInvoker
from vouch.providers.base import Capability
from vouch.review import (
    obtain_independent_assessment,
    obtain_self_assessment,
    parse_independent_assessment,
    parse_self_assessment,
)
from vouch.schemas.context import Artifact, ArtifactFile, Story, StoryContext


class RecordingWorker(Capability):
    def __init__(self, output: str):
        self._output = output
        self.payloads: list[dict] = []

    async def invoke(self, payload):
        self.payloads.append(dict(payload))
        return self._output


def _make_artifact() -> Artifact:
    return Artifact(
        files=[ArtifactFile(path="app/mod.py", content='"""Mod."""\n')],
        commit_message="feat: mod",
        implementation_notes="I skipped the edge cases",
    )


def _make_context() -> StoryContext:
    return StoryContext(
        story=Story(id="1-1", title="Mod", acceptance_criteria=["works"]),
        architecture_context="Hexagonal",
        prd_context="Product requirements",
    )


_SELF = {
    "checklist": [{"item": "Has tests", "passed": True}],
    "confidence": 0.8,
    "critical_issues": [],
}

_INDEPENDENT = {
    "test_coverage_adequate": True,
    "overall_score": 0.8,
    "confidence": 0.7,
    "preliminary_decision": "pass",
}


class TestParsing:
    def test_self_assessment(self):
        assert parse_self_assessment(json.dumps(_SELF)).confidence == 0.8

    def test_empty_checklist_is_shape_error(self):
        with pytest.raises(OutputShapeError):
            parse_self_assessment({**_SELF, "checklist": []})

    def test_null_critical_issues_is_shape_error(self):
        with pytest.raises(OutputShapeError):
            parse_self_assessment({**_SELF, "critical_issues": None})

    def test_independent_assessment(self):
        assert parse_independent_assessment(_INDEPENDENT).preliminary_decision == "pass"

    def test_independent_missing_decision(self):
        data = {k: v for k, v in _INDEPENDENT.items() if k != "preliminary_decision"}
        with pytest.raises(OutputShapeError):
            parse_independent_assessment(data)


class TestObtain:
    async def test_self_review_sees_notes(self):
        worker = RecordingWorker(json.dumps(_SELF))
        invocation = await obtain_self_assessment(
            RetryingInvoker(), worker, _make_artifact(), _make_context()
        )

        assert invocation.attempts == 1
        assert invocation.output.confidence == 0.8
        assert worker.payloads[0]["implementation_notes"] == "I skipped the edge cases"

    async def test_independent_review_is_isolated(self):
        worker = RecordingWorker(json.dumps(_INDEPENDENT))
        invocation = await obtain_independent_assessment(
            RetryingInvoker(), worker, _make_artifact(), _make_context()
        )

        payload = worker.payloads[0]
        assert invocation.output.confidence == 0.7
        assert set(payload) == {"system", "story", "architecture_context", "files"}
        assert payload["files"][0]["path"] == "app/mod.py"

    async def test_malformed_review_not_retried(self):
        worker = RecordingWorker("looks good to me")
        with pytest.raises(OutputShapeError):
            await obtain_independent_assessment(
                RetryingInvoker(), worker, _make_artifact(), _make_context()
            )
        assert len(worker.payloads) == 1
