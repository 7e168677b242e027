"""Tests for vouch.persistence.audit — append-only JSONL audit trail."""

from __future__ import annotations

import json

import pytest

from vouch.persistence import AuditLog
from vouch.schemas.audit import AuditKind
from vouch.schemas.review import ArbitrationDecision, ArbitrationRule, Verdict


class TestAuditLog:
    def test_record_and_read(self, tmp_path):
        log = AuditLog(tmp_path)
        log.record("run-1", AuditKind.RUN_STARTED, {"story_id": "1-1"})
        log.record("run-1", AuditKind.RUN_FINISHED, {"status": "done"})

        entries = log.read("run-1")
        assert [e.kind for e in entries] == [AuditKind.RUN_STARTED, AuditKind.RUN_FINISHED]
        assert entries[0].payload == {"story_id": "1-1"}

    def test_pydantic_payload_serialized(self, tmp_path):
        log = AuditLog(tmp_path)
        verdict = Verdict(
            decision=ArbitrationDecision.PASS,
            rationale="both reviews passed with sufficient confidence",
            rule=ArbitrationRule.ALL_CLEAR,
            combined_confidence=0.9,
        )
        log.record("run-1", AuditKind.VERDICT, verdict, stage="arbitrating")

        entry = log.read("run-1")[0]
        assert entry.payload["decision"] == "pass"
        assert entry.stage == "arbitrating"

    def test_append_only(self, tmp_path):
        log = AuditLog(tmp_path)
        log.record("run-1", AuditKind.RUN_STARTED)
        first_line = log.path_for("run-1").read_text().splitlines()[0]
        log.record("run-1", AuditKind.METRICS, {"total": 1.0})

        lines = log.path_for("run-1").read_text().splitlines()
        assert lines[0] == first_line
        assert len(lines) == 2
        assert json.loads(lines[1])["kind"] == "metrics"

    def test_filter_by_kind(self, tmp_path):
        log = AuditLog(tmp_path)
        log.record("run-1", AuditKind.DECISION, {"n": 1})
        log.record("run-1", AuditKind.VERDICT, {"n": 2})
        log.record("run-1", AuditKind.DECISION, {"n": 3})

        decisions = log.read("run-1", kind=AuditKind.DECISION)
        assert [e.payload["n"] for e in decisions] == [1, 3]

    def test_runs_are_separate_files(self, tmp_path):
        log = AuditLog(tmp_path)
        log.record("run-a", AuditKind.RUN_STARTED)
        log.record("run-b", AuditKind.RUN_STARTED)

        assert sorted(log.runs()) == ["run-a", "run-b"]
        assert len(log.read("run-a")) == 1

    def test_missing_run_reads_empty(self, tmp_path):
        assert AuditLog(tmp_path).read("run-none") == []

    def test_missing_directory_has_no_runs(self, tmp_path):
        assert AuditLog(tmp_path / "absent").runs() == []

    def test_directory_created_on_first_record(self, tmp_path):
        log = AuditLog(tmp_path / "nested" / "audit")
        log.record("run-1", AuditKind.RUN_STARTED)
        assert log.path_for("run-1").exists()

    @pytest.mark.parametrize("run_id", ["../escape", "a/b", "", "run 1"])
    def test_unsafe_run_id_rejected(self, tmp_path, run_id):
        with pytest.raises(ValueError):
            AuditLog(tmp_path).path_for(run_id)
