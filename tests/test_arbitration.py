"""Tests for vouch.arbitration.engine — rule priority and reporting."""

from __future__ import annotations

import pytest

from vouch.arbitration import (
    arbitrate,
    combined_confidence,
    format_verdict_report,
    summarize_reviews,
)
from vouch.schemas.review import (
    AcceptanceCheck,
    ArbitrationDecision,
    ArbitrationRule,
    ChecklistItem,
    CodeSmell,
    IndependentAssessment,
    ReviewDecision,
    SecurityFinding,
    SelfAssessment,
    Severity,
)

_THRESHOLD = 0.85


# ── Factories ──────────────────────────────────────────────────────


def _make_self(**overrides) -> SelfAssessment:
    defaults = {
        "checklist": [
            ChecklistItem(item="Follows standards", passed=True),
            ChecklistItem(item="Has tests", passed=True),
        ],
        "confidence": 0.9,
        "critical_issues": [],
    }
    defaults.update(overrides)
    return SelfAssessment(**defaults)


def _make_independent(**overrides) -> IndependentAssessment:
    defaults = {
        "quality_score": 0.9,
        "test_coverage_adequate": True,
        "overall_score": 0.9,
        "confidence": 0.9,
        "preliminary_decision": ReviewDecision.PASS,
    }
    defaults.update(overrides)
    return IndependentAssessment(**defaults)


def _finding(severity: Severity) -> SecurityFinding:
    return SecurityFinding(
        type="sql_injection", severity=severity,
        location="app/db.py:12", description="unsanitized input",
        remediation="Use parameterized queries",
    )


# ── Individual rules ───────────────────────────────────────────────


class TestRules:
    def test_all_clear_passes(self):
        verdict = arbitrate(_make_self(), _make_independent(), _THRESHOLD)
        assert verdict.decision == ArbitrationDecision.PASS
        assert verdict.rule == ArbitrationRule.ALL_CLEAR
        assert verdict.rationale == "both reviews passed with sufficient confidence"
        assert verdict.combined_confidence == 0.9

    def test_critical_issues_fail(self):
        verdict = arbitrate(_make_self(critical_issues=["data loss"]), _make_independent(), _THRESHOLD)
        assert verdict.decision == ArbitrationDecision.FAIL
        assert verdict.rationale == "critical issues identified"

    @pytest.mark.parametrize("severity", [Severity.CRITICAL, Severity.HIGH])
    def test_blocking_security_escalates(self, severity):
        verdict = arbitrate(
            _make_self(), _make_independent(security_findings=[_finding(severity)]), _THRESHOLD
        )
        assert verdict.decision == ArbitrationDecision.ESCALATE
        assert verdict.rationale == "security issues require human review"

    @pytest.mark.parametrize("severity", [Severity.MEDIUM, Severity.LOW, Severity.INFO])
    def test_minor_security_does_not_block(self, severity):
        verdict = arbitrate(
            _make_self(), _make_independent(security_findings=[_finding(severity)]), _THRESHOLD
        )
        assert verdict.decision == ArbitrationDecision.PASS

    def test_inadequate_coverage_fails(self):
        verdict = arbitrate(
            _make_self(), _make_independent(test_coverage_adequate=False), _THRESHOLD
        )
        assert verdict.decision == ArbitrationDecision.FAIL
        assert verdict.rationale == "test coverage below threshold"

    def test_independent_fail_escalates(self):
        verdict = arbitrate(
            _make_self(),
            _make_independent(preliminary_decision=ReviewDecision.FAIL),
            _THRESHOLD,
        )
        assert verdict.decision == ArbitrationDecision.ESCALATE
        assert verdict.rationale == "independent review failed"

    def test_low_confidence_escalates(self):
        verdict = arbitrate(_make_self(confidence=0.8), _make_independent(confidence=0.8), _THRESHOLD)
        assert verdict.decision == ArbitrationDecision.ESCALATE
        assert verdict.rule == ArbitrationRule.LOW_CONFIDENCE
        assert verdict.combined_confidence == 0.8

    def test_confidence_equal_to_threshold_passes(self):
        verdict = arbitrate(_make_self(confidence=0.8), _make_independent(confidence=0.9), 0.85)
        assert verdict.decision == ArbitrationDecision.PASS


# ── Priority ───────────────────────────────────────────────────────


class TestPriority:
    def test_critical_beats_everything(self):
        verdict = arbitrate(
            _make_self(critical_issues=["x"], confidence=0.1),
            _make_independent(
                security_findings=[_finding(Severity.CRITICAL)],
                test_coverage_adequate=False,
                preliminary_decision=ReviewDecision.FAIL,
                confidence=0.1,
            ),
            _THRESHOLD,
        )
        assert verdict.rule == ArbitrationRule.CRITICAL_ISSUES
        assert verdict.rationale == "critical issues identified"

    def test_security_beats_coverage(self):
        verdict = arbitrate(
            _make_self(),
            _make_independent(
                security_findings=[_finding(Severity.HIGH)], test_coverage_adequate=False
            ),
            _THRESHOLD,
        )
        assert verdict.rule == ArbitrationRule.SECURITY_FINDINGS

    def test_security_beats_independent_fail(self):
        verdict = arbitrate(
            _make_self(),
            _make_independent(
                security_findings=[_finding(Severity.HIGH)],
                preliminary_decision=ReviewDecision.FAIL,
            ),
            _THRESHOLD,
        )
        assert verdict.decision == ArbitrationDecision.ESCALATE
        assert verdict.rule == ArbitrationRule.SECURITY_FINDINGS
        assert verdict.rationale == "security issues require human review"

    def test_coverage_beats_independent_fail(self):
        verdict = arbitrate(
            _make_self(),
            _make_independent(
                test_coverage_adequate=False, preliminary_decision=ReviewDecision.FAIL
            ),
            _THRESHOLD,
        )
        assert verdict.rule == ArbitrationRule.TEST_COVERAGE
        assert verdict.decision == ArbitrationDecision.FAIL

    def test_independent_fail_beats_low_confidence(self):
        verdict = arbitrate(
            _make_self(confidence=0.2),
            _make_independent(preliminary_decision=ReviewDecision.FAIL, confidence=0.2),
            _THRESHOLD,
        )
        assert verdict.rule == ArbitrationRule.INDEPENDENT_REVIEW_FAILED

    def test_rationale_names_only_winning_rule(self):
        verdict = arbitrate(
            _make_self(critical_issues=["x"]),
            _make_independent(test_coverage_adequate=False),
            _THRESHOLD,
        )
        assert "coverage" not in verdict.rationale


# ── Purity ─────────────────────────────────────────────────────────


class TestPurity:
    def test_same_inputs_same_verdict(self):
        s, i = _make_self(confidence=0.7), _make_independent(confidence=0.8)
        assert arbitrate(s, i, 0.7) == arbitrate(s, i, 0.7)

    def test_threshold_is_an_input(self, monkeypatch):
        monkeypatch.setenv("VOUCH_CONFIDENCE_THRESHOLD", "0.1")
        s, i = _make_self(confidence=0.7), _make_independent(confidence=0.7)
        assert arbitrate(s, i, 0.9).decision == ArbitrationDecision.ESCALATE
        assert arbitrate(s, i, 0.5).decision == ArbitrationDecision.PASS

    def test_combined_confidence_is_mean(self):
        assert combined_confidence(
            _make_self(confidence=0.6), _make_independent(confidence=1.0)
        ) == pytest.approx(0.8)


# ── Summary and report ─────────────────────────────────────────────


class TestSummary:
    def test_collects_findings_from_both_reviews(self):
        summary = summarize_reviews(
            _make_self(
                critical_issues=["drops writes"],
                code_smells=[CodeSmell(type="long function", severity=Severity.MEDIUM)],
                acceptance_checks=[AcceptanceCheck(criterion="persists orders", met=False)],
            ),
            _make_independent(security_findings=[_finding(Severity.HIGH)]),
        )
        assert summary.findings_by_severity[Severity.CRITICAL] == 1
        assert summary.findings_by_severity[Severity.HIGH] == 2
        assert summary.findings_by_severity[Severity.MEDIUM] == 1
        assert summary.findings_by_severity[Severity.INFO] == 0
        assert len(summary.findings) == 4

    def test_combined_score_weights(self):
        summary = summarize_reviews(
            _make_self(confidence=0.5),
            _make_independent(overall_score=1.0),
        )
        assert summary.combined_score == pytest.approx(0.85)

    def test_combined_score_ignores_checklist(self):
        summary = summarize_reviews(
            _make_self(confidence=1.0, checklist=[ChecklistItem(item="a", passed=False)]),
            _make_independent(overall_score=0.5),
        )
        assert summary.combined_score == pytest.approx(0.65)

    def test_recommendations_deduplicated(self):
        summary = summarize_reviews(
            _make_self(),
            _make_independent(
                security_findings=[_finding(Severity.LOW)],
                recommendations=["Use parameterized queries", "Add docs"],
            ),
        )
        assert summary.recommendations == ["Use parameterized queries", "Add docs"]

    def test_report_lists_blocking_findings(self):
        s = _make_self()
        i = _make_independent(security_findings=[_finding(Severity.CRITICAL)])
        report = format_verdict_report(arbitrate(s, i, _THRESHOLD), summarize_reviews(s, i))

        assert "Decision: ESCALATE" in report
        assert "security issues require human review" in report
        assert "[critical] sql_injection (app/db.py:12)" in report
        assert "Use parameterized queries" in report

    def test_report_without_findings(self):
        s, i = _make_self(), _make_independent()
        report = format_verdict_report(arbitrate(s, i, _THRESHOLD), summarize_reviews(s, i))
        assert "Findings: none" in report
