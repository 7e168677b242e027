"""Deterministic arbitration between two independent reviews.

arbitrate() merges the producer's self-assessment with an independent
assessment into a pass / fail / escalate Verdict. Rules are evaluated in
a fixed priority order and the first one that matches decides. The
function is pure: the confidence threshold is an input, never read from
the environment, so the same inputs always produce the same verdict.

Priority order:
  1. critical issues in the self-assessment          -> fail
  2. critical or high severity security finding      -> escalate
  3. inadequate test coverage                        -> fail
  4. independent preliminary decision is fail        -> escalate
  5. mean confidence below threshold                 -> escalate
  6. otherwise                                       -> pass
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import assert_never

from vouch.schemas.review import (
    ArbitrationDecision,
    ArbitrationRule,
    FindingCategory,
    IndependentAssessment,
    ReviewDecision,
    ReviewFinding,
    ReviewSummary,
    SelfAssessment,
    Severity,
    Verdict,
)

logger = logging.getLogger(__name__)

# Security severities that always need a human
_BLOCKING_SECURITY = frozenset({Severity.CRITICAL, Severity.HIGH})

# Evaluation order; ArbitrationRule declares the same order
_RULE_ORDER: tuple[ArbitrationRule, ...] = (
    ArbitrationRule.CRITICAL_ISSUES,
    ArbitrationRule.SECURITY_FINDINGS,
    ArbitrationRule.TEST_COVERAGE,
    ArbitrationRule.INDEPENDENT_REVIEW_FAILED,
    ArbitrationRule.LOW_CONFIDENCE,
    ArbitrationRule.ALL_CLEAR,
)

_OUTCOMES: dict[ArbitrationRule, tuple[ArbitrationDecision, str]] = {
    ArbitrationRule.CRITICAL_ISSUES: (
        ArbitrationDecision.FAIL, "critical issues identified"
    ),
    ArbitrationRule.SECURITY_FINDINGS: (
        ArbitrationDecision.ESCALATE, "security issues require human review"
    ),
    ArbitrationRule.TEST_COVERAGE: (
        ArbitrationDecision.FAIL, "test coverage below threshold"
    ),
    ArbitrationRule.INDEPENDENT_REVIEW_FAILED: (
        ArbitrationDecision.ESCALATE, "independent review failed"
    ),
    ArbitrationRule.LOW_CONFIDENCE: (
        ArbitrationDecision.ESCALATE, "combined confidence below threshold"
    ),
    ArbitrationRule.ALL_CLEAR: (
        ArbitrationDecision.PASS, "both reviews passed with sufficient confidence"
    ),
}


def combined_confidence(
    self_assessment: SelfAssessment, independent: IndependentAssessment
) -> float:
    """Arithmetic mean of both assessments' confidence."""
    return (self_assessment.confidence + independent.confidence) / 2


def _rule_matches(
    rule: ArbitrationRule,
    self_assessment: SelfAssessment,
    independent: IndependentAssessment,
    confidence: float,
    threshold: float,
) -> bool:
    match rule:
        case ArbitrationRule.CRITICAL_ISSUES:
            return bool(self_assessment.critical_issues)
        case ArbitrationRule.SECURITY_FINDINGS:
            return any(f.severity in _BLOCKING_SECURITY for f in independent.security_findings)
        case ArbitrationRule.TEST_COVERAGE:
            return not independent.test_coverage_adequate
        case ArbitrationRule.INDEPENDENT_REVIEW_FAILED:
            return independent.preliminary_decision == ReviewDecision.FAIL
        case ArbitrationRule.LOW_CONFIDENCE:
            return confidence < threshold
        case ArbitrationRule.ALL_CLEAR:
            return True
        case _:
            assert_never(rule)


def arbitrate(
    self_assessment: SelfAssessment,
    independent: IndependentAssessment,
    confidence_threshold: float,
) -> Verdict:
    """Decide pass, fail or escalate from two independent reviews.

    Args:
        self_assessment: The producer's review of its own artifact.
        independent: A review produced with no shared state.
        confidence_threshold: Mean confidence required to pass.

    Returns:
        Verdict whose rationale describes only the first matching rule.
    """
    confidence = combined_confidence(self_assessment, independent)
    for rule in _RULE_ORDER:
        if _rule_matches(rule, self_assessment, independent, confidence, confidence_threshold):
            decision, rationale = _OUTCOMES[rule]
            logger.info(
                "Arbitration: %s (%s, combined confidence %.2f, threshold %.2f)",
                decision.upper(), rule, confidence, confidence_threshold,
            )
            return Verdict(
                decision=decision,
                rationale=rationale,
                rule=rule,
                combined_confidence=round(confidence, 4),
            )
    # ALL_CLEAR always matches
    raise AssertionError("no arbitration rule matched")


# ── Reporting ────────────────────────────────────────────────────


def _self_findings(self_assessment: SelfAssessment) -> list[ReviewFinding]:
    findings = [
        ReviewFinding(
            category=FindingCategory.QUALITY,
            severity=Severity.CRITICAL,
            title="Critical issue",
            description=issue,
        )
        for issue in self_assessment.critical_issues
    ]
    findings.extend(
        ReviewFinding(
            category=FindingCategory.QUALITY,
            severity=smell.severity,
            title=smell.type,
            location=smell.location,
            recommendation=smell.recommendation,
        )
        for smell in self_assessment.code_smells
    )
    findings.extend(
        ReviewFinding(
            category=FindingCategory.TESTING,
            severity=Severity.HIGH,
            title="Acceptance criterion not met",
            description=check.criterion,
        )
        for check in self_assessment.acceptance_checks
        if not check.met
    )
    return findings


def _independent_findings(independent: IndependentAssessment) -> list[ReviewFinding]:
    findings = [
        ReviewFinding(
            category=FindingCategory.SECURITY,
            severity=vuln.severity,
            title=vuln.type,
            description=vuln.description,
            location=vuln.location,
            recommendation=vuln.remediation,
        )
        for vuln in independent.security_findings
    ]
    findings.extend(independent.findings)
    return findings


def summarize_reviews(
    self_assessment: SelfAssessment, independent: IndependentAssessment
) -> ReviewSummary:
    """Aggregate both reviews into one summary for reporting.

    The combined score weights the independent overall score at 70% and
    the producer's own confidence at 30%.
    """
    findings = _self_findings(self_assessment) + _independent_findings(independent)
    counts = Counter(f.severity for f in findings)

    score = 0.3 * self_assessment.confidence + 0.7 * independent.overall_score

    recommendations = list(dict.fromkeys(
        [*independent.recommendations, *(f.recommendation for f in findings if f.recommendation)]
    ))

    return ReviewSummary(
        combined_confidence=round(combined_confidence(self_assessment, independent), 4),
        combined_score=round(score, 4),
        findings=findings,
        findings_by_severity={sev: counts.get(sev, 0) for sev in Severity},
        recommendations=recommendations,
    )


def format_verdict_report(verdict: Verdict, summary: ReviewSummary) -> str:
    """Render a verdict and its review summary as plain text for a human."""
    counts = ", ".join(
        f"{count} {sev}" for sev, count in summary.findings_by_severity.items() if count
    )
    lines = [
        f"Decision: {verdict.decision.upper()}",
        f"Reason: {verdict.rationale}",
        f"Combined confidence: {verdict.combined_confidence:.2f}",
        f"Combined score: {summary.combined_score:.2f}",
        "",
        f"Findings: {counts or 'none'}",
    ]
    for finding in summary.findings:
        if finding.severity not in _BLOCKING_SECURITY:
            continue
        where = f" ({finding.location})" if finding.location else ""
        lines.append(f"  - [{finding.severity}] {finding.title}{where}: {finding.description}")
    if summary.recommendations:
        lines.append("")
        lines.append("Recommendations:")
        lines.extend(f"  - {rec}" for rec in summary.recommendations)
    return "\n".join(lines)
