"""Review and arbitration schemas.

Defines the two assessments that feed arbitration (the producer's own
self-assessment and an independently produced assessment) and the
Verdict that arbitration yields.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field


class Severity(StrEnum):
    """Severity of a finding, most severe first."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class FindingCategory(StrEnum):
    """What a review finding is about."""

    SECURITY = "security"
    QUALITY = "quality"
    TESTING = "testing"
    ARCHITECTURE = "architecture"


class ReviewDecision(StrEnum):
    """Preliminary decision of the independent reviewer."""

    PASS = "pass"
    FAIL = "fail"


class ArbitrationDecision(StrEnum):
    """Outcome of arbitration."""

    PASS = "pass"
    FAIL = "fail"
    ESCALATE = "escalate"


class ArbitrationRule(StrEnum):
    """Arbitration rules in priority order. The first matching rule wins."""

    CRITICAL_ISSUES = "critical_issues"
    SECURITY_FINDINGS = "security_findings"
    TEST_COVERAGE = "test_coverage"
    INDEPENDENT_REVIEW_FAILED = "independent_review_failed"
    LOW_CONFIDENCE = "low_confidence"
    ALL_CLEAR = "all_clear"


# ── Self-assessment ──────────────────────────────────────────────


class ChecklistItem(BaseModel):
    """One item of the producer's review checklist."""

    item: str = Field(description="What was checked")
    passed: bool = Field(description="Whether the check passed")
    notes: str = Field(default="", description="Supporting notes")


class CodeSmell(BaseModel):
    """A maintainability concern the producer noticed in its own output."""

    type: str = Field(description="Kind of smell (e.g. 'long function')")
    location: str = Field(default="", description="Where it occurs")
    severity: Severity = Field(default=Severity.LOW, description="How serious it is")
    recommendation: str = Field(default="", description="Suggested fix")


class AcceptanceCheck(BaseModel):
    """Whether one acceptance criterion is met."""

    criterion: str = Field(description="Acceptance criterion text")
    met: bool = Field(description="Whether the artifact satisfies it")
    evidence: str = Field(default="", description="Where or how it is satisfied")


class SelfAssessment(BaseModel):
    """The producer's assessment of its own artifact.

    ``critical_issues`` is required and never null; an empty list means
    the producer found nothing critical.
    """

    checklist: list[ChecklistItem] = Field(
        default_factory=list, description="Review checklist results"
    )
    code_smells: list[CodeSmell] = Field(
        default_factory=list, description="Maintainability concerns"
    )
    acceptance_checks: list[AcceptanceCheck] = Field(
        default_factory=list, description="Acceptance criteria validation"
    )
    confidence: float = Field(ge=0.0, le=1.0, description="Producer's confidence")
    critical_issues: list[str] = Field(description="Blocking problems found")


# ── Independent assessment ───────────────────────────────────────


class SecurityFinding(BaseModel):
    """A security vulnerability identified by the independent reviewer."""

    type: str = Field(description="Vulnerability class (e.g. 'sql_injection')")
    severity: Severity = Field(description="How severe the vulnerability is")
    location: str = Field(default="", description="File and line")
    description: str = Field(default="", description="What is wrong")
    remediation: str = Field(default="", description="How to fix it")


class CoverageQuality(BaseModel):
    """Qualitative assessment of the artifact's tests."""

    edge_cases_covered: bool = Field(default=False, description="Edge cases exercised")
    error_handling_tested: bool = Field(default=False, description="Error paths tested")
    integration_tests_present: bool = Field(
        default=False, description="Integration tests exist"
    )


class ReviewFinding(BaseModel):
    """A single finding from either review."""

    category: FindingCategory = Field(description="What the finding is about")
    severity: Severity = Field(description="How serious it is")
    title: str = Field(description="Short summary")
    description: str = Field(default="", description="Details")
    location: str = Field(default="", description="Where it occurs")
    recommendation: str = Field(default="", description="Suggested fix")


class IndependentAssessment(BaseModel):
    """Assessment produced by a reviewer that shares no state with the producer."""

    security_findings: list[SecurityFinding] = Field(
        default_factory=list, description="Security vulnerabilities found"
    )
    quality_score: float = Field(
        default=0.0, ge=0.0, le=1.0, description="Code quality score"
    )
    test_coverage_adequate: bool = Field(description="Whether test coverage meets the bar")
    test_quality: CoverageQuality = Field(
        default_factory=CoverageQuality, description="Qualitative test assessment"
    )
    architecture_compliant: bool = Field(
        default=True, description="Whether the artifact follows the architecture"
    )
    overall_score: float = Field(ge=0.0, le=1.0, description="Overall score")
    confidence: float = Field(ge=0.0, le=1.0, description="Reviewer's confidence")
    preliminary_decision: ReviewDecision = Field(description="Reviewer's own pass/fail")
    findings: list[ReviewFinding] = Field(
        default_factory=list, description="All findings, any category"
    )
    recommendations: list[str] = Field(
        default_factory=list, description="Improvement suggestions"
    )


# ── Arbitration output ───────────────────────────────────────────


class Verdict(BaseModel):
    """Result of arbitration. The rationale names only the rule that fired."""

    decision: ArbitrationDecision = Field(description="pass, fail or escalate")
    rationale: str = Field(description="Why the first matching rule fired")
    rule: ArbitrationRule = Field(description="The rule that produced this verdict")
    combined_confidence: float = Field(
        ge=0.0, le=1.0, description="Mean of both assessments' confidence"
    )


class ReviewSummary(BaseModel):
    """Aggregated view of both reviews for reporting and escalation."""

    combined_confidence: float = Field(ge=0.0, le=1.0, description="Mean confidence")
    combined_score: float = Field(ge=0.0, le=1.0, description="Blended quality score")
    findings: list[ReviewFinding] = Field(
        default_factory=list, description="Findings from both reviews"
    )
    findings_by_severity: dict[Severity, int] = Field(
        default_factory=dict, description="Finding counts per severity"
    )
    recommendations: list[str] = Field(
        default_factory=list, description="Deduplicated recommendations"
    )
