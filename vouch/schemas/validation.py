"""Quality gate schemas."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field, model_validator


class GateMode(StrEnum):
    """How the gate treats a failing validator.

    STRICT: any failure rejects the artifact.
    ADVISORY: failures are recorded as warnings and the run continues.
    """

    STRICT = "strict"
    ADVISORY = "advisory"


class ValidationReport(BaseModel):
    """Outcome of one validator over one artifact."""

    category: str = Field(description="Validator category (e.g. 'security_practices')")
    passed: bool = Field(description="Whether the artifact passed this validator")
    issues: list[str] = Field(default_factory=list, description="Blocking problems")
    warnings: list[str] = Field(default_factory=list, description="Non-blocking notes")

    @model_validator(mode="after")
    def _failed_needs_issues(self) -> ValidationReport:
        if not self.passed and not self.issues:
            raise ValueError(f"failed report for '{self.category}' must list issues")
        return self


class GateResult(BaseModel):
    """Every validator report from one gate run."""

    mode: GateMode = Field(description="Mode the gate ran in")
    reports: list[ValidationReport] = Field(
        default_factory=list, description="One report per validator that ran"
    )

    @property
    def passed(self) -> bool:
        """True when every validator passed."""
        return all(r.passed for r in self.reports)

    @property
    def issues(self) -> list[str]:
        """All issues, prefixed with their category."""
        return [f"[{r.category}] {issue}" for r in self.reports for issue in r.issues]

    @property
    def warnings(self) -> list[str]:
        """All warnings, prefixed with their category."""
        return [f"[{r.category}] {w}" for r in self.reports for w in r.warnings]
