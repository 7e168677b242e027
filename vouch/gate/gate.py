"""Deterministic quality gate over generated artifacts.

Runs a set of independent validators against the same read-only artifact
and context. Each validator yields exactly one ValidationReport; one that
raises or returns something else is reported as failed for its own
category instead of taking the gate down. In strict mode any failure rejects the artifact with every
report attached. In advisory mode the gate only records.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from vouch.errors import GateRejected
from vouch.schemas.context import Artifact, StoryContext
from vouch.schemas.validation import GateMode, GateResult, ValidationReport

logger = logging.getLogger(__name__)


@runtime_checkable
class Validator(Protocol):
    """A single quality check.

    ``validate`` may be a plain or an async method. It must not mutate
    the artifact or context.
    """

    category: str

    def validate(
        self, artifact: Artifact, context: StoryContext
    ) -> ValidationReport: ...


class ValidationGate:
    """Run validators and aggregate their reports.

    Args:
        validators: Checks to run, in order.
        mode: STRICT rejects on any failure; ADVISORY never rejects.
        short_circuit: In strict mode, stop at the first failing validator.
            Off by default so callers see every failing category.
    """

    def __init__(
        self,
        validators: Sequence[Validator],
        mode: GateMode = GateMode.STRICT,
        *,
        short_circuit: bool = False,
    ) -> None:
        self._validators = list(validators)
        self._mode = mode
        self._short_circuit = short_circuit

    @property
    def mode(self) -> GateMode:
        return self._mode

    async def run(self, artifact: Artifact, context: StoryContext) -> GateResult:
        """Validate an artifact.

        Returns:
            GateResult with one report per validator that ran.

        Raises:
            GateRejected: In strict mode, if any validator failed.
        """
        reports: list[ValidationReport] = []
        for validator in self._validators:
            report = await self._run_one(validator, artifact, context)
            reports.append(report)
            if not report.passed:
                logger.warning(
                    "Validator %s failed with %d issue(s)",
                    report.category, len(report.issues),
                )
                if self._mode == GateMode.STRICT and self._short_circuit:
                    break

        result = GateResult(mode=self._mode, reports=reports)
        if result.passed:
            logger.info("Quality gate passed (%d validators)", len(reports))
            return result

        if self._mode == GateMode.STRICT:
            raise GateRejected(result)

        logger.warning(
            "Quality gate (advisory) recorded %d issue(s); continuing",
            len(result.issues),
        )
        return result

    async def _run_one(
        self, validator: Validator, artifact: Artifact, context: StoryContext
    ) -> ValidationReport:
        category = getattr(validator, "category", type(validator).__name__)
        try:
            report = validator.validate(artifact, context)
            if inspect.isawaitable(report):
                report = await report
        except Exception as e:
            logger.exception("Validator %s raised", category)
            return ValidationReport(
                category=category,
                passed=False,
                issues=[f"Validation error: {e}"],
            )
        if not isinstance(report, ValidationReport):
            logger.error(
                "Validator %s returned %s instead of a report",
                category, type(report).__name__,
            )
            return ValidationReport(
                category=category,
                passed=False,
                issues=[f"Validation error: validator returned {type(report).__name__}"],
            )
        return report
