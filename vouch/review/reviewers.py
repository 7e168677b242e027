"""Obtain the two assessments arbitration needs.

The self-assessment comes from the producer's side and sees everything
the producer wrote, including its implementation notes. The independent
assessment sees only the story and the files: it shares no state with
the producer, so its verdict cannot be anchored by the producer's own
account of its work.

Both are requested through the RetryingInvoker and shape-validated inside
the attempt, so malformed reviews fail terminally instead of retrying.
"""

from __future__ import annotations

import logging
from typing import Any

from vouch.errors import OutputShapeError
from vouch.invoker import Invocation, RetryingInvoker
from vouch.providers.base import Capability
from vouch.providers.parsing import parse_structured
from vouch.schemas.context import Artifact, StoryContext
from vouch.schemas.review import IndependentAssessment, SelfAssessment

logger = logging.getLogger(__name__)

_SELF_REVIEW_SYSTEM = (
    "Review the implementation you produced. Reply with a JSON object with "
    "keys checklist, code_smells, acceptance_checks, confidence and "
    "critical_issues (a list, empty if there are none)."
)

_INDEPENDENT_REVIEW_SYSTEM = (
    "Independently review this implementation. Reply with a JSON object with "
    "keys security_findings, quality_score, test_coverage_adequate, "
    "test_quality, architecture_compliant, overall_score, confidence, "
    "preliminary_decision ('pass' or 'fail'), findings and recommendations."
)


def _files_payload(artifact: Artifact) -> list[dict[str, str]]:
    return [
        {"path": f.path, "operation": f.operation.value, "content": f.content}
        for f in artifact.files
    ]


def self_review_payload(artifact: Artifact, context: StoryContext) -> dict[str, Any]:
    return {
        "system": _SELF_REVIEW_SYSTEM,
        "story": context.story.model_dump(),
        "files": _files_payload(artifact),
        "implementation_notes": artifact.implementation_notes,
        "acceptance_mapping": artifact.acceptance_mapping,
    }


def independent_review_payload(artifact: Artifact, context: StoryContext) -> dict[str, Any]:
    return {
        "system": _INDEPENDENT_REVIEW_SYSTEM,
        "story": context.story.model_dump(),
        "architecture_context": context.architecture_context,
        "files": _files_payload(artifact),
    }


def parse_self_assessment(output: Any) -> SelfAssessment:
    """Validate a self-review. An empty checklist means nothing was reviewed.

    Raises:
        OutputShapeError: Malformed output or empty checklist.
    """
    assessment = parse_structured(output, SelfAssessment)
    if not assessment.checklist:
        raise OutputShapeError("Self-assessment has an empty review checklist")
    return assessment


def parse_independent_assessment(output: Any) -> IndependentAssessment:
    return parse_structured(output, IndependentAssessment)


async def obtain_self_assessment(
    invoker: RetryingInvoker,
    worker: Capability,
    artifact: Artifact,
    context: StoryContext,
) -> Invocation:
    """Ask the producer side to review its own artifact."""
    invocation = await invoker.invoke_with_stats(
        worker,
        self_review_payload(artifact, context),
        parse=parse_self_assessment,
        label="self reviewer",
    )
    assessment: SelfAssessment = invocation.output
    logger.info(
        "Self-assessment: confidence %.2f, %d critical issue(s)",
        assessment.confidence, len(assessment.critical_issues),
    )
    return invocation


async def obtain_independent_assessment(
    invoker: RetryingInvoker,
    worker: Capability,
    artifact: Artifact,
    context: StoryContext,
) -> Invocation:
    """Ask an independent worker to review the artifact."""
    invocation = await invoker.invoke_with_stats(
        worker,
        independent_review_payload(artifact, context),
        parse=parse_independent_assessment,
        label="independent reviewer",
    )
    assessment: IndependentAssessment = invocation.output
    logger.info(
        "Independent assessment: %s, confidence %.2f, %d security finding(s)",
        assessment.preliminary_decision, assessment.confidence,
        len(assessment.security_findings),
    )
    return invocation
