"""Review layer — self and independent assessments of an artifact."""

from vouch.review.reviewers import (
    obtain_independent_assessment,
    obtain_self_assessment,
    parse_independent_assessment,
    parse_self_assessment,
)

__all__ = [
    "obtain_independent_assessment",
    "obtain_self_assessment",
    "parse_independent_assessment",
    "parse_self_assessment",
]
