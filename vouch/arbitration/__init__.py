"""Arbitration — priority-ordered merge of two independent reviews."""

from vouch.arbitration.engine import (
    arbitrate,
    combined_confidence,
    format_verdict_report,
    summarize_reviews,
)

__all__ = [
    "arbitrate",
    "combined_confidence",
    "format_verdict_report",
    "summarize_reviews",
]
