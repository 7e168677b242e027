"""Run input validation, performed before any external call."""

from __future__ import annotations

import logging

from vouch.errors import ContextValidationError
from vouch.schemas.context import StoryContext

logger = logging.getLogger(__name__)


def validate_context(context: StoryContext, *, max_tokens: int) -> None:
    """Check required fields; warn on oversize context.

    Raises:
        ContextValidationError: ``story.id``, ``story.title`` or
            ``story.acceptance_criteria`` is missing or empty.
    """
    story = context.story
    if not story.id.strip():
        raise ContextValidationError("story.id")
    if not story.title.strip():
        raise ContextValidationError("story.title")
    if not any(criterion.strip() for criterion in story.acceptance_criteria):
        raise ContextValidationError("story.acceptance_criteria")

    if context.total_tokens > max_tokens:
        logger.warning(
            "Context for story %s is %d tokens, above the %d token limit",
            story.id, context.total_tokens, max_tokens,
        )
