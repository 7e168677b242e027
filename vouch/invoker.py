"""Bounded-retry invocation of generative workers.

The RetryingInvoker calls a Capability, classifies each failure as
retryable or terminal, and backs off exponentially between attempts.
Shape validation of the output runs inside the attempt, so a malformed
result is a terminal failure rather than something to retry.

Backoff uses asyncio.sleep: only the task that owns the invocation is
suspended.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pydantic import ValidationError

from vouch.errors import (
    CapabilityError,
    InvocationError,
    InvocationExhausted,
    OutputShapeError,
    TransportError,
)
from vouch.providers.base import Capability
from vouch.schemas.pipeline import RetryPolicy

logger = logging.getLogger(__name__)


class FailureClass(StrEnum):
    """Whether a failed attempt is worth repeating."""

    RETRYABLE = "retryable"
    TERMINAL = "terminal"


# Message fragments that mark an otherwise unclassified error as permanent
_TERMINAL_PATTERNS: tuple[str, ...] = (
    "unauthorized",
    "forbidden",
    "permission denied",
    "invalid api key",
    "authentication",
    "quota",
    "billing",
    "insufficient",
    "model not found",
    "unknown model",
    "unsupported model",
)

# Message fragments that mark an otherwise unclassified error as transient
_TRANSIENT_PATTERNS: tuple[str, ...] = (
    "too many requests",
    "rate limit",
    "429",
    "503",
    "timeout",
    "timed out",
    "temporarily unavailable",
    "connection reset",
    "network error",
    "try again later",
)


def classify_failure(error: BaseException) -> FailureClass:
    """Classify an attempt failure.

    Typed errors decide by type. Anything else is matched against known
    message fragments, and unrecognised errors are treated as retryable.
    """
    if isinstance(error, OutputShapeError | CapabilityError | ValidationError):
        return FailureClass.TERMINAL
    if isinstance(error, TransportError | TimeoutError | ConnectionError):
        return FailureClass.RETRYABLE
    if isinstance(error, ValueError | TypeError | KeyError):
        return FailureClass.TERMINAL

    message = str(error).lower()
    if any(p in message for p in _TERMINAL_PATTERNS):
        return FailureClass.TERMINAL
    if isinstance(error, OSError) or any(p in message for p in _TRANSIENT_PATTERNS):
        return FailureClass.RETRYABLE

    logger.debug("Unclassified %s treated as retryable: %s", type(error).__name__, error)
    return FailureClass.RETRYABLE


@dataclass
class Invocation:
    """A successful invocation and what it cost."""

    output: Any
    attempts: int
    delays: list[float] = field(default_factory=list)


class RetryingInvoker:
    """Invoke capabilities under a RetryPolicy.

    Args:
        policy: Attempt limit and backoff schedule.
        classify: Failure classifier; defaults to classify_failure.
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        classify: Callable[[BaseException], FailureClass] = classify_failure,
    ) -> None:
        self._policy = policy or RetryPolicy()
        self._classify = classify

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def invoke(
        self,
        capability: Capability,
        payload: Mapping[str, Any],
        *,
        parse: Callable[[Any], Any] | None = None,
        label: str = "",
    ) -> Any:
        """Invoke ``capability`` and return its (optionally parsed) output.

        Raises:
            InvocationExhausted: Every attempt failed with a retryable error.
            InvocationError: A terminal error, with ``attempts`` set.
        """
        invocation = await self.invoke_with_stats(capability, payload, parse=parse, label=label)
        return invocation.output

    async def invoke_with_stats(
        self,
        capability: Capability,
        payload: Mapping[str, Any],
        *,
        parse: Callable[[Any], Any] | None = None,
        label: str = "",
    ) -> Invocation:
        """Like invoke(), but also report attempts used and delays slept.

        Args:
            capability: Worker to call.
            payload: Input passed unchanged to every attempt.
            parse: Optional shape validator applied to each attempt's output.
                Its exceptions are classified like the capability's own.
            label: Name used in log messages.

        Returns:
            Invocation with the output, attempt count and delays.

        Raises:
            InvocationExhausted: Every attempt failed with a retryable error.
            InvocationError: A terminal error, with ``attempts`` set.
        """
        name = label or type(capability).__name__
        max_attempts = self._policy.max_attempts
        delays: list[float] = []
        last_error: Exception | None = None

        for attempt in range(1, max_attempts + 1):
            try:
                output = await capability.invoke(payload)
                if parse is not None:
                    output = parse(output)
                return Invocation(output=output, attempts=attempt, delays=delays)
            except Exception as e:
                last_error = e
                if self._classify(e) == FailureClass.TERMINAL:
                    logger.warning(
                        "Terminal failure from %s on attempt %d/%d: %s",
                        name, attempt, max_attempts, e,
                    )
                    terminal = _as_terminal(e, attempt)
                    if terminal is e:
                        raise
                    raise terminal from e

            if attempt < max_attempts:
                backoff = self._policy.delay_for(attempt)
                logger.warning(
                    "Retry %d/%d for %s (%s, backoff: %.1fs)",
                    attempt, max_attempts - 1, name, last_error, backoff,
                )
                delays.append(backoff)
                await asyncio.sleep(backoff)

        logger.error("%s failed after %d attempt(s): %s", name, max_attempts, last_error)
        raise InvocationExhausted(max_attempts, last_error) from last_error


def _as_terminal(error: Exception, attempts: int) -> InvocationError:
    """Wrap a terminal failure as an InvocationError carrying the attempt count."""
    if isinstance(error, InvocationError):
        wrapped = error
    elif isinstance(error, ValidationError):
        wrapped = OutputShapeError(f"Output failed validation: {error.error_count()} error(s)")
    else:
        wrapped = CapabilityError(
            f"{type(error).__name__}: {error}", details={"error_type": type(error).__name__}
        )
    wrapped.attempts = attempts
    return wrapped
