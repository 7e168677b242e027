"""Universal LiteLLM adapter implementing the ModelProvider interface.

Routes completion requests to any LLM provider via LiteLLM's unified API.
Makes exactly one call per complete(); retry and backoff belong to the
RetryingInvoker. LiteLLM exceptions are mapped onto the transient or
permanent invocation errors the invoker classifies.
"""

from __future__ import annotations

import logging
import os

import litellm

from vouch.errors import CapabilityError, TransportError
from vouch.providers.base import ModelProvider
from vouch.schemas.capability import CapabilityOutput, TokenUsage
from vouch.schemas.pipeline import ModelConfig

# Suppress LiteLLM's "Give Feedback / Get Help" and "Provider List" banners
litellm.suppress_debug_info = True

logger = logging.getLogger(__name__)


def _short_error_reason(error: Exception) -> str:
    """Extract a short, user-friendly reason from a LiteLLM error.

    Maps error types and status codes to concise descriptions instead
    of dumping full JSON error payloads.
    """
    error_str = str(error).lower()
    if "rate" in error_str or "429" in error_str:
        return "rate limit"
    if "overloaded" in error_str or "529" in error_str:
        return "overloaded"
    if "timeout" in error_str or isinstance(error, TimeoutError):
        return "timeout"
    if "503" in error_str or "unavailable" in error_str:
        return "service unavailable"
    if "500" in error_str or "internal" in error_str:
        return "server error"
    if "connection" in error_str:
        return "connection error"
    return str(error)[:80]


class LiteLLMProvider(ModelProvider):
    """LLM worker powered by LiteLLM.

    Routes calls to any provider (Anthropic, OpenAI, Google, etc.)
    through litellm.acompletion(). This is the only place models are
    called; no direct SDK imports anywhere else.
    """

    def __init__(self, config: ModelConfig) -> None:
        super().__init__(config)
        self._api_key = os.environ.get(config.api_key_env, "")

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str,
        *,
        timeout: int | None = None,
    ) -> CapabilityOutput:
        """Send one completion request via LiteLLM.

        Raises:
            TransportError: Timeout, rate limit, 5xx or connection failure.
            CapabilityError: Authentication or invalid request.
        """
        full_messages = [{"role": "system", "content": system}, *messages] if system else messages
        kwargs = self._build_completion_kwargs(full_messages, timeout or self._config.timeout)

        try:
            response = await litellm.acompletion(**kwargs)
        except TimeoutError as e:
            raise TransportError(
                f"Model call to {self._config.model} timed out after {kwargs['timeout']:.0f}s",
                details={"model": self._config.model, "reason": "timeout"},
            ) from e
        except litellm.AuthenticationError:
            raise CapabilityError(
                f"Authentication failed for {self._config.model}. "
                f"Check that {self._config.api_key_env} is set correctly.",
                details={"model": self._config.model, "reason": "authentication"},
            ) from None
        except litellm.BadRequestError as e:
            raise CapabilityError(
                f"Bad request to {self._config.model}: {e}",
                details={"model": self._config.model, "reason": "bad request"},
            ) from e
        except (
            litellm.RateLimitError,
            litellm.ServiceUnavailableError,
            litellm.InternalServerError,
            litellm.APIConnectionError,
            litellm.Timeout,
        ) as e:
            reason = _short_error_reason(e)
            raise TransportError(
                f"Model call to {self._config.model} failed ({reason})",
                details={"model": self._config.model, "reason": reason},
            ) from e

        content = self._extract_content(response)
        logger.debug("Received %d chars from %s", len(content), self._config.display_name)
        return CapabilityOutput(
            content=content,
            model=self._config.model,
            token_usage=self._build_token_usage(response),
        )

    def _build_completion_kwargs(
        self, messages: list[dict[str, str]], timeout: int
    ) -> dict:
        """Build the kwargs dict for litellm.acompletion."""
        kwargs: dict = {
            "model": self._config.model,
            "messages": messages,
            "timeout": float(timeout),
        }

        if self._api_key:
            kwargs["api_key"] = self._api_key

        if self._config.api_base:
            kwargs["api_base"] = self._config.api_base

        # Ask for a JSON object when the model can guarantee one
        if self._config.supports_structured:
            kwargs["response_format"] = {"type": "json_object"}

        return kwargs

    def _extract_content(self, response: litellm.ModelResponse) -> str:
        """Extract text content from a LiteLLM response."""
        if not response.choices:
            return ""
        message = response.choices[0].message
        return (message.content or "") if message else ""

    def _build_token_usage(self, response: litellm.ModelResponse) -> TokenUsage:
        """Build TokenUsage from the LiteLLM response usage data."""
        usage = getattr(response, "usage", None)
        prompt_tokens = getattr(usage, "prompt_tokens", 0) or 0
        completion_tokens = getattr(usage, "completion_tokens", 0) or 0
        return TokenUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            cost=self.calculate_cost(prompt_tokens, completion_tokens),
        )
