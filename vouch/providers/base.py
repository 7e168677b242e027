"""Capability contract and the abstract model provider.

A Capability is anything the pipeline can invoke: an opaque async
callable that takes a payload and returns output or raises. The pipeline
never inspects how a capability produces its output; it only validates
the result. ModelProvider is the LLM-backed capability family, configured
from a ModelConfig loaded from the TOML registry.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from vouch.schemas.capability import CapabilityOutput
from vouch.schemas.pipeline import ModelConfig


class Capability(ABC):
    """An invocable generative worker."""

    @abstractmethod
    async def invoke(self, payload: Mapping[str, Any]) -> Any:
        """Run the capability once.

        Raises:
            TransportError: Transient failure; the call may be retried.
            CapabilityError: Permanent failure; retrying will not help.
        """

    async def aclose(self) -> None:
        """Release any resources held by the capability."""
        return None


class ModelProvider(Capability):
    """Abstract interface for any LLM that can act as a worker.

    Initialized from a ModelConfig loaded from the TOML registry. Exposes
    identity and cost info, and a single async complete() method that all
    providers must implement. invoke() turns a pipeline payload into a
    chat request.
    """

    def __init__(self, config: ModelConfig) -> None:
        self._config = config

    # ── Identity ──────────────────────────────────────────────

    @property
    def model_id(self) -> str:
        """LiteLLM model identifier used for routing."""
        return self._config.model

    @property
    def display_name(self) -> str:
        """Human-friendly model name for CLI output."""
        return self._config.display_name

    @property
    def supports_structured(self) -> bool:
        """Whether the model supports structured JSON output."""
        return self._config.supports_structured

    # ── Cost ──────────────────────────────────────────────────

    def calculate_cost(self, prompt_tokens: int, completion_tokens: int) -> float:
        """Calculate USD cost for a given token usage."""
        input_cost = (prompt_tokens / 1_000_000) * self._config.cost_input
        output_cost = (completion_tokens / 1_000_000) * self._config.cost_output
        return input_cost + output_cost

    # ── Invocation ────────────────────────────────────────────

    async def invoke(self, payload: Mapping[str, Any]) -> CapabilityOutput:
        system = str(payload.get("system", ""))
        return await self.complete(payload_to_messages(payload), system)

    @abstractmethod
    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str,
        *,
        timeout: int | None = None,
    ) -> CapabilityOutput:
        """Send a single completion request to the model.

        Args:
            messages: Conversation messages in OpenAI format.
            system: System prompt for this call.
            timeout: Timeout in seconds. Defaults to the model's configured timeout.

        Returns:
            CapabilityOutput with the raw content and token usage.
        """


def payload_to_messages(payload: Mapping[str, Any]) -> list[dict[str, str]]:
    """Build chat messages from a pipeline payload.

    Explicit ``messages`` win; otherwise ``prompt`` becomes the user turn,
    and failing that the whole payload (minus ``system``) is sent as JSON.
    """
    if "messages" in payload:
        return list(payload["messages"])
    if isinstance(payload.get("prompt"), str):
        return [{"role": "user", "content": payload["prompt"]}]
    body = {k: v for k, v in payload.items() if k != "system"}
    return [{"role": "user", "content": json.dumps(body, indent=2, default=str)}]
