"""Capability output schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field


class TokenUsage(BaseModel):
    """Token consumption and cost for one capability call."""

    prompt_tokens: int = Field(default=0, ge=0, description="Tokens sent")
    completion_tokens: int = Field(default=0, ge=0, description="Tokens received")
    cost: float = Field(default=0.0, ge=0.0, description="Cost in USD")

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class CapabilityOutput(BaseModel):
    """Raw output of an LLM-backed capability.

    The content is unvalidated text; turning it into a typed result is
    the caller's job (see vouch.providers.parsing).
    """

    content: str = Field(default="", description="Raw text returned by the model")
    model: str = Field(default="", description="Model that produced the content")
    token_usage: TokenUsage | None = Field(default=None, description="Token usage, if reported")
