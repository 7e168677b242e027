"""Side-effect application result schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ApplyFailure(BaseModel):
    """A unit that could not be applied."""

    unit: str = Field(description="Identifier of the unit (file path)")
    operation: str = Field(description="Operation that was attempted")
    error: str = Field(description="Why it failed")


class ApplyResult(BaseModel):
    """Outcome of applying a batch of side-effect units."""

    succeeded: list[str] = Field(default_factory=list, description="Units applied")
    failed: list[ApplyFailure] = Field(default_factory=list, description="Units that failed")

    @property
    def success(self) -> bool:
        """True when nothing failed."""
        return not self.failed
