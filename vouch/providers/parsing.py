"""Caller-side shape validation of capability output.

Capabilities return whatever they return. Turning that into a typed
pydantic model happens here, and any mismatch is an OutputShapeError,
which the RetryingInvoker treats as terminal.
"""

from __future__ import annotations

import json
import re
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from vouch.errors import OutputShapeError
from vouch.schemas.capability import CapabilityOutput

ModelT = TypeVar("ModelT", bound=BaseModel)

# Fenced JSON block inside a markdown response
_JSON_BLOCK_RE = re.compile(r"```(?:json)?\s*\n(.*?)\n```", re.DOTALL)


def _load_json_text(content: str) -> Any:
    """Decode JSON from raw text or from its first fenced code block."""
    try:
        return json.loads(content)
    except json.JSONDecodeError:
        pass

    match = _JSON_BLOCK_RE.search(content)
    if match:
        try:
            return json.loads(match.group(1))
        except json.JSONDecodeError:
            pass

    raise OutputShapeError(
        "Output is not valid JSON",
        details={"preview": content[:200]},
    )


def parse_structured(output: Any, schema: type[ModelT]) -> ModelT:
    """Validate capability output against a pydantic schema.

    Accepts an instance of the schema, a mapping, a JSON string (bare or
    fenced), or a CapabilityOutput wrapping such a string.

    Raises:
        OutputShapeError: If the output cannot be coerced into ``schema``.
    """
    if isinstance(output, schema):
        return output
    if isinstance(output, CapabilityOutput):
        output = output.content
    if isinstance(output, BaseModel):
        output = output.model_dump()
    if isinstance(output, str):
        if not output.strip():
            raise OutputShapeError(f"Empty output where {schema.__name__} was expected")
        output = _load_json_text(output)

    if not isinstance(output, dict):
        raise OutputShapeError(
            f"Expected a JSON object for {schema.__name__}, got {type(output).__name__}"
        )

    try:
        return schema.model_validate(output)
    except ValidationError as e:
        raise OutputShapeError(
            f"Output does not match {schema.__name__}: {e.error_count()} error(s)",
            details={"errors": [err["msg"] for err in e.errors()]},
        ) from e
