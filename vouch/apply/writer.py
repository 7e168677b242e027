"""Side-effect application of accepted artifacts.

A SideEffectApplier turns an accepted artifact into real changes and
reports, per unit, what succeeded and what failed. FileApplier writes
artifact files under a project root. Each unit is applied
independently: one failure does not stop the rest, and nothing already
written is rolled back.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from pathlib import Path

from vouch.schemas.apply import ApplyFailure, ApplyResult
from vouch.schemas.context import ArtifactFile, FileOperation

logger = logging.getLogger(__name__)


class SideEffectApplier(ABC):
    """Applies artifact units and reports per-unit outcomes."""

    @abstractmethod
    async def apply(self, units: Sequence[ArtifactFile]) -> ApplyResult:
        """Apply every unit. Never raises for a single unit's failure."""


class FileApplier(SideEffectApplier):
    """Write create/modify/delete units to files under ``root``.

    - create fails if the file already exists
    - modify and delete fail if the file does not exist
    - any path resolving outside ``root`` is refused
    """

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root).expanduser().resolve()

    @property
    def root(self) -> Path:
        return self._root

    async def apply(self, units: Sequence[ArtifactFile]) -> ApplyResult:
        result = ApplyResult()
        for unit in units:
            try:
                await asyncio.to_thread(self._apply_one, unit)
            except (OSError, ValueError) as e:
                logger.error("Failed to %s %s: %s", unit.operation, unit.path, e)
                result.failed.append(ApplyFailure(
                    unit=unit.path, operation=unit.operation.value, error=str(e),
                ))
            else:
                logger.info("Applied %s %s", unit.operation, unit.path)
                result.succeeded.append(unit.path)
        return result

    def _resolve(self, relative: str) -> Path:
        path = (self._root / relative).resolve()
        if not path.is_relative_to(self._root):
            raise ValueError(f"Path escapes project root: {relative}")
        return path

    def _apply_one(self, unit: ArtifactFile) -> None:
        path = self._resolve(unit.path)
        match unit.operation:
            case FileOperation.CREATE:
                if path.exists():
                    raise FileExistsError(f"File already exists: {unit.path}")
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(unit.content, encoding="utf-8")
            case FileOperation.MODIFY:
                if not path.is_file():
                    raise FileNotFoundError(f"File not found: {unit.path}")
                path.write_text(unit.content, encoding="utf-8")
            case FileOperation.DELETE:
                if not path.is_file():
                    raise FileNotFoundError(f"File not found: {unit.path}")
                path.unlink()
