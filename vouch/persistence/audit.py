"""Append-only audit trail, one JSONL file per run."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from vouch.schemas.audit import AuditEntry, AuditKind

logger = logging.getLogger(__name__)

# Run ids become file names
_SAFE_RUN_ID = re.compile(r"^[A-Za-z0-9_.-]+$")


class AuditLog:
    """Records every decision, verdict and escalation of a run.

    Entries are appended and never rewritten. Each run writes to its own
    ``<run_id>.jsonl`` so concurrent runs never interleave.
    """

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory).expanduser()

    def path_for(self, run_id: str) -> Path:
        if not _SAFE_RUN_ID.match(run_id):
            raise ValueError(f"Invalid run id for audit log: {run_id!r}")
        return self.directory / f"{run_id}.jsonl"

    def record(
        self,
        run_id: str,
        kind: AuditKind,
        payload: BaseModel | dict[str, Any] | None = None,
        *,
        stage: str = "",
    ) -> AuditEntry:
        """Append one entry to the run's log."""
        if isinstance(payload, BaseModel):
            data = payload.model_dump(mode="json")
        else:
            data = payload or {}
        entry = AuditEntry(run_id=run_id, kind=kind, stage=stage, payload=data)

        path = self.path_for(run_id)
        self.directory.mkdir(parents=True, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(entry.model_dump_json() + "\n")
        logger.debug("Audit %s: %s", run_id, kind)
        return entry

    def read(self, run_id: str, kind: AuditKind | None = None) -> list[AuditEntry]:
        """Return a run's entries in write order, optionally filtered by kind."""
        path = self.path_for(run_id)
        if not path.exists():
            return []

        entries: list[AuditEntry] = []
        with open(path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                entry = AuditEntry.model_validate(json.loads(line))
                if kind is None or entry.kind == kind:
                    entries.append(entry)
        return entries

    def runs(self) -> list[str]:
        """Run ids with an audit log, most recent first."""
        if not self.directory.exists():
            return []
        files = sorted(
            self.directory.glob("*.jsonl"), key=lambda p: p.stat().st_mtime, reverse=True
        )
        return [p.stem for p in files]
