"""Per-run stage timing and bottleneck detection."""

from __future__ import annotations

import logging
import time
from collections import Counter
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager

from vouch.schemas.pipeline import PipelineMetrics, PipelineStage
from vouch.schemas.review import ReviewFinding

logger = logging.getLogger(__name__)


class MetricsTracker:
    """Time the stages of one run.

    A stage that runs more than once (or is interrupted) accumulates its
    durations. Bottlenecks are stages that exceeded ``stage_budget`` and,
    if the whole run exceeded ``total_budget``, the label ``"total"``.

    Args:
        stage_budget: Seconds any single stage may take.
        total_budget: Seconds the whole run may take.
        clock: Monotonic clock; injectable for tests.
    """

    def __init__(
        self,
        *,
        stage_budget: float,
        total_budget: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._stage_budget = stage_budget
        self._total_budget = total_budget
        self._clock = clock
        self._started = clock()
        self._durations: dict[PipelineStage, float] = {}
        self._findings: Counter[str] = Counter()
        self.current_stage = PipelineStage.VALIDATING_CONTEXT
        self.invocation_attempts = 0

    @contextmanager
    def stage(self, stage: PipelineStage) -> Iterator[None]:
        """Time the enclosed block as ``stage``, even if it raises."""
        self.current_stage = stage
        logger.info("Stage %s started", stage)
        start = self._clock()
        try:
            yield
        finally:
            elapsed = self._clock() - start
            self._durations[stage] = self._durations.get(stage, 0.0) + elapsed
            logger.info("Stage %s finished in %.2fs", stage, elapsed)

    def record_findings(self, findings: Iterable[ReviewFinding]) -> None:
        self._findings.update(str(f.severity) for f in findings)

    def finish(self) -> PipelineMetrics:
        """Freeze the run's metrics and flag bottlenecks."""
        total = self._clock() - self._started
        bottlenecks = [
            str(stage) for stage, seconds in self._durations.items()
            if seconds > self._stage_budget
        ]
        if total > self._total_budget:
            bottlenecks.append("total")
        for name in bottlenecks:
            logger.warning("Bottleneck: %s exceeded its time budget", name)

        return PipelineMetrics(
            stage_durations=dict(self._durations),
            total_duration=max(total, sum(self._durations.values())),
            bottlenecks=bottlenecks,
            invocation_attempts=self.invocation_attempts,
            findings_by_severity=dict(self._findings),
        )
