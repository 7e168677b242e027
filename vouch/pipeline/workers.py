"""Worker registry with run-scoped lifetimes.

The orchestrator owns a WorkerRegistry mapping each role to a factory.
Inside ``async with registry.scope() as pool`` workers are created on
first use, and every worker created in the scope is closed when it
exits, whether the run finished, failed or was cancelled.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable, Mapping
from contextlib import asynccontextmanager

from vouch.providers.base import Capability
from vouch.schemas.pipeline import WorkerRole

logger = logging.getLogger(__name__)

WorkerFactory = Callable[[], Capability]


class WorkerPool:
    """Workers live for one scope."""

    def __init__(self, factories: Mapping[WorkerRole, WorkerFactory]) -> None:
        self._factories = factories
        self._active: dict[WorkerRole, Capability] = {}

    def has(self, role: WorkerRole) -> bool:
        return role in self._factories

    def get(self, role: WorkerRole) -> Capability:
        """Return the worker for ``role``, creating it on first use.

        Raises:
            KeyError: No factory is registered for ``role``.
        """
        if role not in self._active:
            if role not in self._factories:
                raise KeyError(f"No worker registered for role '{role}'")
            self._active[role] = self._factories[role]()
            logger.debug("Spawned %s worker", role)
        return self._active[role]

    @property
    def active(self) -> list[WorkerRole]:
        return list(self._active)

    async def aclose(self) -> None:
        """Close every worker this pool created, in reverse creation order.

        A worker that fails to close is logged and the rest are still closed.
        """
        for role, worker in reversed(list(self._active.items())):
            try:
                await worker.aclose()
            except Exception:
                logger.exception("Failed to close %s worker", role)
        self._active.clear()


class WorkerRegistry:
    """Role-to-factory map owned by the orchestrator."""

    def __init__(self, factories: Mapping[WorkerRole, WorkerFactory] | None = None) -> None:
        self._factories: dict[WorkerRole, WorkerFactory] = dict(factories or {})

    def register(self, role: WorkerRole, factory: WorkerFactory) -> None:
        self._factories[role] = factory

    def has(self, role: WorkerRole) -> bool:
        return role in self._factories

    @asynccontextmanager
    async def scope(self) -> AsyncIterator[WorkerPool]:
        """Yield a pool whose workers are closed on exit."""
        pool = WorkerPool(self._factories)
        try:
            yield pool
        finally:
            await pool.aclose()
