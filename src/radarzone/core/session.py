# src/radarzone/core/session.py
from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Callable

from .dwell import DwellEvent, DwellTimer
from .errors import PermissionDenied
from .geofence import Coordinate, GeofenceMonitor, Zone
from .records import RecordStore
from .scheduler import Scheduler

logger = logging.getLogger(__name__)


class MonitoringSession:
    """
    location sample -> GeofenceMonitor -> DwellTimer -> RecordStore (-> RecordPublisher)

    Everything runs on one event loop. A finished stay is reconciled in its
    own task so a slow record endpoint never holds up the next sample.
    """

    def __init__(
        self,
        zone: Zone,
        records: RecordStore,
        scheduler: Scheduler,
        tick_sec: float = 1.0,
        grace_ms: int = 2000,
    ):
        self.monitor = GeofenceMonitor(zone)
        self.records = records
        self.timer = DwellTimer(scheduler, self._on_candidate, tick_sec=tick_sec, grace_ms=grace_ms)
        self.last_distance_m: float | None = None
        self.halted: str | None = None
        # optional observer of finished stays, called before reconciliation
        self.on_candidate: Callable[[int], None] | None = None
        self._pending: set[asyncio.Task] = set()

    def feed(self, point: Coordinate) -> DwellEvent:
        if self.halted is not None:
            raise PermissionDenied(self.halted)
        inside, self.last_distance_m = self.monitor.check(point)
        self.timer.update(inside)
        return self.timer.snapshot()

    async def run(self, provider: AsyncIterator[Coordinate]) -> None:
        """Consume samples in arrival order until the provider ends or access is refused."""
        try:
            async for point in provider:
                self.feed(point)
        except PermissionDenied as e:
            self.deny(e.message)

    def deny(self, message: str | None = None) -> str:
        self.halted = message or PermissionDenied().message
        self.timer.stop()
        logger.error("Location permission denied, monitoring stopped: %s", self.halted)
        return self.halted

    def _on_candidate(self, seconds: int) -> None:
        if self.on_candidate is not None:
            self.on_candidate(seconds)
        task = asyncio.get_running_loop().create_task(self.records.reconcile(seconds))
        self._pending.add(task)
        task.add_done_callback(self._reconciled)

    def _reconciled(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Reconciliation failed", exc_info=task.exception())

    async def drain(self) -> None:
        """Wait for every reconciliation started so far."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def stop(self) -> None:
        self.timer.stop()
