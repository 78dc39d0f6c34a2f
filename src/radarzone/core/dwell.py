# src/radarzone/core/dwell.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from .scheduler import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

TICK_SEC = 1.0
GRACE_MS = 2000


class DwellState(str, Enum):
    OUTSIDE = "outside"
    INSIDE = "inside"
    GRACE_PERIOD = "grace_period"


@dataclass(frozen=True)
class DwellEvent:
    is_in_circle: bool
    accumulated_seconds: int
    state: DwellState


class DwellTimer:
    """
    Continuous time spent inside the zone, with a grace period on exit.

      OUTSIDE --inside-->  INSIDE        tick every tick_sec, +1 s each
      INSIDE  --outside--> GRACE_PERIOD  tick stopped, reset timer armed
      GRACE   --inside-->  INSIDE        reset timer cancelled, seconds kept
      GRACE   --timer-->   OUTSIDE       candidate handed off if > 0, then 0

    Every tick and every transition is published to subscribers.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        on_candidate: Callable[[int], None] | None = None,
        tick_sec: float = TICK_SEC,
        grace_ms: int = GRACE_MS,
    ):
        self._scheduler = scheduler
        self._on_candidate = on_candidate
        self.tick_sec = tick_sec
        self.grace_ms = grace_ms

        self.state = DwellState.OUTSIDE
        self.accumulated_seconds = 0
        self._tick: TimerHandle | None = None
        self._pending_reset: TimerHandle | None = None
        self._subscribers: list[Callable[[DwellEvent], None]] = []

    @property
    def is_in_circle(self) -> bool:
        return self.state is DwellState.INSIDE

    def snapshot(self) -> DwellEvent:
        return DwellEvent(self.is_in_circle, self.accumulated_seconds, self.state)

    def subscribe(self, callback: Callable[[DwellEvent], None]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def update(self, inside: bool) -> None:
        """Feed one inside/outside signal from the geofence monitor."""
        if inside:
            if self.state is DwellState.OUTSIDE:
                self._enter()
            elif self.state is DwellState.GRACE_PERIOD:
                self._cancel_reset()
                self._enter()
        elif self.state is DwellState.INSIDE:
            self._stop_tick()
            self.state = DwellState.GRACE_PERIOD
            self._pending_reset = self._scheduler.call_later(self.grace_ms / 1000.0, self._grace_elapsed)
            self._emit()

    def stop(self) -> None:
        """Drop timers and the interrupted stay; no candidate is produced."""
        self._stop_tick()
        self._cancel_reset()
        if self.state is DwellState.OUTSIDE and self.accumulated_seconds == 0:
            return
        self.state = DwellState.OUTSIDE
        self.accumulated_seconds = 0
        self._emit()

    # -------------------- internals --------------------

    def _enter(self) -> None:
        self.state = DwellState.INSIDE
        self._tick = self._scheduler.call_every(self.tick_sec, self._on_tick)
        self._emit()

    def _on_tick(self) -> None:
        if self.state is not DwellState.INSIDE:
            return
        self.accumulated_seconds += 1
        self._emit()

    def _grace_elapsed(self) -> None:
        self._pending_reset = None
        seconds = self.accumulated_seconds
        self.accumulated_seconds = 0
        self.state = DwellState.OUTSIDE
        if seconds > 0 and self._on_candidate is not None:
            logger.debug("Stay finished after %ss, handing off as candidate", seconds)
            self._on_candidate(seconds)
        self._emit()

    def _stop_tick(self) -> None:
        if self._tick is not None:
            self._tick.cancel()
            self._tick = None

    def _cancel_reset(self) -> None:
        if self._pending_reset is not None:
            self._pending_reset.cancel()
            self._pending_reset = None

    def _emit(self) -> None:
        event = self.snapshot()
        for cb in list(self._subscribers):
            cb(event)
