from __future__ import annotations

import asyncio
import heapq
import itertools
from typing import Callable, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...

    def cancelled(self) -> bool: ...


class Scheduler(Protocol):
    """Where DwellTimer gets its 1 s tick and its grace-period reset from."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...

    def call_every(self, interval: float, callback: Callable[[], None]) -> TimerHandle: ...


class _PeriodicHandle:
    """Re-arms a one-shot loop timer after every run until cancelled."""

    def __init__(self, loop: asyncio.AbstractEventLoop, interval: float, callback: Callable[[], None]):
        self._loop = loop
        self._interval = interval
        self._callback = callback
        self._cancelled = False
        self._next = loop.call_later(interval, self._run)

    def _run(self) -> None:
        if self._cancelled:
            return
        self._next = self._loop.call_later(self._interval, self._run)
        self._callback()

    def cancel(self) -> None:
        self._cancelled = True
        self._next.cancel()

    def cancelled(self) -> bool:
        return self._cancelled


class AsyncioScheduler:
    """Timers on the running event loop; callbacks run on the loop thread."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return self.loop.call_later(delay, callback)

    def call_every(self, interval: float, callback: Callable[[], None]) -> TimerHandle:
        return _PeriodicHandle(self.loop, interval, callback)


class _VirtualHandle:
    def __init__(self, interval: float | None = None):
        self.interval = interval
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled


class VirtualScheduler:
    """
    Scheduler on a manual clock: nothing fires until advance() moves time.
    Used for replaying recorded tracks and in tests.
    """

    def __init__(self, start: float = 0.0):
        self.now = start
        self._queue: list[tuple[float, int, _VirtualHandle, Callable[[], None]]] = []
        self._seq = itertools.count()

    def _push(self, due: float, handle: _VirtualHandle, callback: Callable[[], None]) -> None:
        heapq.heappush(self._queue, (due, next(self._seq), handle, callback))

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        h = _VirtualHandle()
        self._push(self.now + delay, h, callback)
        return h

    def call_every(self, interval: float, callback: Callable[[], None]) -> TimerHandle:
        h = _VirtualHandle(interval)
        self._push(self.now + interval, h, callback)
        return h

    def advance(self, seconds: float) -> None:
        """Run every callback due up to now + seconds (inclusive), in due order."""
        target = self.now + seconds
        while self._queue and self._queue[0][0] <= target:
            due, _, handle, callback = heapq.heappop(self._queue)
            if handle.cancelled():
                continue
            self.now = due
            if handle.interval is not None:
                self._push(due + handle.interval, handle, callback)
            callback()
        self.now = target

    def advance_to(self, when: float) -> None:
        if when > self.now:
            self.advance(when - self.now)

    def pending(self) -> int:
        return sum(1 for _, _, h, _ in self._queue if not h.cancelled())
