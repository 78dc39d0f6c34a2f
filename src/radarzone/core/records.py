from __future__ import annotations

import asyncio
import logging

from .errors import StorageError
from .publisher import RecordPublisher
from .storage import BEST_TIME_KEY, KeyValueStore

logger = logging.getLogger(__name__)


class RecordStore:
    """
    Keeps the best dwell time, persisted under `bestTime`.

    "Best" is the smallest value seen: a candidate replaces the record only
    when no record exists or it is strictly smaller, so the record never grows.
    """

    def __init__(self, store: KeyValueStore, publisher: RecordPublisher | None = None):
        self.store = store
        self.publisher = publisher
        self.best_seconds: int | None = None
        self._lock = asyncio.Lock()

    def load(self) -> int | None:
        try:
            raw = self.store.get(BEST_TIME_KEY)
        except StorageError as e:
            logger.error("Could not load best time: %s", e)
            raw = None
        self.best_seconds = None
        if raw is not None:
            # only plain decimal strings are ever written
            if raw.isascii() and raw.isdigit() and int(raw) > 0:
                self.best_seconds = int(raw)
            else:
                logger.warning("Ignoring unusable stored best time %r", raw)
        return self.best_seconds

    async def reconcile(self, candidate_seconds: int) -> bool:
        """Returns True when the candidate became the new record."""
        if candidate_seconds <= 0:
            raise ValueError(f"candidate must be positive, got {candidate_seconds}")

        async with self._lock:
            if self.best_seconds is not None and candidate_seconds >= self.best_seconds:
                logger.debug("Candidate %ss does not beat record %ss", candidate_seconds, self.best_seconds)
                return False

            previous = self.best_seconds
            self.best_seconds = candidate_seconds
            try:
                self.store.set(BEST_TIME_KEY, str(candidate_seconds))
            except StorageError as e:
                logger.error("Could not persist best time %ss: %s", candidate_seconds, e)
            logger.info("New best time %ss (was %s)", candidate_seconds, previous)

            if self.publisher is not None:
                await self.publisher.publish(candidate_seconds)
            return True

    def clear(self) -> None:
        try:
            self.store.remove(BEST_TIME_KEY)
        except StorageError as e:
            logger.error("Could not remove best time: %s", e)
        self.best_seconds = None
