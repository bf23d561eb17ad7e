"""In-memory cache of each user's trip list, with a fixed TTL."""

import logging
import time
from dataclasses import dataclass
from typing import Callable

from app.schemas.trip import Trip

logger = logging.getLogger(__name__)

TTL_TRIP_LIST = 60  # 1 minute


@dataclass
class CacheEntry:
    trips: list[Trip]
    fetched_at: float


class TripCache:
    """Per-subject trip lists. Unbounded; entries leave on invalidate or expiry."""

    def __init__(self, ttl_seconds: float = TTL_TRIP_LIST, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def get(self, subject_id: str) -> list[Trip] | None:
        """Return the cached list, or None on miss or once the TTL has passed."""
        entry = self._entries.get(subject_id)
        if entry is None:
            return None
        if self._clock() - entry.fetched_at >= self.ttl_seconds:
            del self._entries[subject_id]
            return None
        logger.debug(f"Using cached trips for {subject_id}")
        return entry.trips

    def put(self, subject_id: str, trips: list[Trip]):
        self._entries[subject_id] = CacheEntry(trips=trips, fetched_at=self._clock())

    def invalidate(self, subject_id: str):
        self._entries.pop(subject_id, None)

    def clear(self):
        self._entries.clear()

    def __contains__(self, subject_id: str) -> bool:
        return subject_id in self._entries
