"""Freshness-window cache around a ``CycleStore`` read path.

Wraps any store and remembers ``get_recent_cycles`` results for ``ttl_seconds``
(default 5 minutes).  The prediction core never sees the cache; tests inject a
fake clock instead of sleeping.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from src.cycles.models import CycleRecord, PredictionSet
from src.cycles.store import DEFAULT_CYCLE_LIMIT, CycleStore

logger = logging.getLogger("femcare.cycles.cache")

DEFAULT_TTL_SECONDS = 300.0


class CachedCycleStore(CycleStore):
    """Cache recent-cycle reads; a cycle write drops that user's entries.

    Args:
        inner:       The store being wrapped.
        ttl_seconds: How long a fetched cycle list stays fresh.
        clock:       Monotonic time source in seconds.
    """

    name = "cached"

    def __init__(
        self,
        inner: CycleStore,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds < 0:
            raise ValueError(f"ttl_seconds must be >= 0, got {ttl_seconds}")
        self._inner = inner
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[tuple[str, int], tuple[float, list[CycleRecord]]] = {}

    @property
    def inner(self) -> CycleStore:
        return self._inner

    async def get_recent_cycles(
        self, user_id: str, limit: int = DEFAULT_CYCLE_LIMIT
    ) -> list[CycleRecord]:
        key = (user_id, limit)
        now = self._clock()
        entry = self._entries.get(key)
        if entry is not None and now - entry[0] < self._ttl:
            logger.debug("Cycle cache hit for user=%s limit=%d", user_id, limit)
            return list(entry[1])

        cycles = await self._inner.get_recent_cycles(user_id, limit)
        self._prune(now)
        # Empty results are not cached so newly logged history shows up at once.
        if cycles:
            self._entries[key] = (now, list(cycles))
        return cycles

    def _prune(self, now: float) -> None:
        """Drop entries older than the freshness window."""
        expired = [
            key for key, (stored_at, _) in self._entries.items() if now - stored_at >= self._ttl
        ]
        for key in expired:
            del self._entries[key]

    def invalidate(self, user_id: str | None = None) -> None:
        """Drop cached entries for one user, or all users when None."""
        if user_id is None:
            self._entries.clear()
            return
        for key in [k for k in self._entries if k[0] == user_id]:
            del self._entries[key]

    async def add_cycle(self, user_id: str, record: CycleRecord) -> CycleRecord:
        stored = await self._inner.add_cycle(user_id, record)
        self.invalidate(user_id)
        return stored

    async def save_prediction(self, user_id: str, prediction: PredictionSet) -> None:
        await self._inner.save_prediction(user_id, prediction)

    async def get_prediction(self, user_id: str) -> PredictionSet | None:
        return await self._inner.get_prediction(user_id)
