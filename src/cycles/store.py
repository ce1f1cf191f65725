"""Record store collaborators for the prediction service.

Every store implements the ``CycleStore`` contract:

* ``get_recent_cycles(user_id, limit)`` returns the newest ``limit`` cycles,
  sorted by start date descending.
* ``add_cycle(user_id, record)`` records a new cycle; start dates are unique
  per user.
* ``save_prediction(user_id, prediction)`` overwrites any prior prediction.
* ``get_prediction(user_id)`` returns the stored prediction or None.

Stores are always passed in explicitly (see ``src.dependencies``); there is
no module-level database instance.  Alternate data sources (sample data used
when the primary store is down) are alternate implementations of the same
contract, selected by ``FallbackCycleStore``.
"""

from __future__ import annotations

import logging
import random
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import date, timedelta
from uuid import uuid4

import asyncpg

from src.cycles.models import CycleRecord, PredictionSet

logger = logging.getLogger("femcare.cycles.store")

DEFAULT_CYCLE_LIMIT = 12


class StoreUnavailableError(RuntimeError):
    """Raised when a store cannot be reached or fails mid-operation."""


class CycleStore(ABC):
    """Abstract read/write contract consumed by the prediction service."""

    #: Short slug used in logs and the health endpoint.
    name: str = "abstract"

    @abstractmethod
    async def get_recent_cycles(
        self, user_id: str, limit: int = DEFAULT_CYCLE_LIMIT
    ) -> list[CycleRecord]:
        """Fetch the most recent cycles for a user.

        Args:
            user_id: Owner of the cycles.
            limit:   Maximum number of records to return.

        Returns:
            Cycle records sorted by start date, newest first.  Fewer than
            ``limit`` when the user has less history.

        Raises:
            StoreUnavailableError: If the backing store cannot be read.
        """

    @abstractmethod
    async def add_cycle(self, user_id: str, record: CycleRecord) -> CycleRecord:
        """Record a new cycle for a user.

        Returns:
            The stored record, with ``cycle_id`` and ``user_id`` filled in.

        Raises:
            ValueError:            If the user already has a cycle starting that day.
            StoreUnavailableError: If the backing store cannot be written.
        """

    @abstractmethod
    async def save_prediction(self, user_id: str, prediction: PredictionSet) -> None:
        """Persist the latest prediction for a user, replacing any prior one.

        Raises:
            StoreUnavailableError: If the backing store cannot be written.
        """

    @abstractmethod
    async def get_prediction(self, user_id: str) -> PredictionSet | None:
        """Return the stored prediction for a user, or None."""


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------


class InMemoryCycleStore(CycleStore):
    """Dict-backed store used in tests and when no database is configured."""

    name = "memory"

    def __init__(self) -> None:
        self._cycles: dict[str, list[CycleRecord]] = {}
        self._predictions: dict[str, PredictionSet] = {}

    def insert_cycle(self, user_id: str, record: CycleRecord) -> CycleRecord:
        """Insert a cycle, keeping the per-user list sorted newest first.

        Synchronous so fixtures can seed history without an event loop.

        Raises:
            ValueError: If the user already has a cycle starting that day.
        """
        cycles = self._cycles.setdefault(user_id, [])
        if any(c.start_date == record.start_date for c in cycles):
            raise ValueError(
                f"User {user_id} already has a cycle starting {record.start_date.isoformat()}"
            )
        stored = replace(
            record,
            user_id=user_id,
            cycle_id=record.cycle_id or uuid4(),
        )
        cycles.append(stored)
        cycles.sort(key=lambda c: c.start_date, reverse=True)
        return stored

    async def get_recent_cycles(
        self, user_id: str, limit: int = DEFAULT_CYCLE_LIMIT
    ) -> list[CycleRecord]:
        return list(self._cycles.get(user_id, [])[:limit])

    async def add_cycle(self, user_id: str, record: CycleRecord) -> CycleRecord:
        return self.insert_cycle(user_id, record)

    async def save_prediction(self, user_id: str, prediction: PredictionSet) -> None:
        self._predictions[user_id] = prediction

    async def get_prediction(self, user_id: str) -> PredictionSet | None:
        return self._predictions.get(user_id)


# ---------------------------------------------------------------------------
# Postgres store
# ---------------------------------------------------------------------------


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS cycles (
    cycle_id      UUID PRIMARY KEY,
    user_id       TEXT NOT NULL,
    start_date    DATE NOT NULL,
    end_date      DATE,
    actual_length INTEGER,
    created_at    TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (user_id, start_date)
);

CREATE TABLE IF NOT EXISTS predictions (
    user_id                   TEXT PRIMARY KEY,
    next_period_date          DATE NOT NULL,
    next_period_confidence    DOUBLE PRECISION NOT NULL,
    next_ovulation_date       DATE NOT NULL,
    next_ovulation_confidence DOUBLE PRECISION NOT NULL,
    fertile_window_start      DATE NOT NULL,
    fertile_window_end        DATE NOT NULL,
    pms_start_date            DATE NOT NULL,
    average_cycle_length_days DOUBLE PRECISION NOT NULL,
    cycle_variability_ratio   DOUBLE PRECISION NOT NULL,
    computed_at               TIMESTAMPTZ NOT NULL
);
"""

_STORE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


def _row_to_cycle(row) -> CycleRecord:
    return CycleRecord(
        start_date=row["start_date"],
        actual_length=row["actual_length"],
        end_date=row["end_date"],
        cycle_id=row["cycle_id"],
        user_id=row["user_id"],
    )


class PostgresCycleStore(CycleStore):
    """asyncpg-backed store.  The pool is owned by the caller (app lifespan)."""

    name = "postgres"

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def ensure_schema(self) -> None:
        """Create the cycles / predictions tables if they do not exist."""
        try:
            async with self._pool.acquire() as conn:
                await conn.execute(SCHEMA_SQL)
        except _STORE_ERRORS as exc:
            raise StoreUnavailableError(f"Could not create schema: {exc}") from exc

    async def get_recent_cycles(
        self, user_id: str, limit: int = DEFAULT_CYCLE_LIMIT
    ) -> list[CycleRecord]:
        try:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT cycle_id, user_id, start_date, end_date, actual_length
                    FROM cycles
                    WHERE user_id = $1
                    ORDER BY start_date DESC
                    LIMIT $2
                    """,
                    user_id,
                    limit,
                )
        except _STORE_ERRORS as exc:
            raise StoreUnavailableError(f"Failed to fetch cycles: {exc}") from exc
        return [_row_to_cycle(r) for r in rows]

    async def add_cycle(self, user_id: str, record: CycleRecord) -> CycleRecord:
        try:
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    INSERT INTO cycles (cycle_id, user_id, start_date, end_date, actual_length)
                    VALUES ($1, $2, $3, $4, $5)
                    RETURNING cycle_id, user_id, start_date, end_date, actual_length
                    """,
                    record.cycle_id or uuid4(),
                    user_id,
                    record.start_date,
                    record.end_date,
                    record.actual_length,
                )
        except asyncpg.UniqueViolationError as exc:
            raise ValueError(
                f"User {user_id} already has a cycle starting {record.start_date.isoformat()}"
            ) from exc
        except _STORE_ERRORS as exc:
            raise StoreUnavailableError(f"Failed to add cycle: {exc}") from exc
        return _row_to_cycle(row)

    async def save_prediction(self, user_id: str, prediction: PredictionSet) -> None:
        try:
            async with self._pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO predictions (
                        user_id, next_period_date, next_period_confidence,
                        next_ovulation_date, next_ovulation_confidence,
                        fertile_window_start, fertile_window_end, pms_start_date,
                        average_cycle_length_days, cycle_variability_ratio, computed_at
                    )
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
                    ON CONFLICT (user_id) DO UPDATE SET
                        next_period_date = EXCLUDED.next_period_date,
                        next_period_confidence = EXCLUDED.next_period_confidence,
                        next_ovulation_date = EXCLUDED.next_ovulation_date,
                        next_ovulation_confidence = EXCLUDED.next_ovulation_confidence,
                        fertile_window_start = EXCLUDED.fertile_window_start,
                        fertile_window_end = EXCLUDED.fertile_window_end,
                        pms_start_date = EXCLUDED.pms_start_date,
                        average_cycle_length_days = EXCLUDED.average_cycle_length_days,
                        cycle_variability_ratio = EXCLUDED.cycle_variability_ratio,
                        computed_at = EXCLUDED.computed_at
                    """,
                    user_id,
                    prediction.next_period_date,
                    prediction.next_period_confidence,
                    prediction.next_ovulation_date,
                    prediction.next_ovulation_confidence,
                    prediction.fertile_window_start,
                    prediction.fertile_window_end,
                    prediction.pms_start_date,
                    prediction.average_cycle_length_days,
                    prediction.cycle_variability_ratio,
                    prediction.computed_at,
                )
        except _STORE_ERRORS as exc:
            raise StoreUnavailableError(f"Failed to save prediction: {exc}") from exc

    async def get_prediction(self, user_id: str) -> PredictionSet | None:
        try:
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(
                    "SELECT * FROM predictions WHERE user_id = $1", user_id
                )
        except _STORE_ERRORS as exc:
            raise StoreUnavailableError(f"Failed to fetch prediction: {exc}") from exc
        if row is None:
            return None
        return PredictionSet(
            next_period_date=row["next_period_date"],
            next_period_confidence=row["next_period_confidence"],
            next_ovulation_date=row["next_ovulation_date"],
            next_ovulation_confidence=row["next_ovulation_confidence"],
            fertile_window_start=row["fertile_window_start"],
            fertile_window_end=row["fertile_window_end"],
            pms_start_date=row["pms_start_date"],
            average_cycle_length_days=row["average_cycle_length_days"],
            cycle_variability_ratio=row["cycle_variability_ratio"],
            computed_at=row["computed_at"],
            user_id=row["user_id"],
        )


# ---------------------------------------------------------------------------
# Sample data + fallback
# ---------------------------------------------------------------------------


class SampleCycleStore(InMemoryCycleStore):
    """Sample history served when the primary store is unavailable.

    Every user gets the same deterministic history: an ongoing cycle that
    started a few days before ``today`` and ``history`` completed cycles of
    26–30 days before it.  The history is regenerated per read rather than
    stored per user id; only cycles written through ``add_cycle`` are kept.
    """

    name = "sample"

    def __init__(self, today: date | None = None, history: int = 5, seed: int = 28) -> None:
        super().__init__()
        self._today = today
        self._history = history
        self._seed = seed

    def _generate(self) -> list[CycleRecord]:
        rng = random.Random(self._seed)
        today = self._today or date.today()
        start = today - timedelta(days=rng.randint(0, 20))
        records = [CycleRecord(start_date=start, end_date=start + timedelta(days=4))]
        for _ in range(self._history):
            length = rng.randint(26, 30)
            start = start - timedelta(days=length)
            records.append(
                CycleRecord(
                    start_date=start,
                    actual_length=length,
                    end_date=start + timedelta(days=rng.randint(4, 5)),
                )
            )
        return records

    async def get_recent_cycles(
        self, user_id: str, limit: int = DEFAULT_CYCLE_LIMIT
    ) -> list[CycleRecord]:
        if user_id in self._cycles:
            return await super().get_recent_cycles(user_id, limit)
        return [replace(r, user_id=user_id) for r in self._generate()[:limit]]


class FallbackCycleStore(CycleStore):
    """Serve from ``primary``; switch to ``fallback`` when it is unavailable."""

    name = "fallback"

    def __init__(self, primary: CycleStore, fallback: CycleStore) -> None:
        self._primary = primary
        self._fallback = fallback

    async def get_recent_cycles(
        self, user_id: str, limit: int = DEFAULT_CYCLE_LIMIT
    ) -> list[CycleRecord]:
        try:
            return await self._primary.get_recent_cycles(user_id, limit)
        except StoreUnavailableError as exc:
            logger.warning(
                "Primary store %s unavailable (%s); serving cycles from %s",
                self._primary.name,
                exc,
                self._fallback.name,
            )
            return await self._fallback.get_recent_cycles(user_id, limit)

    async def add_cycle(self, user_id: str, record: CycleRecord) -> CycleRecord:
        # Writes never go to the fallback source.
        return await self._primary.add_cycle(user_id, record)

    async def save_prediction(self, user_id: str, prediction: PredictionSet) -> None:
        try:
            await self._primary.save_prediction(user_id, prediction)
        except StoreUnavailableError as exc:
            logger.warning(
                "Primary store %s unavailable (%s); saving prediction to %s",
                self._primary.name,
                exc,
                self._fallback.name,
            )
            await self._fallback.save_prediction(user_id, prediction)

    async def get_prediction(self, user_id: str) -> PredictionSet | None:
        try:
            return await self._primary.get_prediction(user_id)
        except StoreUnavailableError as exc:
            logger.warning(
                "Primary store %s unavailable (%s); reading prediction from %s",
                self._primary.name,
                exc,
                self._fallback.name,
            )
            return await self._fallback.get_prediction(user_id)
