"""Prediction orchestration: fetch → statistics → predict → persist.

``PredictionService`` is the only place the pure engine meets I/O.  It owns no
state of its own; the store and config are injected.  Engine result values
are translated into exceptions here so API handlers can map them to HTTP
responses.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime

from src.cycles.analytics import (
    CycleSummary,
    cycle_day,
    cycle_status,
    days_until,
    summarize_cycles,
)
from src.cycles.config_loader import DEFAULT_CONFIG, PredictionConfig
from src.cycles.cycle_stats import compute_statistics
from src.cycles.models import (
    CycleRecord,
    CycleStatistics,
    InsufficientData,
    InvalidParameter,
    PredictionSet,
)
from src.cycles.predictor import predict
from src.cycles.store import CycleStore

logger = logging.getLogger("femcare.cycles.service")


class PredictionError(Exception):
    """Base class for prediction failures surfaced to callers."""


class PredictionUnavailableError(PredictionError):
    """Not enough cycle history to predict.  Ask the user to log more cycles."""

    def __init__(self, result: InsufficientData) -> None:
        super().__init__(result.reason)
        self.result = result


class InvalidParameterError(PredictionError, ValueError):
    """A caller passed a parameter with no domain meaning."""

    def __init__(self, result: InvalidParameter) -> None:
        super().__init__(f"{result.parameter}: {result.reason}")
        self.result = result


class PredictionService:
    """Compute and persist predictions for a user.

    Usage::

        service = PredictionService(store, config)
        prediction = await service.calculate("user-1", luteal_phase_length_days=13)
    """

    def __init__(self, store: CycleStore, config: PredictionConfig | None = None) -> None:
        self._store = store
        self._config = config or DEFAULT_CONFIG

    @property
    def store(self) -> CycleStore:
        return self._store

    @property
    def config(self) -> PredictionConfig:
        return self._config

    async def add_cycle(
        self,
        user_id: str,
        start_date: date,
        actual_length: int | None = None,
        end_date: date | None = None,
    ) -> CycleRecord:
        """Record a cycle for a user.

        Raises:
            ValueError: The user already has a cycle starting on ``start_date``.
        """
        stored = await self._store.add_cycle(
            user_id,
            CycleRecord(start_date=start_date, actual_length=actual_length, end_date=end_date),
        )
        logger.info(
            "Recorded cycle for user=%s starting %s (length=%s)",
            user_id,
            start_date.isoformat(),
            actual_length,
        )
        return stored

    async def statistics(self, user_id: str) -> CycleStatistics:
        """Return cycle statistics for a user.

        Raises:
            PredictionUnavailableError: With fewer than 2 qualifying cycles.
        """
        cycles = await self._store.get_recent_cycles(user_id, self._config.window_size)
        stats = compute_statistics(cycles, self._config)
        if isinstance(stats, InsufficientData):
            raise PredictionUnavailableError(stats)
        return stats

    async def calculate(
        self,
        user_id: str,
        luteal_phase_length_days: int | None = None,
        now: datetime | None = None,
    ) -> PredictionSet:
        """Compute a fresh prediction and store it, replacing the previous one.

        Args:
            user_id:                  Owner of the cycles.
            luteal_phase_length_days: From user settings; config default if None.
            now:                      Override for ``computed_at``.

        Returns:
            The stored PredictionSet.

        Raises:
            InvalidParameterError:      Luteal length is not a positive integer.
            PredictionUnavailableError: Not enough qualifying cycles.
        """
        luteal = (
            self._config.default_luteal_phase_days
            if luteal_phase_length_days is None
            else luteal_phase_length_days
        )

        cycles = await self._store.get_recent_cycles(user_id, self._config.window_size)
        stats = compute_statistics(cycles, self._config)
        result = predict(cycles, stats, luteal, config=self._config, now=now)

        if isinstance(result, InvalidParameter):
            logger.warning(
                "Rejected prediction request for user=%s: %s=%r (%s)",
                user_id,
                result.parameter,
                result.value,
                result.reason,
            )
            raise InvalidParameterError(result)
        if isinstance(result, InsufficientData):
            logger.warning(
                "Insufficient data for user=%s: %s", user_id, result.reason
            )
            raise PredictionUnavailableError(result)

        prediction = replace(result, user_id=user_id)
        await self._store.save_prediction(user_id, prediction)
        logger.info(
            "Prediction for user=%s: next period %s (confidence %.2f, %d cycles)",
            user_id,
            prediction.next_period_date.isoformat(),
            prediction.next_period_confidence,
            len(cycles),
        )
        return prediction

    async def latest(self, user_id: str) -> PredictionSet | None:
        """Return the stored prediction for a user, or None."""
        return await self._store.get_prediction(user_id)

    async def summary(self, user_id: str) -> CycleSummary | None:
        """Return the display summary over the user's recent cycles."""
        cycles = await self._store.get_recent_cycles(user_id, self._config.window_size)
        return summarize_cycles(cycles, self._config)

    async def status(
        self, user_id: str, today: date | None = None, period_length_days: int = 5
    ) -> dict:
        """Return today's cycle day, status badge and countdown to next period."""
        today = today or date.today()
        cycles = await self._store.get_recent_cycles(user_id, 1)
        current = cycles[0] if cycles else None
        prediction = await self._store.get_prediction(user_id)

        return {
            "status": cycle_status(current, prediction, today, period_length_days),
            "cycle_day": cycle_day(current.start_date, today) if current else None,
            "days_until_next_period": (
                days_until(prediction.next_period_date, today) if prediction else None
            ),
        }
