"""Canonical data models for the FemCare cycle prediction engine.

These types are the single contract between the record store, the pure
statistics / prediction core, and the API layer.  The core never mutates them:
every prediction run returns a fresh ``PredictionSet``.

Failures of the core are *values*, not exceptions.  ``compute_statistics`` and
``predict`` return ``InsufficientData`` or ``InvalidParameter`` so callers can
branch on the outcome (show a result vs. ask for more history vs. fix the call).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from uuid import UUID


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CycleRecord:
    """A single recorded menstrual cycle.

    Attributes:
        start_date:    First day of the period that opened this cycle.  Unique
                       per user.
        actual_length: Days from this cycle's start to the next cycle's start,
                       or None while the cycle is still ongoing.
        end_date:      Last day of bleeding (optional, used for display only).
        cycle_id:      Store identifier, when the record came from a store.
        user_id:       Owning user, when known.
    """

    start_date: date
    actual_length: int | None = None
    end_date: date | None = None
    cycle_id: UUID | None = None
    user_id: str | None = None

    @property
    def is_complete(self) -> bool:
        """True if the cycle has a usable (positive) length."""
        return self.actual_length is not None and self.actual_length > 0


# ---------------------------------------------------------------------------
# Derived
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CycleStatistics:
    """Aggregate cycle-length statistics over the trailing window.

    Attributes:
        average_length_days:     Mean of qualifying cycle lengths (unrounded).
        standard_deviation_days: Population standard deviation (N divisor).
        variability_ratio:       standard_deviation_days / average_length_days.
        sample_size:             Number of qualifying cycles used.
    """

    average_length_days: float
    standard_deviation_days: float
    variability_ratio: float
    sample_size: int


@dataclass(frozen=True)
class PredictionSet:
    """Forward-looking estimates for a user's next cycle.

    Attributes:
        next_period_date:          Predicted first day of the next period.
        next_period_confidence:    0.0–0.95.
        next_ovulation_date:       Predicted ovulation day.
        next_ovulation_confidence: Fixed at 0.7.
        fertile_window_start:      First fertile day (inclusive).
        fertile_window_end:        Last fertile day (inclusive, = ovulation).
        pms_start_date:            Expected PMS onset.
        average_cycle_length_days: Copied from CycleStatistics for display.
        cycle_variability_ratio:   Copied from CycleStatistics for display.
        computed_at:               UTC timestamp of generation.
        user_id:                   Owner, set by the service before persisting.
    """

    next_period_date: date
    next_period_confidence: float
    next_ovulation_date: date
    next_ovulation_confidence: float
    fertile_window_start: date
    fertile_window_end: date
    pms_start_date: date
    average_cycle_length_days: float
    cycle_variability_ratio: float
    computed_at: datetime
    user_id: str | None = None


# ---------------------------------------------------------------------------
# Failure values
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InsufficientData:
    """Fewer than the minimum number of qualifying cycles were available.

    Recoverable: the user needs to log more history.
    """

    reason: str
    qualifying_cycles: int = 0


@dataclass(frozen=True)
class InvalidParameter:
    """A caller-supplied parameter has no domain meaning (caller bug)."""

    parameter: str
    value: object
    reason: str
