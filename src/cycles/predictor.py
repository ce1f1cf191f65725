"""Cycle prediction engine.

Combines cycle statistics with the newest cycle's start date to predict:
- Next period start date (+ confidence)
- Next ovulation date (+ confidence)
- Fertile window
- PMS onset

Ovulation is dated backward from the *predicted* next period using the luteal
phase length, which is far more stable between cycles than the follicular
phase.  All dates are whole calendar days.

The engine is pure: no I/O, no logging, no global configuration.  Failures are
returned as ``InsufficientData`` / ``InvalidParameter`` values and a
``PredictionSet`` is either complete or not returned at all.
"""

from __future__ import annotations

import math
from datetime import date, datetime, timedelta, timezone
from typing import Sequence

from src.cycles.config_loader import DEFAULT_CONFIG, PredictionConfig
from src.cycles.cycle_stats import cycles_in_window, qualifying_lengths
from src.cycles.models import (
    CycleRecord,
    CycleStatistics,
    InsufficientData,
    InvalidParameter,
    PredictionSet,
)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves upward.

    Python's ``round`` uses banker's rounding (28.5 → 28); cycle averages
    round 28.5 up to 29.
    """
    return math.floor(value + 0.5)


def period_confidence(
    variability_ratio: float,
    cycles_considered: int,
    config: PredictionConfig = DEFAULT_CONFIG,
) -> float:
    """Confidence in the next-period date.

    Three additive terms: a constant base, a regularity term that shrinks
    linearly as variability grows (floored at 0), and a data-volume term that
    grows with history (capped).  The total is clamped to
    ``[0, config.max_period_confidence]``.

    Args:
        variability_ratio: Standard deviation / mean cycle length.
        cycles_considered: Number of cycle records inside the window.
        config:            Prediction config (weights and ceiling).

    Returns:
        Confidence between 0.0 and ``config.max_period_confidence``.
    """
    regularity = max(0.0, config.regularity_ceiling - variability_ratio)
    data_volume = min(config.max_data_bonus, cycles_considered * config.per_cycle_weight)
    confidence = config.base_confidence + regularity + data_volume
    return max(0.0, min(config.max_period_confidence, confidence))


def _validate_luteal_length(value: object) -> InvalidParameter | None:
    if isinstance(value, bool) or not isinstance(value, int):
        return InvalidParameter(
            parameter="luteal_phase_length_days",
            value=value,
            reason="must be a positive whole number of days",
        )
    if value <= 0:
        return InvalidParameter(
            parameter="luteal_phase_length_days",
            value=value,
            reason=f"must be positive, got {value}",
        )
    return None


def predict(
    cycles: Sequence[CycleRecord],
    statistics: CycleStatistics | InsufficientData,
    luteal_phase_length_days: int = 14,
    config: PredictionConfig | None = None,
    now: datetime | None = None,
) -> PredictionSet | InsufficientData | InvalidParameter:
    """Generate next-cycle predictions.

    Args:
        cycles:                   Cycle records sorted newest first; index 0
                                  anchors the prediction.
        statistics:               Output of ``compute_statistics`` for the same
                                  cycles.
        luteal_phase_length_days: Days between ovulation and the next period.
        config:                   Prediction config; defaults to the built-in
                                  constants.
        now:                      Timestamp recorded as ``computed_at``
                                  (defaults to the current UTC time).

    Returns:
        A complete PredictionSet, InvalidParameter when the luteal length is
        not a positive integer or a predicted date falls outside what
        ``datetime.date`` can represent, or InsufficientData when fewer than
        ``config.min_cycles`` qualifying cycles are available.
    """
    cfg = config or DEFAULT_CONFIG

    invalid = _validate_luteal_length(luteal_phase_length_days)
    if invalid is not None:
        return invalid

    if isinstance(statistics, InsufficientData):
        return statistics

    qualifying = len(qualifying_lengths(cycles, cfg))
    if not cycles or qualifying < cfg.min_cycles:
        return InsufficientData(
            reason=(
                f"Need at least {cfg.min_cycles} completed cycles, "
                f"found {qualifying}"
            ),
            qualifying_cycles=qualifying,
        )

    latest_start: date = cycles[0].start_date

    try:
        next_period = latest_start + timedelta(
            days=round_half_up(statistics.average_length_days)
        )
    except OverflowError:
        return InvalidParameter(
            parameter="cycles",
            value=statistics.average_length_days,
            reason="average cycle length puts the next period outside the calendar range",
        )
    confidence = period_confidence(
        statistics.variability_ratio,
        len(cycles_in_window(cycles, cfg)),
        cfg,
    )

    try:
        next_ovulation = next_period - timedelta(days=luteal_phase_length_days)
        fertile_start = next_ovulation - timedelta(days=cfg.fertile_window_days - 1)
        pms_start = next_period - timedelta(days=cfg.pms_offset_days)
    except OverflowError:
        return InvalidParameter(
            parameter="luteal_phase_length_days",
            value=luteal_phase_length_days,
            reason="puts ovulation outside the calendar range",
        )

    return PredictionSet(
        next_period_date=next_period,
        next_period_confidence=confidence,
        next_ovulation_date=next_ovulation,
        next_ovulation_confidence=cfg.ovulation_confidence,
        fertile_window_start=fertile_start,
        fertile_window_end=next_ovulation,
        pms_start_date=pms_start,
        average_cycle_length_days=statistics.average_length_days,
        cycle_variability_ratio=statistics.variability_ratio,
        computed_at=now or datetime.now(timezone.utc),
    )
