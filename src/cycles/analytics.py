"""Descriptive cycle analytics for the dashboard.

These helpers back the summary and status endpoints.  Unlike the prediction
engine they look at the whole supplied history (no trailing window) and round
for display.
"""

from __future__ import annotations

import statistics
from dataclasses import dataclass, field
from datetime import date
from typing import Sequence

from src.cycles.config_loader import DEFAULT_CONFIG, PredictionConfig
from src.cycles.models import CycleRecord, PredictionSet
from src.cycles.predictor import round_half_up

STATUS_NO_DATA = "no-data"
STATUS_PERIOD = "period"
STATUS_FERTILE = "fertile"
STATUS_NORMAL = "normal"


@dataclass
class CycleSummary:
    """Display-ready cycle length summary.

    Attributes:
        average:      Mean length, rounded to whole days.
        shortest:     Shortest recorded length.
        longest:      Longest recorded length.
        consistency:  0–100; 100 minus the variability ratio as a percentage.
        total_cycles: Number of cycles with a known length.
        warnings:     Flags for lengths outside the configured normal range.
    """

    average: int
    shortest: int
    longest: int
    consistency: int
    total_cycles: int
    warnings: list[str] = field(default_factory=list)


def summarize_cycles(
    cycles: Sequence[CycleRecord], config: PredictionConfig | None = None
) -> CycleSummary | None:
    """Summarize cycle lengths for display.

    Args:
        cycles: Cycle records, newest first.
        config: Used for the short/long cycle flags.

    Returns:
        CycleSummary, or None with fewer than 2 records or no known lengths.
    """
    cfg = config or DEFAULT_CONFIG
    if len(cycles) < 2:
        return None

    lengths = [c.actual_length for c in cycles if c.is_complete]
    if not lengths:
        return None

    avg_length = statistics.fmean(lengths)
    std_length = statistics.pstdev(lengths)
    consistency = max(0.0, 100 - (std_length / avg_length * 100))

    warnings: list[str] = []
    shortest = min(lengths)
    longest = max(lengths)
    if shortest < cfg.min_cycle_days:
        warnings.append(
            f"Short cycle detected: {shortest} days (below {cfg.min_cycle_days} day minimum)"
        )
    if longest > cfg.max_cycle_days:
        warnings.append(
            f"Long cycle detected: {longest} days (above {cfg.max_cycle_days} day maximum)"
        )

    return CycleSummary(
        average=round_half_up(avg_length),
        shortest=shortest,
        longest=longest,
        consistency=round_half_up(consistency),
        total_cycles=len(lengths),
        warnings=warnings,
    )


def cycle_day(cycle_start: date, today: date) -> int:
    """Return the 1-indexed day within the cycle (day 1 = first day of period)."""
    return (today - cycle_start).days + 1


def days_until(target: date, today: date) -> int:
    """Whole days from ``today`` to ``target`` (negative if already past)."""
    return (target - today).days


def cycle_status(
    current_cycle: CycleRecord | None,
    prediction: PredictionSet | None,
    today: date,
    period_length_days: int = 5,
) -> str:
    """Classify today for the home screen badge.

    Args:
        current_cycle:      Newest cycle record, if any.
        prediction:         Latest stored prediction, if any.
        today:              Reference date.
        period_length_days: Typical bleeding length from user settings.

    Returns:
        ``"no-data"``, ``"period"``, ``"fertile"`` or ``"normal"``.
    """
    if current_cycle is None:
        return STATUS_NO_DATA

    if (today - current_cycle.start_date).days <= period_length_days:
        return STATUS_PERIOD

    if prediction is not None:
        if prediction.fertile_window_start <= today <= prediction.fertile_window_end:
            return STATUS_FERTILE

    return STATUS_NORMAL
