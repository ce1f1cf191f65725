"""Cycle length statistics over the trailing window.

Pure and deterministic: turns an ordered (newest-first) list of cycles into
mean, population standard deviation and variability ratio.  Ongoing or
malformed cycles are filtered out rather than treated as errors, so one bad
record never blocks statistics for a user.
"""

from __future__ import annotations

import statistics
from typing import Sequence

from src.cycles.config_loader import DEFAULT_CONFIG, PredictionConfig
from src.cycles.models import CycleRecord, CycleStatistics, InsufficientData


def cycles_in_window(
    cycles: Sequence[CycleRecord], config: PredictionConfig = DEFAULT_CONFIG
) -> Sequence[CycleRecord]:
    """Return the newest ``config.window_size`` records (input is newest-first)."""
    return cycles[: config.window_size]


def qualifying_lengths(
    cycles: Sequence[CycleRecord], config: PredictionConfig = DEFAULT_CONFIG
) -> list[int]:
    """Return the usable cycle lengths within the trailing window.

    Entries with a missing, zero or negative length are dropped after the
    window is applied.

    Args:
        cycles: Cycle records, newest first.
        config: Prediction config (window size).

    Returns:
        Lengths in days, in the same order as the input.
    """
    return [c.actual_length for c in cycles_in_window(cycles, config) if c.is_complete]


def compute_statistics(
    cycles: Sequence[CycleRecord], config: PredictionConfig | None = None
) -> CycleStatistics | InsufficientData:
    """Reduce a cycle history to aggregate length statistics.

    The standard deviation uses the population formula (divide by N): the
    window is the whole population of interest, not a sample of it.  Nothing
    is rounded here.

    Args:
        cycles: Cycle records sorted by start date, newest first.
        config: Prediction config; defaults to the built-in constants.

    Returns:
        CycleStatistics, or InsufficientData when fewer than
        ``config.min_cycles`` qualifying cycles remain after filtering.
    """
    cfg = config or DEFAULT_CONFIG
    lengths = qualifying_lengths(cycles, cfg)

    if len(lengths) < cfg.min_cycles:
        return InsufficientData(
            reason=(
                f"Need at least {cfg.min_cycles} completed cycles, "
                f"found {len(lengths)}"
            ),
            qualifying_cycles=len(lengths),
        )

    avg_length = statistics.fmean(lengths)
    std_length = statistics.pstdev(lengths)

    return CycleStatistics(
        average_length_days=avg_length,
        standard_deviation_days=std_length,
        variability_ratio=std_length / avg_length,
        sample_size=len(lengths),
    )
