"""Shared fixtures and history builders for cycle prediction tests."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from src.cycles.config_loader import PredictionConfig, load_prediction_config
from src.cycles.models import CycleRecord
from src.cycles.store import InMemoryCycleStore

# Canonical test user and reference timestamps
TEST_USER_ID = "user-12345678"
TEST_DATE = date(2024, 1, 20)
TEST_NOW = datetime(2024, 1, 21, 9, 30, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# History builders
# ---------------------------------------------------------------------------


def make_cycle(start: date, length: int | None) -> CycleRecord:
    return CycleRecord(start_date=start, actual_length=length)


def build_history(
    lengths: list[int | None], newest_start: date = TEST_DATE
) -> list[CycleRecord]:
    """Build newest-first cycles whose start dates are consistent with lengths.

    ``lengths[0]`` belongs to the newest cycle (use None for an ongoing one);
    each older cycle starts its own length before the next one.
    """
    cycles: list[CycleRecord] = []
    start = newest_start
    for i, length in enumerate(lengths):
        if i > 0:
            start = start - timedelta(days=lengths[i] if lengths[i] and lengths[i] > 0 else 28)
        cycles.append(make_cycle(start, length))
    return cycles


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def prediction_config() -> PredictionConfig:
    """Load the bundled prediction config for tests."""
    return load_prediction_config()


@pytest.fixture
def regular_history() -> list[CycleRecord]:
    """Ongoing cycle started 2024-01-20 plus four completed cycles of 28/30/26/28 days."""
    return build_history([None, 28, 30, 26, 28])


@pytest.fixture
def memory_store(regular_history: list[CycleRecord]) -> InMemoryCycleStore:
    store = InMemoryCycleStore()
    for record in regular_history:
        store.insert_cycle(TEST_USER_ID, record)
    return store
