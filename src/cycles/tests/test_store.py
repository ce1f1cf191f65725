"""Tests for record stores, the sample data source, fallback and caching."""

from __future__ import annotations

from datetime import date, timedelta
from unittest.mock import AsyncMock, MagicMock

import asyncpg
import pytest

from src.cycles.cache import CachedCycleStore
from src.cycles.models import CycleRecord, PredictionSet
from src.cycles.store import (
    FallbackCycleStore,
    InMemoryCycleStore,
    PostgresCycleStore,
    SampleCycleStore,
    StoreUnavailableError,
)
from src.cycles.tests.conftest import TEST_DATE, TEST_NOW, TEST_USER_ID, make_cycle


def make_prediction(next_period: date = date(2024, 2, 17)) -> PredictionSet:
    return PredictionSet(
        next_period_date=next_period,
        next_period_confidence=0.95,
        next_ovulation_date=next_period - timedelta(days=14),
        next_ovulation_confidence=0.7,
        fertile_window_start=next_period - timedelta(days=19),
        fertile_window_end=next_period - timedelta(days=14),
        pms_start_date=next_period - timedelta(days=10),
        average_cycle_length_days=28.0,
        cycle_variability_ratio=0.05,
        computed_at=TEST_NOW,
    )


class CountingStore(InMemoryCycleStore):
    def __init__(self) -> None:
        super().__init__()
        self.reads = 0

    async def get_recent_cycles(self, user_id: str, limit: int = 12) -> list[CycleRecord]:
        self.reads += 1
        return await super().get_recent_cycles(user_id, limit)


class BrokenStore(InMemoryCycleStore):
    name = "broken"

    async def get_recent_cycles(self, user_id: str, limit: int = 12) -> list[CycleRecord]:
        raise StoreUnavailableError("connection refused")

    async def add_cycle(self, user_id: str, record: CycleRecord) -> CycleRecord:
        raise StoreUnavailableError("connection refused")

    async def save_prediction(self, user_id: str, prediction: PredictionSet) -> None:
        raise StoreUnavailableError("connection refused")

    async def get_prediction(self, user_id: str) -> PredictionSet | None:
        raise StoreUnavailableError("connection refused")


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------


class TestInMemoryCycleStore:
    @pytest.mark.asyncio
    async def test_returns_newest_first(self) -> None:
        store = InMemoryCycleStore()
        for start in (date(2023, 11, 25), date(2024, 1, 20), date(2023, 12, 23)):
            store.insert_cycle(TEST_USER_ID, make_cycle(start, 28))
        cycles = await store.get_recent_cycles(TEST_USER_ID)
        assert [c.start_date for c in cycles] == [
            date(2024, 1, 20),
            date(2023, 12, 23),
            date(2023, 11, 25),
        ]

    @pytest.mark.asyncio
    async def test_limit(self) -> None:
        store = InMemoryCycleStore()
        for i in range(20):
            store.insert_cycle(TEST_USER_ID, make_cycle(TEST_DATE - timedelta(days=28 * i), 28))
        cycles = await store.get_recent_cycles(TEST_USER_ID, limit=12)
        assert len(cycles) == 12
        assert cycles[0].start_date == TEST_DATE

    def test_duplicate_start_date_rejected(self) -> None:
        store = InMemoryCycleStore()
        store.insert_cycle(TEST_USER_ID, make_cycle(TEST_DATE, 28))
        with pytest.raises(ValueError, match="already has a cycle"):
            store.insert_cycle(TEST_USER_ID, make_cycle(TEST_DATE, 30))

    def test_insert_cycle_assigns_ids(self) -> None:
        store = InMemoryCycleStore()
        stored = store.insert_cycle(TEST_USER_ID, make_cycle(TEST_DATE, 28))
        assert stored.cycle_id is not None
        assert stored.user_id == TEST_USER_ID

    @pytest.mark.asyncio
    async def test_add_cycle_through_contract(self) -> None:
        store = InMemoryCycleStore()
        stored = await store.add_cycle(TEST_USER_ID, make_cycle(TEST_DATE, None))
        assert stored.user_id == TEST_USER_ID
        assert await store.get_recent_cycles(TEST_USER_ID) == [stored]
        with pytest.raises(ValueError, match="already has a cycle"):
            await store.add_cycle(TEST_USER_ID, make_cycle(TEST_DATE, 28))

    @pytest.mark.asyncio
    async def test_unknown_user_has_no_cycles(self) -> None:
        assert await InMemoryCycleStore().get_recent_cycles("nobody") == []

    @pytest.mark.asyncio
    async def test_save_prediction_overwrites(self) -> None:
        store = InMemoryCycleStore()
        await store.save_prediction(TEST_USER_ID, make_prediction(date(2024, 2, 17)))
        await store.save_prediction(TEST_USER_ID, make_prediction(date(2024, 2, 20)))
        stored = await store.get_prediction(TEST_USER_ID)
        assert stored is not None
        assert stored.next_period_date == date(2024, 2, 20)


# ---------------------------------------------------------------------------
# Sample data + fallback
# ---------------------------------------------------------------------------


class TestSampleCycleStore:
    @pytest.mark.asyncio
    async def test_read_contract(self) -> None:
        store = SampleCycleStore(today=TEST_DATE)
        cycles = await store.get_recent_cycles(TEST_USER_ID)
        assert len(cycles) == 6
        starts = [c.start_date for c in cycles]
        assert starts == sorted(starts, reverse=True)
        assert len(set(starts)) == len(starts)
        assert cycles[0].actual_length is None
        assert all(26 <= c.actual_length <= 30 for c in cycles[1:])

    @pytest.mark.asyncio
    async def test_lengths_match_start_dates(self) -> None:
        cycles = await SampleCycleStore(today=TEST_DATE).get_recent_cycles(TEST_USER_ID)
        for newer, older in zip(cycles, cycles[1:]):
            assert (newer.start_date - older.start_date).days == older.actual_length

    @pytest.mark.asyncio
    async def test_deterministic(self) -> None:
        first = await SampleCycleStore(today=TEST_DATE).get_recent_cycles("a")
        second = await SampleCycleStore(today=TEST_DATE).get_recent_cycles("b")
        assert [c.start_date for c in first] == [c.start_date for c in second]

    @pytest.mark.asyncio
    async def test_respects_limit(self) -> None:
        cycles = await SampleCycleStore(today=TEST_DATE).get_recent_cycles(TEST_USER_ID, 3)
        assert len(cycles) == 3

    @pytest.mark.asyncio
    async def test_reads_do_not_accumulate_per_user(self) -> None:
        store = SampleCycleStore(today=TEST_DATE)
        for i in range(50):
            cycles = await store.get_recent_cycles(f"user-{i}")
            assert cycles[0].user_id == f"user-{i}"
        assert await InMemoryCycleStore.get_recent_cycles(store, "user-0") == []

    @pytest.mark.asyncio
    async def test_written_cycles_replace_sample_history(self) -> None:
        store = SampleCycleStore(today=TEST_DATE)
        stored = await store.add_cycle(TEST_USER_ID, make_cycle(TEST_DATE, None))
        assert await store.get_recent_cycles(TEST_USER_ID) == [stored]


class TestFallbackCycleStore:
    @pytest.mark.asyncio
    async def test_uses_primary_when_healthy(self, memory_store: InMemoryCycleStore) -> None:
        store = FallbackCycleStore(memory_store, SampleCycleStore(today=TEST_DATE))
        cycles = await store.get_recent_cycles(TEST_USER_ID)
        assert cycles == await memory_store.get_recent_cycles(TEST_USER_ID)

    @pytest.mark.asyncio
    async def test_falls_back_on_unavailable(self, caplog: pytest.LogCaptureFixture) -> None:
        sample = SampleCycleStore(today=TEST_DATE)
        store = FallbackCycleStore(BrokenStore(), sample)
        cycles = await store.get_recent_cycles(TEST_USER_ID)
        assert cycles == await sample.get_recent_cycles(TEST_USER_ID)
        assert "unavailable" in caplog.text

    @pytest.mark.asyncio
    async def test_prediction_round_trip_through_fallback(self) -> None:
        store = FallbackCycleStore(BrokenStore(), InMemoryCycleStore())
        await store.save_prediction(TEST_USER_ID, make_prediction())
        assert await store.get_prediction(TEST_USER_ID) == make_prediction()

    @pytest.mark.asyncio
    async def test_add_cycle_goes_to_primary(self) -> None:
        primary = InMemoryCycleStore()
        sample = SampleCycleStore(today=TEST_DATE)
        store = FallbackCycleStore(primary, sample)
        stored = await store.add_cycle(TEST_USER_ID, make_cycle(TEST_DATE, None))
        assert await primary.get_recent_cycles(TEST_USER_ID) == [stored]
        assert await InMemoryCycleStore.get_recent_cycles(sample, TEST_USER_ID) == []

    @pytest.mark.asyncio
    async def test_add_cycle_not_redirected_to_fallback(self) -> None:
        sample = SampleCycleStore(today=TEST_DATE)
        store = FallbackCycleStore(BrokenStore(), sample)
        with pytest.raises(StoreUnavailableError):
            await store.add_cycle(TEST_USER_ID, make_cycle(TEST_DATE, None))
        assert await InMemoryCycleStore.get_recent_cycles(sample, TEST_USER_ID) == []

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self) -> None:
        primary = InMemoryCycleStore()
        primary.get_recent_cycles = AsyncMock(side_effect=KeyError("boom"))  # type: ignore[method-assign]
        store = FallbackCycleStore(primary, SampleCycleStore(today=TEST_DATE))
        with pytest.raises(KeyError):
            await store.get_recent_cycles(TEST_USER_ID)


# ---------------------------------------------------------------------------
# Postgres store (pool mocked)
# ---------------------------------------------------------------------------


def mock_pool(conn: MagicMock) -> MagicMock:
    acquire_ctx = MagicMock()
    acquire_ctx.__aenter__ = AsyncMock(return_value=conn)
    acquire_ctx.__aexit__ = AsyncMock(return_value=False)
    pool = MagicMock()
    pool.acquire.return_value = acquire_ctx
    return pool


class TestPostgresCycleStore:
    @pytest.mark.asyncio
    async def test_maps_rows_to_records(self) -> None:
        conn = MagicMock()
        conn.fetch = AsyncMock(
            return_value=[
                {
                    "cycle_id": None,
                    "user_id": TEST_USER_ID,
                    "start_date": TEST_DATE,
                    "end_date": TEST_DATE + timedelta(days=4),
                    "actual_length": None,
                },
                {
                    "cycle_id": None,
                    "user_id": TEST_USER_ID,
                    "start_date": TEST_DATE - timedelta(days=28),
                    "end_date": None,
                    "actual_length": 28,
                },
            ]
        )
        store = PostgresCycleStore(mock_pool(conn))
        cycles = await store.get_recent_cycles(TEST_USER_ID, 12)
        assert [c.actual_length for c in cycles] == [None, 28]
        assert cycles[0].end_date == TEST_DATE + timedelta(days=4)
        args = conn.fetch.await_args.args
        assert "ORDER BY start_date DESC" in args[0]
        assert args[1:] == (TEST_USER_ID, 12)

    @pytest.mark.asyncio
    async def test_driver_error_becomes_unavailable(self) -> None:
        conn = MagicMock()
        conn.fetch = AsyncMock(side_effect=ConnectionRefusedError("down"))
        store = PostgresCycleStore(mock_pool(conn))
        with pytest.raises(StoreUnavailableError):
            await store.get_recent_cycles(TEST_USER_ID)

    @pytest.mark.asyncio
    async def test_save_prediction_upserts(self) -> None:
        conn = MagicMock()
        conn.execute = AsyncMock(return_value="INSERT 0 1")
        store = PostgresCycleStore(mock_pool(conn))
        await store.save_prediction(TEST_USER_ID, make_prediction())
        query, *params = conn.execute.await_args.args
        assert "ON CONFLICT (user_id) DO UPDATE" in query
        assert params[0] == TEST_USER_ID
        assert params[1] == date(2024, 2, 17)

    @pytest.mark.asyncio
    async def test_missing_prediction_is_none(self) -> None:
        conn = MagicMock()
        conn.fetchrow = AsyncMock(return_value=None)
        store = PostgresCycleStore(mock_pool(conn))
        assert await store.get_prediction(TEST_USER_ID) is None

    @pytest.mark.asyncio
    async def test_add_cycle_inserts(self) -> None:
        conn = MagicMock()
        conn.fetchrow = AsyncMock(
            return_value={
                "cycle_id": None,
                "user_id": TEST_USER_ID,
                "start_date": TEST_DATE,
                "end_date": None,
                "actual_length": None,
            }
        )
        store = PostgresCycleStore(mock_pool(conn))
        stored = await store.add_cycle(TEST_USER_ID, make_cycle(TEST_DATE, None))
        assert stored.start_date == TEST_DATE
        assert stored.user_id == TEST_USER_ID
        query, *params = conn.fetchrow.await_args.args
        assert "INSERT INTO cycles" in query
        assert params[0] is not None
        assert params[1:] == [TEST_USER_ID, TEST_DATE, None, None]

    @pytest.mark.asyncio
    async def test_duplicate_start_date_becomes_value_error(self) -> None:
        conn = MagicMock()
        conn.fetchrow = AsyncMock(side_effect=asyncpg.UniqueViolationError("duplicate key"))
        store = PostgresCycleStore(mock_pool(conn))
        with pytest.raises(ValueError, match="already has a cycle"):
            await store.add_cycle(TEST_USER_ID, make_cycle(TEST_DATE, 28))

    @pytest.mark.asyncio
    async def test_add_cycle_driver_error_becomes_unavailable(self) -> None:
        conn = MagicMock()
        conn.fetchrow = AsyncMock(side_effect=ConnectionRefusedError("down"))
        store = PostgresCycleStore(mock_pool(conn))
        with pytest.raises(StoreUnavailableError):
            await store.add_cycle(TEST_USER_ID, make_cycle(TEST_DATE, 28))


# ---------------------------------------------------------------------------
# Freshness cache
# ---------------------------------------------------------------------------


class TestCachedCycleStore:
    @pytest.mark.asyncio
    async def test_serves_cached_within_ttl(self) -> None:
        inner = CountingStore()
        inner.insert_cycle(TEST_USER_ID, make_cycle(TEST_DATE, 28))
        clock = FakeClock()
        store = CachedCycleStore(inner, ttl_seconds=300, clock=clock)

        await store.get_recent_cycles(TEST_USER_ID)
        clock.now += 299
        await store.get_recent_cycles(TEST_USER_ID)
        assert inner.reads == 1

    @pytest.mark.asyncio
    async def test_refetches_after_ttl(self) -> None:
        inner = CountingStore()
        inner.insert_cycle(TEST_USER_ID, make_cycle(TEST_DATE, 28))
        clock = FakeClock()
        store = CachedCycleStore(inner, ttl_seconds=300, clock=clock)

        await store.get_recent_cycles(TEST_USER_ID)
        clock.now += 300
        await store.get_recent_cycles(TEST_USER_ID)
        assert inner.reads == 2

    @pytest.mark.asyncio
    async def test_stale_data_until_expiry_then_fresh(self) -> None:
        inner = InMemoryCycleStore()
        inner.insert_cycle(TEST_USER_ID, make_cycle(TEST_DATE - timedelta(days=28), 28))
        clock = FakeClock()
        store = CachedCycleStore(inner, ttl_seconds=300, clock=clock)

        assert len(await store.get_recent_cycles(TEST_USER_ID)) == 1
        inner.insert_cycle(TEST_USER_ID, make_cycle(TEST_DATE, None))
        assert len(await store.get_recent_cycles(TEST_USER_ID)) == 1
        clock.now += 301
        assert len(await store.get_recent_cycles(TEST_USER_ID)) == 2

    @pytest.mark.asyncio
    async def test_empty_results_not_cached(self) -> None:
        inner = CountingStore()
        store = CachedCycleStore(inner, clock=FakeClock())
        await store.get_recent_cycles(TEST_USER_ID)
        await store.get_recent_cycles(TEST_USER_ID)
        assert inner.reads == 2

    @pytest.mark.asyncio
    async def test_invalidate_user(self) -> None:
        inner = CountingStore()
        inner.insert_cycle(TEST_USER_ID, make_cycle(TEST_DATE, 28))
        inner.insert_cycle("other", make_cycle(TEST_DATE, 28))
        store = CachedCycleStore(inner, clock=FakeClock())

        await store.get_recent_cycles(TEST_USER_ID)
        await store.get_recent_cycles("other")
        store.invalidate(TEST_USER_ID)
        await store.get_recent_cycles(TEST_USER_ID)
        await store.get_recent_cycles("other")
        assert inner.reads == 3

    @pytest.mark.asyncio
    async def test_limit_is_part_of_key(self) -> None:
        inner = CountingStore()
        inner.insert_cycle(TEST_USER_ID, make_cycle(TEST_DATE, 28))
        store = CachedCycleStore(inner, clock=FakeClock())
        await store.get_recent_cycles(TEST_USER_ID, 12)
        await store.get_recent_cycles(TEST_USER_ID, 1)
        assert inner.reads == 2

    @pytest.mark.asyncio
    async def test_add_cycle_invalidates_user(self) -> None:
        inner = CountingStore()
        inner.insert_cycle(TEST_USER_ID, make_cycle(TEST_DATE - timedelta(days=28), 28))
        inner.insert_cycle("other", make_cycle(TEST_DATE, 28))
        store = CachedCycleStore(inner, clock=FakeClock())

        assert len(await store.get_recent_cycles(TEST_USER_ID)) == 1
        await store.get_recent_cycles("other")
        await store.add_cycle(TEST_USER_ID, make_cycle(TEST_DATE, None))

        assert len(await store.get_recent_cycles(TEST_USER_ID)) == 2
        await store.get_recent_cycles("other")
        assert inner.reads == 3

    @pytest.mark.asyncio
    async def test_expired_entries_pruned_on_store(self) -> None:
        inner = InMemoryCycleStore()
        for i in range(10):
            inner.insert_cycle(f"user-{i}", make_cycle(TEST_DATE, 28))
        inner.insert_cycle(TEST_USER_ID, make_cycle(TEST_DATE, 28))
        clock = FakeClock()
        store = CachedCycleStore(inner, ttl_seconds=300, clock=clock)

        for i in range(10):
            await store.get_recent_cycles(f"user-{i}")
        clock.now += 300
        await store.get_recent_cycles(TEST_USER_ID)
        assert list(store._entries) == [(TEST_USER_ID, 12)]

    @pytest.mark.asyncio
    async def test_predictions_pass_through(self) -> None:
        inner = InMemoryCycleStore()
        store = CachedCycleStore(inner, clock=FakeClock())
        await store.save_prediction(TEST_USER_ID, make_prediction())
        assert await inner.get_prediction(TEST_USER_ID) == make_prediction()
        assert await store.get_prediction(TEST_USER_ID) == make_prediction()

    def test_negative_ttl_rejected(self) -> None:
        with pytest.raises(ValueError):
            CachedCycleStore(InMemoryCycleStore(), ttl_seconds=-1)
