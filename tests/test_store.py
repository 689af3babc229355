"""Tests for the snapshot stores."""

import asyncio
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from invoicepulse.analyzers.snapshot_builder import SnapshotBuilder
from invoicepulse.exceptions import DuplicateSnapshot
from invoicepulse.models.invoice import PoType
from invoicepulse.models.stats import BucketTotals
from invoicepulse.store.memory_store import InMemorySnapshotStore
from invoicepulse.store.sql_store import SQLSnapshotStore

from conftest import HEADER


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path: Path):
    if request.param == "memory":
        return InMemorySnapshotStore()
    return SQLSnapshotStore(connection_string=f"sqlite:///{tmp_path / 'snapshots.db'}")


@pytest.fixture
def stats(make_invoice):
    invoices = [
        make_invoice("1", 100.0, po_type="PO"),
        make_invoice("2", 0.1, po_type="Non-PO", days_old=400),
        make_invoice("3", 0.2, state=None),
    ]
    return SnapshotBuilder().build("b1", invoices)


class TestSnapshotStore:
    @pytest.mark.asyncio
    async def test_put_and_get(self, store, stats) -> None:
        await store.put("b1", stats)
        assert await store.get("b1") == stats
        assert await store.has("b1")
        assert not await store.has("b2")
        assert await store.get("b2") is None

    @pytest.mark.asyncio
    async def test_duplicate_put_rejected(self, store, stats) -> None:
        await store.put("b1", stats)
        with pytest.raises(DuplicateSnapshot) as exc_info:
            await store.put("b1", stats)
        assert exc_info.value.batch_id == "b1"
        # The first write is untouched
        assert await store.get("b1") == stats

    @pytest.mark.asyncio
    async def test_mismatched_key_rejected(self, store, stats) -> None:
        with pytest.raises(ValueError):
            await store.put("other", stats)

    @pytest.mark.asyncio
    async def test_get_many_skips_unknown_ids(self, store, stats) -> None:
        await store.put("b1", stats)
        found = await store.get_many(["b1", "missing"])
        assert list(found) == ["b1"]
        assert await store.get_many([]) == {}

    @pytest.mark.asyncio
    async def test_round_trip_preserves_breakdowns(self, store, stats) -> None:
        await store.put("b1", stats)
        loaded = await store.get("b1")
        assert loaded.po_breakdown[PoType.NON_PO].count == 1
        assert loaded.aging_breakdown[-1].count == 1
        assert loaded.unknown_state.count == 1
        assert loaded.total_value == stats.total_value

    @pytest.mark.asyncio
    async def test_health_check(self, store) -> None:
        health = await store.health_check()
        assert health["healthy"] is True


class TestSQLSnapshotStore:
    @pytest.mark.asyncio
    async def test_second_store_on_same_database_sees_conflict(self, tmp_path: Path, stats) -> None:
        url = f"sqlite:///{tmp_path / 'shared.db'}"
        first = SQLSnapshotStore(connection_string=url)
        second = SQLSnapshotStore(connection_string=url)
        await first.put("b1", stats)
        with pytest.raises(DuplicateSnapshot):
            await second.put("b1", stats)
        assert await second.get("b1") == stats

    def test_requires_engine_or_url(self) -> None:
        with pytest.raises(ValueError):
            SQLSnapshotStore()

    @pytest.mark.asyncio
    async def test_in_memory_database(self, stats) -> None:
        store = SQLSnapshotStore(connection_string="sqlite://")
        await store.put("b1", stats)
        assert await store.has("b1")


class TestInMemorySnapshotStore:
    @pytest.mark.asyncio
    async def test_records_calculation_time(self, stats) -> None:
        store = InMemorySnapshotStore()
        assert store.calculated_at("b1") is None
        await store.put("b1", stats)
        assert store.calculated_at("b1") is not None
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_stored_snapshot_cannot_be_edited_through_reads(self, make_invoice) -> None:
        store = InMemorySnapshotStore()
        original = SnapshotBuilder().build("b1", [make_invoice("1", 100.0, state=HEADER)])
        await store.put("b1", original)

        got = await store.get("b1")
        got.process_state_counts[HEADER] = BucketTotals(count=99, value=1.0)
        got.po_breakdown.clear()
        (await store.get_many(["b1"]))["b1"].process_state_counts.clear()
        original.process_state_counts[HEADER] = BucketTotals(count=42, value=1.0)

        again = await store.get("b1")
        assert again.process_state_counts[HEADER].count == 1
        assert again.po_breakdown[PoType.PO].count == 1

    def test_concurrent_writers_have_one_winner(self, make_invoice) -> None:
        store = InMemorySnapshotStore()
        writers = 8
        variants = [
            SnapshotBuilder().build("b1", [make_invoice(str(n), float(i + 1)) for n in range(i + 1)])
            for i in range(writers)
        ]
        barrier = threading.Barrier(writers)

        def write(i: int) -> int | None:
            barrier.wait()
            try:
                asyncio.run(store.put("b1", variants[i]))
            except DuplicateSnapshot:
                return None
            return i

        with ThreadPoolExecutor(max_workers=writers) as pool:
            results = list(pool.map(write, range(writers)))

        winners = [r for r in results if r is not None]
        assert len(winners) == 1
        assert results.count(None) == writers - 1
        assert len(store) == 1
        assert asyncio.run(store.get("b1")) == variants[winners[0]]
