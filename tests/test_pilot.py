"""Integration tests for the InvoicePulse orchestrator."""

import zipfile
from datetime import date, timedelta
from pathlib import Path

import pytest

from invoicepulse import InvoicePulse
from invoicepulse.config import InvoicePulseConfig, OutlierConfig, StorageConfig
from invoicepulse.connectors.memory_connector import MemoryConnector
from invoicepulse.exceptions import BatchNotFound, BatchOrderViolation, InvalidBucketLabel, SnapshotUnavailable
from invoicepulse.models.report import DeltaReport, EmptyReason, MetricKind, MetricSelector
from invoicepulse.store.memory_store import InMemorySnapshotStore

from conftest import HEADER, READY, T0


CSV_DAY_1 = """INVOICE_ID,SUPPLIER_NAME,INVOICE_AMOUNT,INVOICE_DATE,INVOICE_PROCESS_STATUS,PO_NONPO,INVOICE_STATUS
I1,Acme Corp,100.00,2025-11-01,01 - Header To Be Verified,Yes,Validated
I2,Beta LLC,200.00,2025-10-01,08 - Ready for Payment,No,Validated
I9,Huge Co,500000.00,2025-11-20,01 - Header To Be Verified,Yes,Validated
"""

CSV_DAY_2 = """INVOICE_ID,SUPPLIER_NAME,INVOICE_AMOUNT,INVOICE_DATE,INVOICE_PROCESS_STATUS,PO_NONPO,INVOICE_STATUS
I2,Beta LLC,200.00,2025-10-01,08 - Ready for Payment,No,Validated
I3,Acme Corp,50.00,2025-11-25,01 - Header To Be Verified,Yes,Validated
I4,Old Supplier,10.00,2025-01-01,03 - Awaiting Approval,Yes,Paid
"""


@pytest.fixture(params=["memory", "sqlite"])
def pulse(request, tmp_path: Path) -> InvoicePulse:
    if request.param == "memory":
        storage = StorageConfig(type="memory")
    else:
        storage = StorageConfig(type="sql", connection_string=f"sqlite:///{tmp_path / 'pulse.db'}")
    return InvoicePulse(config=InvoicePulseConfig(storage=storage))


@pytest.fixture
def csv_files(tmp_path: Path) -> tuple[Path, Path]:
    first = tmp_path / "day1.csv"
    first.write_text(CSV_DAY_1)
    second = tmp_path / "day2.csv"
    second.write_text(CSV_DAY_2)
    return first, second


async def _import_scenario(pulse: InvoicePulse, make_invoice) -> None:
    await pulse.import_records(
        "a.csv",
        [make_invoice("I1", 100.0, HEADER), make_invoice("I2", 200.0, READY)],
        batch_id="A",
        imported_at=T0,
    )
    await pulse.import_records(
        "b.csv",
        [make_invoice("I2", 200.0, READY), make_invoice("I3", 50.0, HEADER)],
        batch_id="B",
        imported_at=T0 + timedelta(days=1),
    )


class TestImport:
    @pytest.mark.asyncio
    async def test_import_csv_snapshots_batch(self, pulse: InvoicePulse, csv_files) -> None:
        batch = await pulse.import_csv(csv_files[0], batch_id="d1", imported_at=T0, as_of=date(2025, 12, 1))
        assert batch.filename == "day1.csv"
        assert batch.record_count == 3
        assert batch.outlier_count == 1
        assert batch.outlier_high_value == 1
        assert batch.sequence == 1

        stats = await pulse.current_stats()
        # The high-value outlier is excluded from analysis
        assert stats.total_invoices == 2
        assert stats.total_value == 300.0
        assert stats.ready_for_payment_count == 1

    @pytest.mark.asyncio
    async def test_outliers_included_when_configured(self, csv_files) -> None:
        pulse = InvoicePulse(config=InvoicePulseConfig(
            storage=StorageConfig(type="memory"),
            outliers=OutlierConfig(include_high_value=True),
        ))
        await pulse.import_csv(csv_files[0], as_of=date(2025, 12, 1))
        stats = await pulse.current_stats()
        assert stats.total_invoices == 3
        outliers = await pulse.outlier_stats()
        assert outliers.total == 1
        assert outliers.included == 1

    @pytest.mark.asyncio
    async def test_skipped_rows_recorded(self, pulse: InvoicePulse, csv_files) -> None:
        batch = await pulse.import_csv(csv_files[1], as_of=date(2025, 12, 1))
        assert batch.record_count == 2
        assert batch.skipped_fully_paid == 1

    @pytest.mark.asyncio
    async def test_import_zip_makes_one_batch_per_export(self, pulse: InvoicePulse, tmp_path: Path) -> None:
        archive = tmp_path / "exports.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("day1.csv", CSV_DAY_1)
            zf.writestr("notes.md", "ignored")
            zf.writestr("day2.txt", CSV_DAY_2)

        batches = await pulse.import_zip(archive, batch_id_prefix="z", imported_at=T0, as_of=date(2025, 12, 1))
        assert [b.id for b in batches] == ["z-1", "z-2"]
        assert [b.filename for b in batches] == ["day1.csv", "day2.txt"]
        assert batches[1].skipped_fully_paid == 1
        assert (await pulse.current_batch()).id == "z-2"

        report = await pulse.compare_latest()
        assert (report.previous_batch.id, report.current_batch.id) == ("z-1", "z-2")
        assert report.resolved_ids == ["I1"]
        assert report.new_ids == ["I3"]

    @pytest.mark.asyncio
    async def test_import_zip_without_exports(self, pulse: InvoicePulse, tmp_path: Path) -> None:
        archive = tmp_path / "empty.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("readme.md", "nothing here")
        assert await pulse.import_zip(archive) == []
        assert await pulse.list_batches() == []

    @pytest.mark.asyncio
    async def test_missing_file(self, pulse: InvoicePulse) -> None:
        with pytest.raises(FileNotFoundError):
            await pulse.import_csv("/nonexistent/file.csv")


class TestCompareAndTrend:
    @pytest.mark.asyncio
    async def test_compare_latest_end_to_end(self, pulse: InvoicePulse, make_invoice) -> None:
        await _import_scenario(pulse, make_invoice)
        report = await pulse.compare_latest()
        assert isinstance(report, DeltaReport)
        assert (report.previous_batch.id, report.current_batch.id) == ("A", "B")
        assert report.resolved_ids == ["I1"]
        assert report.resolved_value == 100.0
        assert report.new_ids == ["I3"]
        assert report.new_value == 50.0
        rows = {row.state: row for row in report.state_changes}
        assert rows[HEADER].change == 0
        assert rows[READY].change == 0

    @pytest.mark.asyncio
    async def test_compare_with_csv_imports(self, pulse: InvoicePulse, csv_files) -> None:
        await pulse.import_csv(csv_files[0], batch_id="d1", imported_at=T0, as_of=date(2025, 12, 1))
        await pulse.import_csv(csv_files[1], batch_id="d2", imported_at=T0 + timedelta(days=1), as_of=date(2025, 12, 2))
        report = await pulse.compare_latest()
        # The excluded outlier I9 is not reported as resolved
        assert report.resolved_ids == ["I1"]
        assert report.new_ids == ["I3"]

    @pytest.mark.asyncio
    async def test_compare_needs_two_batches(self, pulse: InvoicePulse, make_invoice) -> None:
        empty = await pulse.compare_latest()
        assert not empty.available
        assert empty.current_batch is None

        await pulse.import_records("a.csv", [make_invoice("I1")], batch_id="A", imported_at=T0)
        single = await pulse.compare_latest()
        assert single.reason == EmptyReason.INSUFFICIENT_DATA
        assert single.current_batch.id == "A"

    @pytest.mark.asyncio
    async def test_trend(self, pulse: InvoicePulse, make_invoice) -> None:
        await _import_scenario(pulse, make_invoice)
        series = await pulse.trend()
        assert series.values == [1.0, 1.0]
        value = await pulse.trend(MetricSelector(kind=MetricKind.TOTAL_VALUE))
        assert value.change == -50.0

        states = await pulse.state_trends()
        assert [s.state for s in states] == [HEADER, READY]

    @pytest.mark.asyncio
    async def test_trend_window_from_config(self, make_invoice) -> None:
        pulse = InvoicePulse(config=InvoicePulseConfig.load(storage={"type": "memory"}, analytics={"trend_window": 2}))
        for day in range(4):
            invoices = [make_invoice(f"{day}-{n}") for n in range(day + 1)]
            await pulse.import_records(f"{day}.csv", invoices, batch_id=f"b{day}", imported_at=T0 + timedelta(days=day))
        series = await pulse.trend()
        assert [p.batch_id for p in series.points] == ["b2", "b3"]


class TestBackfill:
    @pytest.mark.asyncio
    async def test_backfill_builds_missing_snapshots(self, make_invoice, make_batch) -> None:
        connector = MemoryConnector()
        store = InMemorySnapshotStore()
        await connector.add_batch(make_batch("old", 0), [make_invoice("I1", batch_id="old")])
        await connector.add_batch(make_batch("gone", 1, is_deleted=True), [])
        pulse = InvoicePulse(connector=connector, store=store)

        missing = await pulse.trend()
        assert missing.reason == EmptyReason.INSUFFICIENT_DATA
        assert await pulse.current_stats() is None
        with pytest.raises(SnapshotUnavailable):
            await pulse.stats("old")

        assert await pulse.backfill() == ["old"]
        assert (await pulse.stats("old")).total_invoices == 1
        # Second run has nothing to do
        assert await pulse.backfill() == []

    @pytest.mark.asyncio
    async def test_compare_reports_missing_snapshot(self, make_invoice, make_batch) -> None:
        connector = MemoryConnector()
        await connector.add_batch(make_batch("a", 0), [make_invoice("I1", batch_id="a")])
        await connector.add_batch(make_batch("b", 1), [make_invoice("I2", batch_id="b")])
        pulse = InvoicePulse(connector=connector)

        report = await pulse.compare_latest()
        assert report.reason == EmptyReason.SNAPSHOT_UNAVAILABLE
        assert report.missing_batch_ids == ["a", "b"]

        series = await pulse.trend()
        assert series.reason == EmptyReason.SNAPSHOT_UNAVAILABLE

        await pulse.backfill()
        assert (await pulse.compare_latest()).available


class TestFilterAndDelete:
    @pytest.mark.asyncio
    async def test_filter_by_bucket(self, pulse: InvoicePulse, make_invoice) -> None:
        await pulse.import_records(
            "a.csv",
            [
                make_invoice("young", days_old=10),
                make_invoice("edge", days_old=59, supplier="Beta LLC"),
                make_invoice("old", days_old=400),
            ],
            imported_at=T0,
        )
        assert [r.id for r in await pulse.filter_by_bucket("30-60")] == ["edge"]
        assert [r.id for r in await pulse.filter_by_bucket("360+")] == ["old"]
        assert await pulse.filter_by_bucket("30-60", vendor="acme") == []
        with pytest.raises(InvalidBucketLabel):
            await pulse.filter_by_bucket("sixty")

    @pytest.mark.asyncio
    async def test_filter_without_batches(self, pulse: InvoicePulse) -> None:
        assert await pulse.filter_by_bucket("0-30") == []

    @pytest.mark.asyncio
    async def test_sequential_delete(self, pulse: InvoicePulse, make_invoice) -> None:
        await _import_scenario(pulse, make_invoice)

        with pytest.raises(BatchOrderViolation):
            await pulse.delete_latest_batch("A")
        with pytest.raises(BatchNotFound):
            await pulse.delete_latest_batch("nope")

        deleted = await pulse.delete_latest_batch("B")
        assert deleted.is_deleted
        assert (await pulse.current_batch()).id == "A"
        with pytest.raises(BatchOrderViolation):
            await pulse.delete_latest_batch("B")

        # Snapshot survives the delete
        assert await pulse.store.has("B")
        assert not (await pulse.compare_latest()).available
        assert [b.id for b in await pulse.list_batches(include_deleted=True)] == ["A", "B"]

    @pytest.mark.asyncio
    async def test_health_check(self, pulse: InvoicePulse) -> None:
        health = await pulse.health_check()
        assert health["connector"]["healthy"] is True
        assert health["store"]["healthy"] is True


class TestSyncWrappers:
    def test_sync_calls(self, csv_files) -> None:
        pulse = InvoicePulse.from_config(storage={"type": "memory"})
        pulse.import_csv_sync(csv_files[0], imported_at=T0, as_of=date(2025, 12, 1))
        assert not pulse.compare_latest_sync().available
        assert pulse.trend_sync().reason == EmptyReason.INSUFFICIENT_DATA
        assert pulse.backfill_sync() == []
