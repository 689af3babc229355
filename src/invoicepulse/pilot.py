"""
InvoicePulse — Main orchestrator.

The InvoicePulse class is the top-level entry point that wires the invoice
connector, the snapshot store and the analytics engines together: importing
a batch snapshots it, and every dashboard figure is read back from
snapshots.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

from invoicepulse.analyzers.bucket_filter import to_predicate
from invoicepulse.analyzers.comparison import ComparisonEngine, select_comparison_pair
from invoicepulse.analyzers.outliers import OutlierClassifier, OutlierStats, analysis_set, outlier_stats
from invoicepulse.analyzers.snapshot_builder import SnapshotBuilder
from invoicepulse.analyzers.trend import TrendEngine, select_window
from invoicepulse.config import InvoicePulseConfig
from invoicepulse.connectors.base import BaseConnector
from invoicepulse.connectors.csv_connector import CSVImporter, ImportResult, extract_csv_members
from invoicepulse.connectors.registry import ConnectorRegistry
from invoicepulse.exceptions import BatchOrderViolation, DuplicateSnapshot, SnapshotUnavailable
from invoicepulse.models.invoice import ImportBatch, InvoiceRecord, order_batches
from invoicepulse.models.report import (
    DeltaReport,
    EmptyReason,
    EmptySeries,
    MetricSelector,
    NoComparison,
    TrendSeries,
)
from invoicepulse.models.stats import BatchStats
from invoicepulse.store.base import SnapshotStore
from invoicepulse.store.memory_store import InMemorySnapshotStore

logger = logging.getLogger("invoicepulse")


def _new_batch_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass
class InvoicePulse:
    """Top-level orchestrator for the InvoicePulse system.

    Usage::

        from invoicepulse import InvoicePulse

        pulse = InvoicePulse.from_config("invoicepulse.yaml")
        batch = await pulse.import_csv("aging_report.csv")
        report = await pulse.compare_latest()
        series = await pulse.trend()

    InvoicePulse coordinates:
    - **Connector**: Batch directory and invoice source.
    - **Snapshot store**: One immutable ``BatchStats`` per batch.
    - **Engines**: Snapshot building, comparison, trends and bucket filters.
    """

    config: InvoicePulseConfig = field(default_factory=InvoicePulseConfig)
    connector: BaseConnector | None = None
    store: SnapshotStore | None = None
    connector_registry: ConnectorRegistry = field(default_factory=ConnectorRegistry)

    def __post_init__(self) -> None:
        analytics = self.config.analytics
        self.builder = SnapshotBuilder(
            top_vendors_limit=analytics.top_vendors_limit,
            vendor_rank_mode=analytics.vendor_rank_mode,
            ready_state_prefix=analytics.ready_state_prefix,
        )
        self.comparison = ComparisonEngine()
        self.trend_engine = TrendEngine(window=analytics.trend_window)
        self.classifier = OutlierClassifier(
            high_value_threshold=self.config.outliers.high_value_threshold,
            high_value_state=self.config.outliers.high_value_state,
        )
        if self.connector is None:
            self._setup()
        elif self.store is None:
            self.store = self.connector.snapshot_store() or self._fallback_store()

    @classmethod
    def from_config(cls, config_path: str | None = None, **overrides: Any) -> InvoicePulse:
        """Create an InvoicePulse instance from a config file or keyword arguments."""
        return cls(config=InvoicePulseConfig.load(config_path, **overrides))

    def _setup(self) -> None:
        """Build the configured connector and snapshot store."""
        self.connector_registry, self.connector, store = ConnectorRegistry.from_config(self.config)
        if self.store is None:
            self.store = store
        logger.info(
            "InvoicePulse initialized with %s storage (trend window %d)",
            self.config.storage.type, self.trend_engine.window,
        )

    @staticmethod
    def _fallback_store() -> SnapshotStore:
        return InMemorySnapshotStore()

    # Narrowed accessors; both are always set after __post_init__
    @property
    def _source(self) -> BaseConnector:
        assert self.connector is not None
        return self.connector

    @property
    def _snapshots(self) -> SnapshotStore:
        assert self.store is not None
        return self.store

    # ------------------------------------------------------------------ #
    #  Import and snapshots                                               #
    # ------------------------------------------------------------------ #

    async def import_csv(
        self,
        path: str | Path,
        *,
        batch_id: str | None = None,
        imported_at: datetime | None = None,
        as_of: date | None = None,
    ) -> ImportBatch:
        """Import an export file as a new batch and snapshot it.

        Args:
            path: CSV or TSV export.
            batch_id: Identifier for the new batch (random by default).
            imported_at: Import timestamp (now by default).
            as_of: Reference date for ``days_old`` (today by default).

        Returns:
            The stored ImportBatch with its import counters.
        """
        batch_id = batch_id or _new_batch_id()
        importer = CSVImporter(classifier=self.classifier, as_of=as_of)
        result = importer.parse(path, batch_id)
        return await self._store_result(batch_id, Path(path).name, result, imported_at)

    async def import_zip(
        self,
        path: str | Path,
        *,
        batch_id_prefix: str | None = None,
        imported_at: datetime | None = None,
        as_of: date | None = None,
    ) -> list[ImportBatch]:
        """Import every CSV/TXT export inside a ZIP archive.

        Each member becomes its own batch, stored in archive order, so the
        last member ends up as the current batch.

        Args:
            path: ZIP archive.
            batch_id_prefix: Batch ids become ``<prefix>-1``, ``<prefix>-2``, ...
                (random ids by default).
            imported_at: Import timestamp shared by all members (now by default).
            as_of: Reference date for ``days_old`` (today by default).

        Raises:
            FileNotFoundError: The archive does not exist.
            InvalidArchive: The file is not a readable ZIP archive.
        """
        members = extract_csv_members(path)
        if not members:
            logger.warning("No CSV or TXT files found in %s", Path(path).name)
            return []

        importer = CSVImporter(classifier=self.classifier, as_of=as_of)
        imported_at = imported_at or datetime.now(timezone.utc)
        batches: list[ImportBatch] = []
        for position, member in enumerate(members, start=1):
            batch_id = f"{batch_id_prefix}-{position}" if batch_id_prefix else _new_batch_id()
            result = importer.parse_text(member.content, batch_id)
            batches.append(await self._store_result(batch_id, member.name, result, imported_at))
        return batches

    async def _store_result(
        self,
        batch_id: str,
        filename: str,
        result: ImportResult,
        imported_at: datetime | None,
    ) -> ImportBatch:
        batch = ImportBatch(
            id=batch_id,
            filename=filename,
            imported_at=imported_at or datetime.now(timezone.utc),
            record_count=result.record_count,
            skipped_count=result.skipped_count,
            skipped_fully_paid=result.skipped_fully_paid,
            outlier_count=result.outlier_count,
            outlier_high_value=result.outlier_high_value,
            outlier_negative=result.outlier_negative,
        )
        return await self._store_batch(batch, result.invoices)

    async def import_records(
        self,
        filename: str,
        invoices: Sequence[InvoiceRecord],
        *,
        batch_id: str | None = None,
        imported_at: datetime | None = None,
    ) -> ImportBatch:
        """Import already-parsed records as a new batch and snapshot it.

        Records are outlier-flagged the same way the CSV path flags them.
        """
        batch_id = batch_id or _new_batch_id()
        flagged = [
            self.classifier.flag(r.model_copy(update={"batch_id": batch_id}))
            for r in invoices
        ]
        stats = outlier_stats(flagged, include_high_value=True, include_negative=True)
        batch = ImportBatch(
            id=batch_id,
            filename=filename,
            imported_at=imported_at or datetime.now(timezone.utc),
            record_count=len(flagged),
            outlier_count=stats.total,
            outlier_high_value=stats.high_value,
            outlier_negative=stats.negative,
        )
        return await self._store_batch(batch, flagged)

    async def _store_batch(self, batch: ImportBatch, invoices: Sequence[InvoiceRecord]) -> ImportBatch:
        stored = await self._source.add_batch(batch, invoices)
        await self._snapshots.put(stored.id, self._build(stored.id, invoices))
        logger.info("Imported batch %s from %s: %d invoices", stored.id, stored.filename, stored.record_count)
        return stored

    def _build(self, batch_id: str, invoices: Sequence[InvoiceRecord]) -> BatchStats:
        included = analysis_set(
            invoices,
            include_high_value=self.config.outliers.include_high_value,
            include_negative=self.config.outliers.include_negative,
        )
        return self.builder.build(batch_id, included)

    async def backfill(self) -> list[str]:
        """Build snapshots for every live batch that lacks one.

        Returns:
            Ids of the batches snapshotted by this call, oldest first.
        """
        batches = await self.active_batches()
        existing = await self._snapshots.get_many(b.id for b in batches)
        built: list[str] = []
        for batch in batches:
            if batch.id in existing:
                continue
            invoices = await self._source.list_invoices(batch.id)
            try:
                await self._snapshots.put(batch.id, self._build(batch.id, invoices))
            except DuplicateSnapshot:
                logger.info("Snapshot for batch %s was written concurrently; skipping", batch.id)
                continue
            built.append(batch.id)
        logger.info("Backfill built %d snapshot(s)", len(built))
        return built

    # ------------------------------------------------------------------ #
    #  Reads                                                              #
    # ------------------------------------------------------------------ #

    async def list_batches(self, include_deleted: bool = False) -> list[ImportBatch]:
        """Batches oldest first, without deleted ones unless asked."""
        return order_batches(await self._source.list_batches(), include_deleted=include_deleted)

    async def active_batches(self) -> list[ImportBatch]:
        """Non-deleted batches, oldest first."""
        return await self.list_batches()

    async def current_batch(self) -> ImportBatch | None:
        batches = await self.active_batches()
        return batches[-1] if batches else None

    async def current_stats(self) -> BatchStats | None:
        """Snapshot of the most recent live batch, None when there is none yet."""
        batch = await self.current_batch()
        if batch is None:
            return None
        return await self._snapshots.get(batch.id)

    async def stats(self, batch_id: str) -> BatchStats:
        """Snapshot of a specific batch.

        Raises:
            BatchNotFound: The batch id is unknown.
            SnapshotUnavailable: The batch has not been backfilled yet.
        """
        batch = await self._source.get_batch(batch_id)
        stats = await self._snapshots.get(batch.id)
        if stats is None:
            raise SnapshotUnavailable([batch.id])
        return stats

    async def compare_latest(self) -> DeltaReport | NoComparison:
        """Delta report between the two most recent live batches."""
        previous, current = select_comparison_pair(await self._source.list_batches())
        if current is None:
            return NoComparison()
        if previous is None:
            return NoComparison(current_batch=current)

        previous_rows, current_rows, snapshots = await asyncio.gather(
            self._source.list_invoices(previous.id),
            self._source.list_invoices(current.id),
            self._snapshots.get_many([previous.id, current.id]),
        )
        missing = [b.id for b in (previous, current) if b.id not in snapshots]
        if missing:
            return NoComparison(
                reason=EmptyReason.SNAPSHOT_UNAVAILABLE,
                current_batch=current,
                missing_batch_ids=missing,
            )

        # Id sets must come from the same invoices the snapshots counted
        include = {
            "include_high_value": self.config.outliers.include_high_value,
            "include_negative": self.config.outliers.include_negative,
        }
        return self.comparison.compare(
            previous, analysis_set(previous_rows, **include), snapshots[previous.id],
            current, analysis_set(current_rows, **include), snapshots[current.id],
        )

    async def trend(self, metric: MetricSelector | None = None) -> TrendSeries | EmptySeries:
        """Series of ``metric`` over the configured window of recent batches."""
        batches = await self._source.list_batches()
        window = select_window(batches, self.trend_engine.window)
        snapshots = await self._snapshots.get_many(b.id for b in window)
        return self.trend_engine.trend(batches, snapshots, metric)

    async def state_trends(self, measure: str = "count") -> list[TrendSeries] | EmptySeries:
        """One series per process state over the configured window."""
        batches = await self._source.list_batches()
        window = select_window(batches, self.trend_engine.window)
        snapshots = await self._snapshots.get_many(b.id for b in window)
        return self.trend_engine.state_trends(batches, snapshots, measure)

    async def filter_by_bucket(self, label: str, **extra: Any) -> list[InvoiceRecord]:
        """Invoices of the current batch in an aging bucket.

        Args:
            label: Aging bucket label, e.g. ``"30-60"`` or ``"360+"``.
            **extra: Further filter fields (state, vendor, po_type).

        Raises:
            InvalidBucketLabel: The label is malformed.
        """
        flt = to_predicate(label, **extra)
        batch = await self.current_batch()
        if batch is None:
            return []
        return await self._source.query_invoices(batch.id, flt)

    async def outlier_stats(self, batch_id: str | None = None) -> OutlierStats:
        """Outlier counts for a batch (the current one by default)."""
        if batch_id is None:
            batch = await self.current_batch()
            if batch is None:
                return OutlierStats()
            batch_id = batch.id
        invoices = await self._source.list_invoices(batch_id)
        return outlier_stats(
            invoices,
            include_high_value=self.config.outliers.include_high_value,
            include_negative=self.config.outliers.include_negative,
        )

    # ------------------------------------------------------------------ #
    #  Deletion                                                           #
    # ------------------------------------------------------------------ #

    async def delete_latest_batch(self, batch_id: str) -> ImportBatch:
        """Soft-delete the most recent live batch.

        Batches are removed newest first so the comparison pair always
        stays two consecutive imports. The snapshot is kept.

        Raises:
            BatchNotFound: The batch id is unknown.
            BatchOrderViolation: The batch is not the most recent live one.
        """
        batch = await self._source.get_batch(batch_id)
        if batch.is_deleted:
            raise BatchOrderViolation(f"Batch '{batch_id}' is already deleted")
        latest = await self.current_batch()
        if latest is None or latest.id != batch.id:
            raise BatchOrderViolation(
                f"Only the most recent batch ('{latest.id if latest else '-'}') can be deleted, not '{batch_id}'"
            )
        deleted = await self._source.soft_delete(batch_id)
        logger.info("Soft-deleted batch %s", batch_id)
        return deleted

    async def health_check(self) -> dict[str, Any]:
        connector_health, store_health = await asyncio.gather(
            self._source.health_check(),
            self._snapshots.health_check(),
        )
        return {"connector": connector_health, "store": store_health}

    # ------------------------------------------------------------------ #
    #  Synchronous wrappers                                               #
    # ------------------------------------------------------------------ #

    def import_csv_sync(self, path: str | Path, **kwargs: Any) -> ImportBatch:
        """Synchronous wrapper around :meth:`import_csv`."""
        return asyncio.run(self.import_csv(path, **kwargs))

    def import_zip_sync(self, path: str | Path, **kwargs: Any) -> list[ImportBatch]:
        """Synchronous wrapper around :meth:`import_zip`."""
        return asyncio.run(self.import_zip(path, **kwargs))

    def compare_latest_sync(self) -> DeltaReport | NoComparison:
        """Synchronous wrapper around :meth:`compare_latest`."""
        return asyncio.run(self.compare_latest())

    def trend_sync(self, metric: MetricSelector | None = None) -> TrendSeries | EmptySeries:
        """Synchronous wrapper around :meth:`trend`."""
        return asyncio.run(self.trend(metric))

    def backfill_sync(self) -> list[str]:
        """Synchronous wrapper around :meth:`backfill`."""
        return asyncio.run(self.backfill())
