"""
Snapshot Builder — aggregates one batch's invoices into a ``BatchStats``.

The builder is a pure function of the invoice set: the same records in any
order produce a field-wise identical snapshot. Sums use ``math.fsum``
(correctly rounded, so order-independent) and every ranking has a total
tie-break.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from collections.abc import Iterable, Mapping

from invoicepulse.analyzers.bucketing import (
    DEFAULT_READY_PREFIX,
    UNKNOWN_STATE,
    aging_bucket_bounds,
    aging_bucket_min,
    is_numbered_state,
    is_ready_for_payment,
    normalize_po_type,
    record_weights,
    requires_investigation,
)
from invoicepulse.models.invoice import InvoiceRecord, PoType
from invoicepulse.models.stats import (
    AgingBucket,
    BatchStats,
    BucketTotals,
    VendorRankMode,
    VendorTotals,
)

logger = logging.getLogger("invoicepulse.analyzers.snapshot_builder")

DEFAULT_TOP_VENDORS = 10
UNKNOWN_SUPPLIER = "Unknown"


def _totals(amounts: list[float]) -> BucketTotals:
    return BucketTotals(count=len(amounts), value=math.fsum(amounts))


class SnapshotBuilder:
    """Builds immutable batch snapshots.

    Usage::

        builder = SnapshotBuilder(top_vendors_limit=10)
        stats = builder.build("batch-42", invoices)
        stats.backlog_count, stats.aging_breakdown[0].count
    """

    def __init__(
        self,
        top_vendors_limit: int = DEFAULT_TOP_VENDORS,
        vendor_rank_mode: VendorRankMode | str = VendorRankMode.VALUE,
        ready_state_prefix: str = DEFAULT_READY_PREFIX,
    ) -> None:
        if top_vendors_limit < 1:
            raise ValueError("top_vendors_limit must be at least 1")
        self.top_vendors_limit = top_vendors_limit
        self.vendor_rank_mode = VendorRankMode(vendor_rank_mode)
        self.ready_state_prefix = ready_state_prefix

    def build(self, batch_id: str, invoices: Iterable[InvoiceRecord]) -> BatchStats:
        """Aggregate ``invoices`` into the snapshot for ``batch_id``.

        Args:
            batch_id: Batch the snapshot belongs to.
            invoices: All invoice records of the batch that count toward analysis.

        Returns:
            BatchStats whose breakdowns each partition the full record set.
        """
        records = list(invoices)
        if not records:
            return BatchStats(batch_id=batch_id, vendor_rank_mode=self.vendor_rank_mode)

        all_amounts: list[float] = []
        backlog_amounts: list[float] = []
        backlog_days: list[float] = []
        ready_amounts: list[float] = []
        investigation_amounts: list[float] = []
        unknown_amounts: list[float] = []
        aging: dict[int, list[float]] = defaultdict(list)
        states: dict[str, list[float]] = defaultdict(list)
        po: dict[PoType, list[float]] = {p: [] for p in PoType}
        vendors: dict[str, list[float]] = defaultdict(list)

        for record in records:
            _, amount = record_weights(record)
            all_amounts.append(amount)

            if is_ready_for_payment(record.process_state, self.ready_state_prefix):
                ready_amounts.append(amount)
            else:
                backlog_amounts.append(amount)
                backlog_days.append(float(max(record.days_old or 0, 0)))

            if requires_investigation(record.process_state):
                investigation_amounts.append(amount)

            aging[aging_bucket_min(record.days_old)].append(amount)

            if is_numbered_state(record.process_state):
                states[record.process_state].append(amount)
            else:
                unknown_amounts.append(amount)

            po[normalize_po_type(record.po_type)].append(amount)
            vendors[record.supplier or UNKNOWN_SUPPLIER].append(amount)

        if unknown_amounts:
            logger.debug(
                "Batch %s: %d invoice(s) without a numbered process state grouped as %s",
                batch_id, len(unknown_amounts), UNKNOWN_STATE,
            )

        stats = BatchStats(
            batch_id=batch_id,
            total_invoices=len(all_amounts),
            total_value=math.fsum(all_amounts),
            backlog_count=len(backlog_amounts),
            backlog_value=math.fsum(backlog_amounts),
            ready_for_payment_count=len(ready_amounts),
            ready_for_payment_value=math.fsum(ready_amounts),
            aging_breakdown=self._aging_breakdown(aging),
            process_state_counts={state: _totals(states[state]) for state in sorted(states)},
            unknown_state=_totals(unknown_amounts),
            po_breakdown={p: _totals(amounts) for p, amounts in po.items()},
            top_vendors=self._top_vendors(vendors),
            vendor_rank_mode=self.vendor_rank_mode,
            average_days_old=math.fsum(backlog_days) / len(backlog_days) if backlog_days else 0.0,
            requires_investigation=_totals(investigation_amounts),
        )
        logger.info(
            "Built snapshot for batch %s: %d invoices, %d backlog, %d ready for payment",
            batch_id, stats.total_invoices, stats.backlog_count, stats.ready_for_payment_count,
        )
        return stats

    def build_many(self, invoices_by_batch: Mapping[str, Iterable[InvoiceRecord]]) -> dict[str, BatchStats]:
        """Build snapshots for several batches at once."""
        return {batch_id: self.build(batch_id, invoices) for batch_id, invoices in invoices_by_batch.items()}

    # ------------------------------------------------------------------ #
    #  Breakdowns                                                         #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _aging_breakdown(aging: dict[int, list[float]]) -> tuple[AgingBucket, ...]:
        buckets = []
        for low, high, label in aging_bucket_bounds():
            amounts = aging.get(low, [])
            buckets.append(AgingBucket(
                bucket=label,
                min_days=low,
                max_days=high,
                count=len(amounts),
                value=math.fsum(amounts),
            ))
        return tuple(buckets)

    def _top_vendors(self, vendors: dict[str, list[float]]) -> tuple[VendorTotals, ...]:
        totals = [
            VendorTotals(supplier=supplier, count=len(amounts), value=math.fsum(amounts))
            for supplier, amounts in vendors.items()
        ]
        if self.vendor_rank_mode == VendorRankMode.COUNT:
            totals.sort(key=lambda v: (-v.count, v.supplier))
        else:
            totals.sort(key=lambda v: (-v.value, v.supplier))
        # Suppliers past the limit are omitted, not merged into an "other" row
        return tuple(totals[: self.top_vendors_limit])


def build_snapshot(
    batch_id: str,
    invoices: Iterable[InvoiceRecord],
    *,
    top_vendors_limit: int = DEFAULT_TOP_VENDORS,
    vendor_rank_mode: VendorRankMode | str = VendorRankMode.VALUE,
) -> BatchStats:
    """Convenience function to build a snapshot with default settings.

    Args:
        batch_id: Batch the invoices belong to.
        invoices: Invoice records of the batch.
        top_vendors_limit: Number of suppliers to keep.
        vendor_rank_mode: Rank suppliers by "value" or "count".

    Returns:
        BatchStats snapshot.
    """
    builder = SnapshotBuilder(top_vendors_limit=top_vendors_limit, vendor_rank_mode=vendor_rank_mode)
    return builder.build(batch_id, invoices)
