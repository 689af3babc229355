"""
Comparison Engine — batch-over-batch delta between two snapshots.

New and resolved invoices are identified by invoice id and their values are
summed from the actual records in each id set, never estimated from the
difference of totals. State rows cover every label seen in either snapshot
and keep zero-change rows; hiding them is a presentation decision.
"""

from __future__ import annotations

import logging
import math
from collections import Counter, defaultdict
from collections.abc import Collection, Mapping, Sequence
from typing import Union

from invoicepulse.analyzers.bucketing import UNKNOWN_STATE, process_state_bucket, safe_amount, state_sort_key
from invoicepulse.models.invoice import ImportBatch, InvoiceRecord, order_batches
from invoicepulse.models.report import DeltaReport, EmptyReason, NoComparison, StateChange
from invoicepulse.models.stats import BatchStats

logger = logging.getLogger("invoicepulse.analyzers.comparison")

# Full records, a bare ``{invoice_id: amount}`` mapping, or just the ids
InvoiceSet = Union[Sequence[InvoiceRecord], Mapping[str, float], Collection[str]]


class _IndexedSet:
    """Amount (and, when known, state bucket) per invoice id.

    A bare id collection carries membership only; its values stay unknown.
    """

    def __init__(self, invoices: InvoiceSet | None) -> None:
        self.amounts: dict[str, list[float]] = defaultdict(list)
        self.states: dict[str, str] | None = None
        self.has_amounts = True

        if invoices is None:
            return
        if isinstance(invoices, str):
            raise TypeError("An invoice set must be a collection, not a single id")
        if isinstance(invoices, Mapping):
            for invoice_id, amount in invoices.items():
                self.amounts[str(invoice_id)].append(float(amount or 0.0))
            return

        items = list(invoices)
        if items and all(isinstance(i, str) for i in items):
            self.has_amounts = False
            for invoice_id in items:
                self.amounts.setdefault(invoice_id, [])
            return

        self.states = {}
        for record in items:
            if not isinstance(record, InvoiceRecord):
                raise TypeError(f"Expected InvoiceRecord or invoice id, got {type(record).__name__}")
            self.amounts[record.id].append(safe_amount(record))
            # Duplicate ids within a batch keep the first label seen
            self.states.setdefault(record.id, process_state_bucket(record.process_state))

    @property
    def ids(self) -> set[str]:
        return set(self.amounts)

    def value_of(self, ids: set[str]) -> float | None:
        if not self.has_amounts:
            return None
        return math.fsum(a for invoice_id in ids for a in self.amounts[invoice_id])


def select_comparison_pair(batches: Sequence[ImportBatch]) -> tuple[ImportBatch | None, ImportBatch | None]:
    """Pick ``(previous, current)`` from a batch directory listing.

    Deleted batches are skipped and the rest re-sorted by import time, so
    fetch order never matters. ``previous`` is None with fewer than two
    usable batches; both are None when there are none.
    """
    ordered = order_batches(list(batches))
    if not ordered:
        return None, None
    if len(ordered) == 1:
        return None, ordered[0]
    return ordered[-2], ordered[-1]


class ComparisonEngine:
    """Computes delta reports between consecutive batch snapshots.

    Usage::

        engine = ComparisonEngine()
        report = engine.compare(prev_batch, prev_invoices, prev_stats,
                                cur_batch, cur_invoices, cur_stats)
        if report.available:
            print(report.new_count, report.resolved_count)
    """

    def compare(
        self,
        previous_batch: ImportBatch | None,
        previous_invoices: InvoiceSet | None,
        previous_stats: BatchStats | None,
        current_batch: ImportBatch,
        current_invoices: InvoiceSet,
        current_stats: BatchStats,
    ) -> DeltaReport | NoComparison:
        """Compare the current batch against the previous one.

        Args:
            previous_batch: Older batch, or None when only one usable batch exists.
            previous_invoices: Records, id -> amount mapping, or bare ids of the older batch.
            previous_stats: Snapshot of the older batch.
            current_batch: Newer batch.
            current_invoices: Records, id -> amount mapping, or bare ids of the newer batch.
            current_stats: Snapshot of the newer batch.

        Returns:
            DeltaReport, or NoComparison when there is nothing to compare against.

        Raises:
            TypeError: An invoice set holds something other than records or ids.
            ValueError: The previous batch sorts after the current one.
        """
        if previous_batch is None:
            return NoComparison(reason=EmptyReason.INSUFFICIENT_DATA, current_batch=current_batch)
        if previous_stats is None:
            return NoComparison(
                reason=EmptyReason.SNAPSHOT_UNAVAILABLE,
                current_batch=current_batch,
                missing_batch_ids=[previous_batch.id],
            )
        if previous_batch.sort_key > current_batch.sort_key:
            raise ValueError(
                f"Previous batch {previous_batch.id} was imported after current batch {current_batch.id}"
            )

        previous = _IndexedSet(previous_invoices)
        current = _IndexedSet(current_invoices)

        resolved_ids = previous.ids - current.ids
        new_ids = current.ids - previous.ids

        report = DeltaReport(
            previous_batch=previous_batch,
            current_batch=current_batch,
            previous_count=previous_stats.total_invoices,
            current_count=current_stats.total_invoices,
            previous_value=previous_stats.total_value,
            current_value=current_stats.total_value,
            resolved_count=len(resolved_ids),
            resolved_value=previous.value_of(resolved_ids),
            new_count=len(new_ids),
            new_value=current.value_of(new_ids),
            resolved_ids=sorted(resolved_ids),
            new_ids=sorted(new_ids),
            state_changes=self._state_changes(previous_stats, current_stats, previous, current, resolved_ids, new_ids),
        )
        logger.info(
            "Compared %s -> %s: %d new, %d resolved, net %+d",
            previous_batch.id, current_batch.id, report.new_count, report.resolved_count, report.net_change,
        )
        return report

    @staticmethod
    def _state_changes(
        previous_stats: BatchStats,
        current_stats: BatchStats,
        previous: _IndexedSet,
        current: _IndexedSet,
        resolved_ids: set[str],
        new_ids: set[str],
    ) -> list[StateChange]:
        def counts(stats: BatchStats) -> dict[str, int]:
            by_state = {state: totals.count for state, totals in stats.process_state_counts.items()}
            if stats.unknown_state.count:
                by_state[UNKNOWN_STATE] = stats.unknown_state.count
            return by_state

        previous_counts = counts(previous_stats)
        current_counts = counts(current_stats)

        resolved_by_state: Counter[str] | None = None
        new_by_state: Counter[str] | None = None
        if previous.states is not None:
            resolved_by_state = Counter(previous.states[i] for i in resolved_ids)
        if current.states is not None:
            new_by_state = Counter(current.states[i] for i in new_ids)

        rows: list[StateChange] = []
        for state in sorted(set(previous_counts) | set(current_counts), key=state_sort_key):
            before = previous_counts.get(state, 0)
            after = current_counts.get(state, 0)
            rows.append(StateChange(
                state=state,
                previous_count=before,
                current_count=after,
                change=after - before,
                new_count=new_by_state.get(state, 0) if new_by_state is not None else None,
                resolved_count=resolved_by_state.get(state, 0) if resolved_by_state is not None else None,
            ))
        return rows


def compare_batches(
    previous_batch: ImportBatch | None,
    previous_invoices: InvoiceSet | None,
    previous_stats: BatchStats | None,
    current_batch: ImportBatch,
    current_invoices: InvoiceSet,
    current_stats: BatchStats,
) -> DeltaReport | NoComparison:
    """Convenience function wrapping :meth:`ComparisonEngine.compare`."""
    return ComparisonEngine().compare(
        previous_batch, previous_invoices, previous_stats,
        current_batch, current_invoices, current_stats,
    )
