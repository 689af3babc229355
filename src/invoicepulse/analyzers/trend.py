"""
Trend Engine — a metric tracked across the most recent batch snapshots.

Only snapshots are read; invoice rows are never re-aggregated. A window
that cannot be drawn (fewer than two batches, or a batch whose snapshot
has not been backfilled yet) yields an ``EmptySeries`` instead of a
partially filled line.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

from invoicepulse.analyzers.bucketing import state_sort_key
from invoicepulse.models.invoice import ImportBatch, order_batches
from invoicepulse.models.report import (
    EmptyReason,
    EmptySeries,
    MetricKind,
    MetricSelector,
    TrendPoint,
    TrendSeries,
)
from invoicepulse.models.stats import BatchStats

logger = logging.getLogger("invoicepulse.analyzers.trend")

DEFAULT_TREND_WINDOW = 5
MIN_TREND_POINTS = 2


def select_window(batches: Sequence[ImportBatch], window: int = DEFAULT_TREND_WINDOW) -> list[ImportBatch]:
    """Last ``window`` non-deleted batches, oldest first."""
    if window < 1:
        raise ValueError("window must be at least 1")
    return order_batches(list(batches))[-window:]


class TrendEngine:
    """Builds fixed-window metric series from stored snapshots.

    Usage::

        engine = TrendEngine(window=5)
        series = engine.trend(batches, stats_by_batch, MetricSelector())
        if series.available:
            print(series.values, series.change)
    """

    def __init__(self, window: int = DEFAULT_TREND_WINDOW) -> None:
        if window < 1:
            raise ValueError("window must be at least 1")
        self.window = window

    def trend(
        self,
        batches: Sequence[ImportBatch],
        stats_by_batch: Mapping[str, BatchStats],
        metric: MetricSelector | None = None,
    ) -> TrendSeries | EmptySeries:
        """Series of ``metric`` over the last ``window`` batches.

        Args:
            batches: Batch directory listing, in any order.
            stats_by_batch: Snapshots keyed by batch id.
            metric: Metric to track (backlog count by default).

        Returns:
            TrendSeries oldest first, or EmptySeries when it cannot be drawn.
        """
        metric = metric or MetricSelector()
        selected, empty = self._select(batches, stats_by_batch)
        if empty is not None:
            return empty
        return self._series(selected, stats_by_batch, metric)

    def state_trends(
        self,
        batches: Sequence[ImportBatch],
        stats_by_batch: Mapping[str, BatchStats],
        measure: str = "count",
    ) -> list[TrendSeries] | EmptySeries:
        """One series per process state seen anywhere in the window.

        States absent from a batch count as zero there. A series is dropped
        only when it is zero throughout; a state that drained to zero keeps
        its line.
        """
        if measure not in ("count", "value"):
            raise ValueError(f"measure must be 'count' or 'value', got {measure!r}")
        selected, empty = self._select(batches, stats_by_batch)
        if empty is not None:
            return empty

        states: set[str] = set()
        for batch in selected:
            states.update(stats_by_batch[batch.id].process_state_counts)

        series_list = []
        for state in sorted(states, key=state_sort_key):
            series = self._series(selected, stats_by_batch, MetricSelector.for_state(state, measure))
            if series.change == 0 and all(v == 0 for v in series.values):
                continue
            series_list.append(series)
        return series_list

    @staticmethod
    def extract(stats: BatchStats, metric: MetricSelector) -> float:
        """Read one metric value out of a snapshot."""
        if metric.kind == MetricKind.PROCESS_STATE:
            totals = stats.state_totals(metric.state or "")
            return float(totals.value if metric.measure == "value" else totals.count)
        return float(getattr(stats, metric.kind.value))

    # ------------------------------------------------------------------ #
    #  Internal                                                           #
    # ------------------------------------------------------------------ #

    def _select(
        self,
        batches: Sequence[ImportBatch],
        stats_by_batch: Mapping[str, BatchStats],
    ) -> tuple[list[ImportBatch], EmptySeries | None]:
        selected = select_window(batches, self.window)
        if len(selected) < MIN_TREND_POINTS:
            return selected, EmptySeries(reason=EmptyReason.INSUFFICIENT_DATA)

        missing = [b.id for b in selected if b.id not in stats_by_batch]
        if missing:
            logger.warning("Trend window has %d batch(es) without a snapshot: %s", len(missing), ", ".join(missing))
            return selected, EmptySeries(reason=EmptyReason.SNAPSHOT_UNAVAILABLE, missing_batch_ids=missing)
        return selected, None

    def _series(
        self,
        selected: list[ImportBatch],
        stats_by_batch: Mapping[str, BatchStats],
        metric: MetricSelector,
    ) -> TrendSeries:
        points = [
            TrendPoint(
                batch_id=batch.id,
                label=batch.label,
                imported_at=batch.imported_at,
                value=self.extract(stats_by_batch[batch.id], metric),
            )
            for batch in selected
        ]
        return TrendSeries(metric=metric, points=points, change=points[-1].value - points[0].value)


def backlog_trend(
    batches: Sequence[ImportBatch],
    stats_by_batch: Mapping[str, BatchStats],
    window: int = DEFAULT_TREND_WINDOW,
) -> TrendSeries | EmptySeries:
    """Convenience function for the backlog-count trend."""
    return TrendEngine(window).trend(batches, stats_by_batch, MetricSelector(kind=MetricKind.BACKLOG_COUNT))
