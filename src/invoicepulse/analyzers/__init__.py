"""
InvoicePulse Analyzers — pure computation over invoice batches.

Nothing in this package performs I/O: snapshots, deltas, trends and
filters are computed from values the caller has already fetched.
"""

from invoicepulse.analyzers.bucket_filter import filter_invoices, to_predicate
from invoicepulse.analyzers.bucketing import (
    UNKNOWN_STATE,
    aging_bucket,
    aging_bucket_bounds,
    is_ready_for_payment,
    normalize_po_type,
    process_state_bucket,
    short_state_name,
    state_sort_key,
)
from invoicepulse.analyzers.comparison import ComparisonEngine, compare_batches, select_comparison_pair
from invoicepulse.analyzers.outliers import (
    OutlierClassifier,
    OutlierStats,
    analysis_set,
    is_included,
    outlier_stats,
)
from invoicepulse.analyzers.snapshot_builder import SnapshotBuilder, build_snapshot
from invoicepulse.analyzers.trend import DEFAULT_TREND_WINDOW, TrendEngine, backlog_trend, select_window

__all__ = [
    "DEFAULT_TREND_WINDOW",
    "UNKNOWN_STATE",
    "ComparisonEngine",
    "OutlierClassifier",
    "OutlierStats",
    "SnapshotBuilder",
    "TrendEngine",
    "aging_bucket",
    "aging_bucket_bounds",
    "analysis_set",
    "backlog_trend",
    "build_snapshot",
    "compare_batches",
    "filter_invoices",
    "is_included",
    "is_ready_for_payment",
    "normalize_po_type",
    "outlier_stats",
    "process_state_bucket",
    "select_comparison_pair",
    "select_window",
    "short_state_name",
    "state_sort_key",
    "to_predicate",
]
