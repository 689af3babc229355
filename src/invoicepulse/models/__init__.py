"""Data models — invoices, batches, snapshots and derived reports."""
from invoicepulse.models.invoice import (
    ImportBatch,
    InvoiceFilter,
    InvoiceRecord,
    OutlierReason,
    PoType,
    order_batches,
)
from invoicepulse.models.report import (
    DeltaReport,
    EmptyReason,
    EmptySeries,
    MetricKind,
    MetricSelector,
    NoComparison,
    StateChange,
    TrendPoint,
    TrendSeries,
)
from invoicepulse.models.stats import (
    AgingBucket,
    BatchStats,
    BucketTotals,
    VendorRankMode,
    VendorTotals,
)

__all__ = [
    "AgingBucket",
    "BatchStats",
    "BucketTotals",
    "DeltaReport",
    "EmptyReason",
    "EmptySeries",
    "ImportBatch",
    "InvoiceFilter",
    "InvoiceRecord",
    "MetricKind",
    "MetricSelector",
    "NoComparison",
    "OutlierReason",
    "PoType",
    "StateChange",
    "TrendPoint",
    "TrendSeries",
    "VendorRankMode",
    "VendorTotals",
    "order_batches",
]
