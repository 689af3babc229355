"""
Outlier Classifier — flags invoices that would distort batch analytics.

Two kinds of outlier are flagged at import time:

1. **High value**: an amount above the threshold while the invoice is
   still in the header-verification state, typically a keying error.
2. **Negative**: credit notes and reversals.

Flagged invoices are kept in the batch but excluded from snapshots unless
configuration or a per-invoice override includes them.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from invoicepulse.analyzers.bucketing import safe_amount
from invoicepulse.models.invoice import InvoiceRecord, OutlierReason

logger = logging.getLogger("invoicepulse.analyzers.outliers")

DEFAULT_HIGH_VALUE_THRESHOLD = 100_000.0
DEFAULT_HIGH_VALUE_STATE = "01 - Header To Be Verified"


@dataclass
class OutlierStats:
    """Outlier counts for one batch."""

    total: int = 0
    high_value: int = 0
    negative: int = 0
    included: int = 0
    excluded: int = 0


class OutlierClassifier:
    """Classifies invoices as high-value or negative outliers."""

    def __init__(
        self,
        high_value_threshold: float = DEFAULT_HIGH_VALUE_THRESHOLD,
        high_value_state: str = DEFAULT_HIGH_VALUE_STATE,
    ) -> None:
        self.high_value_threshold = high_value_threshold
        self.high_value_state = high_value_state

    def classify(self, amount: float, process_state: str | None) -> OutlierReason | None:
        """Outlier reason for one invoice, or None for a regular invoice."""
        if amount > self.high_value_threshold and process_state == self.high_value_state:
            return OutlierReason.HIGH_VALUE
        if amount < 0:
            return OutlierReason.NEGATIVE
        return None

    def flag(self, record: InvoiceRecord) -> InvoiceRecord:
        """Copy of ``record`` with outlier fields set.

        An explicit ``include_in_analysis`` already on the record is kept;
        otherwise it defaults to ``not is_outlier``.
        """
        reason = self.classify(safe_amount(record), record.process_state)
        include = record.include_in_analysis
        if include is None:
            include = reason is None
        return record.model_copy(update={
            "is_outlier": reason is not None,
            "outlier_reason": reason,
            "include_in_analysis": include,
        })

    def flag_all(self, records: Iterable[InvoiceRecord]) -> list[InvoiceRecord]:
        flagged = [self.flag(r) for r in records]
        outliers = sum(1 for r in flagged if r.is_outlier)
        if outliers:
            logger.info("Flagged %d outlier(s) among %d invoice(s)", outliers, len(flagged))
        return flagged


def is_included(
    record: InvoiceRecord,
    include_high_value: bool = False,
    include_negative: bool = False,
) -> bool:
    """Whether an invoice counts toward snapshots.

    Regular invoices count unless explicitly excluded. Outliers count only
    when explicitly included or when their reason is enabled.
    """
    if not record.is_outlier:
        return record.include_in_analysis is not False
    if record.include_in_analysis:
        return True
    if record.outlier_reason == OutlierReason.HIGH_VALUE:
        return include_high_value
    if record.outlier_reason == OutlierReason.NEGATIVE:
        return include_negative
    return False


def analysis_set(
    records: Iterable[InvoiceRecord],
    include_high_value: bool = False,
    include_negative: bool = False,
) -> list[InvoiceRecord]:
    """Invoices of a batch that snapshots are built from."""
    return [r for r in records if is_included(r, include_high_value, include_negative)]


def outlier_stats(
    records: Iterable[InvoiceRecord],
    include_high_value: bool = False,
    include_negative: bool = False,
) -> OutlierStats:
    """Count outliers and how many of them are included in analysis."""
    stats = OutlierStats()
    for record in records:
        if not record.is_outlier:
            continue
        stats.total += 1
        if record.outlier_reason == OutlierReason.HIGH_VALUE:
            stats.high_value += 1
        elif record.outlier_reason == OutlierReason.NEGATIVE:
            stats.negative += 1
        if is_included(record, include_high_value, include_negative):
            stats.included += 1
        else:
            stats.excluded += 1
    return stats
