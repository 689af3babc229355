"""
Bucket-filter translation — turn a clicked aging bucket into a query.

Bucket labels use exclusive upper bounds (``"30-60"`` holds ages 30..59)
while the invoice query surface takes inclusive day bounds, so the closing
bound is shifted down by one.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from typing import Any

from invoicepulse.exceptions import InvalidBucketLabel
from invoicepulse.models.invoice import InvoiceFilter, InvoiceRecord

logger = logging.getLogger("invoicepulse.analyzers.bucket_filter")

_OPEN_BUCKET = re.compile(r"^(\d+)\s*\+$")
_CLOSED_BUCKET = re.compile(r"^(\d+)\s*-\s*(\d+)$")


def to_predicate(label: str, **extra: Any) -> InvoiceFilter:
    """Translate an aging bucket label to an inclusive day-range filter.

    Args:
        label: ``"A-B"`` (ages A..B-1) or ``"N+"`` (ages N and up).
        **extra: Other filter fields (state, vendor, po_type) to combine with.

    Returns:
        InvoiceFilter with ``min_days`` and, for closed buckets, ``max_days``.

    Raises:
        InvalidBucketLabel: When the label is not a well-formed bucket.
    """
    if not isinstance(label, str):
        raise InvalidBucketLabel(label)
    text = label.strip()

    match = _OPEN_BUCKET.match(text)
    if match:
        return InvoiceFilter(min_days=int(match.group(1)), **extra)

    match = _CLOSED_BUCKET.match(text)
    if match:
        low, high = int(match.group(1)), int(match.group(2))
        if high <= low:
            raise InvalidBucketLabel(label)
        return InvoiceFilter(min_days=low, max_days=high - 1, **extra)

    # Signs never match the patterns above, so "-5-10" lands here too
    raise InvalidBucketLabel(label)


def filter_invoices(invoices: Iterable[InvoiceRecord], flt: InvoiceFilter) -> list[InvoiceRecord]:
    """Apply a filter to records in memory, preserving input order."""
    matched = [record for record in invoices if flt.matches(record)]
    logger.debug("Filter %s matched %d invoice(s)", flt.to_params(), len(matched))
    return matched
