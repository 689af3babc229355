"""
Bucketing rules — map an invoice to its aging, process-state and PO buckets.

Every function here is total: unrecognized input lands in a catch-all
bucket (``0-30`` for ages, ``Unknown`` for states and PO types) instead of
raising, so a single malformed record can never fail a snapshot.
"""

from __future__ import annotations

import math
import re
from typing import Any

from invoicepulse.models.invoice import InvoiceRecord, PoType

AGING_BUCKET_DAYS = 30
AGING_CAP_DAYS = 360

UNKNOWN_STATE = "Unknown"
DEFAULT_READY_PREFIX = "08"

_NUMBERED_STATE = re.compile(r"^\d+\s*-\s*.+$")
_STATE_PREFIX = re.compile(r"^(\d+)")
_STATE_NAME = re.compile(r"^\d+\s*-\s*(.+)$")

# Unmatched labels sort after every numbered state
_UNNUMBERED_ORDER = 10**9


# ------------------------------------------------------------------ #
#  Aging                                                              #
# ------------------------------------------------------------------ #


def aging_bucket_min(days_old: Any) -> int:
    """Lower bound of the 30-day bucket holding ``days_old``.

    Negative, missing or non-numeric ages clamp to 0; anything at or past
    360 days merges into the open-ended bucket.
    """
    try:
        days = math.floor(float(days_old))
    except (TypeError, ValueError, OverflowError):
        return 0
    if days < 0:
        return 0
    return min((days // AGING_BUCKET_DAYS) * AGING_BUCKET_DAYS, AGING_CAP_DAYS)


def aging_label(min_days: int) -> str:
    if min_days >= AGING_CAP_DAYS:
        return f"{AGING_CAP_DAYS}+"
    return f"{min_days}-{min_days + AGING_BUCKET_DAYS}"


def aging_bucket(days_old: Any) -> str:
    """Label of the aging bucket for an age in days (e.g. ``"30-60"``, ``"360+"``)."""
    return aging_label(aging_bucket_min(days_old))


def aging_bucket_bounds() -> list[tuple[int, int | None, str]]:
    """All aging buckets in display order as ``(min_days, max_days_exclusive, label)``."""
    bounds: list[tuple[int, int | None, str]] = []
    for low in range(0, AGING_CAP_DAYS, AGING_BUCKET_DAYS):
        bounds.append((low, low + AGING_BUCKET_DAYS, aging_label(low)))
    bounds.append((AGING_CAP_DAYS, None, aging_label(AGING_CAP_DAYS)))
    return bounds


# ------------------------------------------------------------------ #
#  Process state                                                      #
# ------------------------------------------------------------------ #


def is_numbered_state(label: Any) -> bool:
    return isinstance(label, str) and bool(_NUMBERED_STATE.match(label.strip()))


def process_state_bucket(label: Any) -> str:
    """The state label itself, or ``UNKNOWN_STATE`` when it isn't ``"NN - description"``."""
    if is_numbered_state(label):
        return label
    return UNKNOWN_STATE


def state_sort_key(label: str) -> tuple[int, str]:
    """Display order: leading number ascending, unnumbered labels last."""
    match = _STATE_PREFIX.match(label.strip()) if isinstance(label, str) else None
    if match and is_numbered_state(label):
        return (int(match.group(1)), label)
    return (_UNNUMBERED_ORDER, str(label))


def short_state_name(label: str) -> str:
    """``"01 - Header To Be Verified"`` -> ``"Header To Be Verified"``."""
    match = _STATE_NAME.match(label.strip()) if isinstance(label, str) else None
    return match.group(1) if match else str(label)


def is_ready_for_payment(label: Any, prefix: str = DEFAULT_READY_PREFIX) -> bool:
    """Terminal "ready for payment" check; everything else is backlog."""
    if not isinstance(label, str):
        return False
    state = label.strip()
    return state.startswith(prefix) or "ready for payment" in state.lower()


def requires_investigation(label: Any) -> bool:
    return isinstance(label, str) and "investigation" in label.lower()


# ------------------------------------------------------------------ #
#  PO classification and weights                                      #
# ------------------------------------------------------------------ #


def normalize_po_type(raw: Any) -> PoType:
    """Coerce a raw PO column value to PO, Non-PO or Unknown. Never drops a value."""
    if isinstance(raw, PoType):
        return raw
    if raw is None:
        return PoType.UNKNOWN
    return PoType(str(raw))


def safe_amount(record: InvoiceRecord) -> float:
    """Invoice amount as a finite float; NaN/inf weigh nothing."""
    try:
        amount = float(record.amount)
    except (TypeError, ValueError):
        return 0.0
    return amount if math.isfinite(amount) else 0.0


def record_weights(record: InvoiceRecord) -> tuple[int, float]:
    """Weights an invoice contributes to a bucket: ``(count=1, value=amount)``."""
    return 1, safe_amount(record)
