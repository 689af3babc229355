"""
Invoice and import-batch models — the raw inputs to every snapshot.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Raw PO column values seen in exports, upper-cased
_PO_ALIASES: dict[str, str] = {
    "PO": "PO",
    "YES": "PO",
    "Y": "PO",
    "NON-PO": "Non-PO",
    "NON PO": "Non-PO",
    "NONPO": "Non-PO",
    "NO": "Non-PO",
    "N": "Non-PO",
}


class PoType(str, Enum):
    """Purchase-order classification of an invoice.

    Lookup is total: any raw value that is not a known alias becomes UNKNOWN
    instead of raising, so a record is never dropped for its PO column.
    """

    PO = "PO"
    NON_PO = "Non-PO"
    UNKNOWN = "Unknown"

    @classmethod
    def _missing_(cls, value: object) -> PoType:
        if isinstance(value, str):
            alias = _PO_ALIASES.get(value.strip().upper())
            if alias is not None:
                return cls(alias)
        return cls.UNKNOWN


class OutlierReason(str, Enum):
    """Why an invoice was flagged at import."""

    HIGH_VALUE = "high_value"
    NEGATIVE = "negative"


class InvoiceRecord(BaseModel):
    """One invoice line at import time. Immutable once imported."""

    model_config = ConfigDict(frozen=True)

    id: str
    batch_id: str
    supplier: str | None = None
    amount: float = 0.0
    days_old: int | None = None
    process_state: str | None = None
    po_type: PoType = PoType.UNKNOWN

    invoice_number: str | None = None
    invoice_date: date | None = None

    # Outlier tracking
    is_outlier: bool = False
    outlier_reason: OutlierReason | None = None
    include_in_analysis: bool | None = None

    @field_validator("amount", mode="before")
    @classmethod
    def _missing_amount_is_zero(cls, value: Any) -> Any:
        return 0.0 if value is None else value

    @field_validator("po_type", mode="before")
    @classmethod
    def _coerce_po_type(cls, value: Any) -> PoType:
        if isinstance(value, PoType):
            return value
        return PoType(value) if value is not None else PoType.UNKNOWN


class ImportBatch(BaseModel):
    """One import event.

    Batches are totally ordered by ``imported_at``; ties are broken by
    ``sequence`` (insertion order). A deleted batch keeps its snapshot but
    is excluded from comparisons and trends.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    filename: str
    imported_at: datetime
    sequence: int = 0
    is_deleted: bool = False

    # Import statistics
    record_count: int = 0
    skipped_count: int = 0
    skipped_fully_paid: int = 0
    outlier_count: int = 0
    outlier_high_value: int = 0
    outlier_negative: int = 0

    @field_validator("imported_at")
    @classmethod
    def _naive_is_utc(cls, value: datetime) -> datetime:
        # SQLite drops tzinfo; every timestamp is compared as UTC
        return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)

    @property
    def sort_key(self) -> tuple[datetime, int]:
        return (self.imported_at, self.sequence)

    @property
    def label(self) -> str:
        """Short label unique per import, even for several imports on one day."""
        return self.imported_at.strftime("%Y-%m-%d %H:%M")


def order_batches(batches: list[ImportBatch], *, include_deleted: bool = False) -> list[ImportBatch]:
    """Return batches oldest-first, without deleted ones unless asked."""
    kept = [b for b in batches if include_deleted or not b.is_deleted]
    return sorted(kept, key=lambda b: b.sort_key)


class InvoiceFilter(BaseModel):
    """Query parameters accepted by the invoice query surface.

    Day bounds are inclusive. A record without ``days_old`` never satisfies
    a day bound.
    """

    model_config = ConfigDict(frozen=True)

    state: str | None = None
    vendor: str | None = None
    po_type: PoType | None = None
    min_days: int | None = Field(default=None, ge=0)
    max_days: int | None = Field(default=None, ge=0)

    def matches(self, record: InvoiceRecord) -> bool:
        if self.state is not None and record.process_state != self.state:
            return False
        if self.vendor:
            if not record.supplier or self.vendor.lower() not in record.supplier.lower():
                return False
        if self.po_type is not None and record.po_type != self.po_type:
            return False
        if self.min_days is not None or self.max_days is not None:
            if record.days_old is None:
                return False
            if self.min_days is not None and record.days_old < self.min_days:
                return False
            if self.max_days is not None and record.days_old > self.max_days:
                return False
        return True

    def to_params(self) -> dict[str, Any]:
        """Query-string shape with unset keys omitted."""
        return self.model_dump(mode="json", exclude_none=True)
