"""
Batch snapshot model — the pre-aggregated statistics for one import batch.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from invoicepulse.models.invoice import PoType


class VendorRankMode(str, Enum):
    """How top vendors are ranked."""

    VALUE = "value"
    COUNT = "count"


class BucketTotals(BaseModel):
    """Count and summed amount of the invoices in one bucket."""

    model_config = ConfigDict(frozen=True)

    count: int = 0
    value: float = 0.0


class AgingBucket(BaseModel):
    """A 30-day aging bucket. ``max_days`` is exclusive; None for the open-ended bucket."""

    model_config = ConfigDict(frozen=True)

    bucket: str
    min_days: int
    max_days: int | None = None
    count: int = 0
    value: float = 0.0


class VendorTotals(BaseModel):
    """Invoice count and value attributed to one supplier."""

    model_config = ConfigDict(frozen=True)

    supplier: str
    count: int = 0
    value: float = 0.0


class BatchStats(BaseModel):
    """Immutable snapshot of one batch's aggregates.

    Created once per batch and never edited; corrected invoices arrive as a
    new batch. Every breakdown partitions the same invoice set:

    - ``aging_breakdown`` and ``po_breakdown`` each sum to the totals.
    - ``process_state_counts`` plus ``unknown_state`` sum to the totals.

    Consumers read totals from here instead of re-summing breakdowns.
    """

    model_config = ConfigDict(frozen=True)

    batch_id: str

    total_invoices: int = 0
    total_value: float = 0.0
    backlog_count: int = 0
    backlog_value: float = 0.0
    ready_for_payment_count: int = 0
    ready_for_payment_value: float = 0.0

    aging_breakdown: tuple[AgingBucket, ...] = ()
    process_state_counts: dict[str, BucketTotals] = Field(default_factory=dict)
    unknown_state: BucketTotals = Field(default_factory=BucketTotals)
    po_breakdown: dict[PoType, BucketTotals] = Field(default_factory=dict)
    top_vendors: tuple[VendorTotals, ...] = ()
    vendor_rank_mode: VendorRankMode = VendorRankMode.VALUE

    average_days_old: float = 0.0
    requires_investigation: BucketTotals = Field(default_factory=BucketTotals)

    @property
    def is_empty(self) -> bool:
        return self.total_invoices == 0

    @property
    def unknown_state_count(self) -> int:
        return self.unknown_state.count

    @property
    def backlog(self) -> BucketTotals:
        return BucketTotals(count=self.backlog_count, value=self.backlog_value)

    @property
    def ready_for_payment(self) -> BucketTotals:
        return BucketTotals(count=self.ready_for_payment_count, value=self.ready_for_payment_value)

    def state_totals(self, state: str) -> BucketTotals:
        """Totals for one process-state label, zero if the state is absent."""
        return self.process_state_counts.get(state, BucketTotals())

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, payload: str) -> BatchStats:
        return cls.model_validate_json(payload)
