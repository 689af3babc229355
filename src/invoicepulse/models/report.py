"""
Derived report models — batch deltas and metric trends.

None of these are stored; they are recomputed on demand from snapshots.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from invoicepulse.models.invoice import ImportBatch


class EmptyReason(str, Enum):
    """Why a comparison or trend has no data. Recognized empty states, not errors."""

    INSUFFICIENT_DATA = "insufficient_data"  # fewer than 2 usable batches
    SNAPSHOT_UNAVAILABLE = "snapshot_unavailable"  # a selected batch is not backfilled yet


class StateChange(BaseModel):
    """Net count movement of one process state between two batches.

    ``new_count``/``resolved_count`` break the net figure down into invoices
    that appeared in or left this state's population; None when the caller
    supplied amounts without state labels.
    """

    model_config = ConfigDict(frozen=True)

    state: str
    previous_count: int
    current_count: int
    change: int
    new_count: int | None = None
    resolved_count: int | None = None


class DeltaReport(BaseModel):
    """Batch-over-batch comparison of two consecutive snapshots."""

    model_config = ConfigDict(frozen=True)

    previous_batch: ImportBatch
    current_batch: ImportBatch

    previous_count: int
    current_count: int
    previous_value: float
    current_value: float

    resolved_count: int
    new_count: int
    # None when the caller supplied bare id sets without amounts
    resolved_value: float | None = None
    new_value: float | None = None
    resolved_ids: list[str] = Field(default_factory=list)
    new_ids: list[str] = Field(default_factory=list)

    # Zero-change rows are kept; filtering is up to the presentation layer
    state_changes: list[StateChange] = Field(default_factory=list)

    available: bool = True

    @property
    def net_change(self) -> int:
        return self.current_count - self.previous_count

    @property
    def net_value_change(self) -> float:
        return self.current_value - self.previous_value

    @property
    def changed_states(self) -> list[StateChange]:
        return [s for s in self.state_changes if s.change != 0]


class NoComparison(BaseModel):
    """Sentinel returned when a delta report cannot be produced."""

    model_config = ConfigDict(frozen=True)

    reason: EmptyReason = EmptyReason.INSUFFICIENT_DATA
    current_batch: ImportBatch | None = None
    missing_batch_ids: list[str] = Field(default_factory=list)

    available: bool = False


class MetricKind(str, Enum):
    """Snapshot fields that can be trended."""

    TOTAL_INVOICES = "total_invoices"
    TOTAL_VALUE = "total_value"
    BACKLOG_COUNT = "backlog_count"
    BACKLOG_VALUE = "backlog_value"
    READY_FOR_PAYMENT_COUNT = "ready_for_payment_count"
    READY_FOR_PAYMENT_VALUE = "ready_for_payment_value"
    PROCESS_STATE = "process_state"


class MetricSelector(BaseModel):
    """Which metric a trend tracks.

    For ``PROCESS_STATE`` the ``state`` label is required and ``measure``
    picks count or value; for the other kinds both are ignored.
    """

    model_config = ConfigDict(frozen=True)

    kind: MetricKind = MetricKind.BACKLOG_COUNT
    state: str | None = None
    measure: str = Field(default="count", pattern="^(count|value)$")

    @model_validator(mode="after")
    def _state_required(self) -> MetricSelector:
        if self.kind == MetricKind.PROCESS_STATE and not self.state:
            raise ValueError("process_state metric requires a state label")
        return self

    @classmethod
    def for_state(cls, state: str, measure: str = "count") -> MetricSelector:
        return cls(kind=MetricKind.PROCESS_STATE, state=state, measure=measure)


class TrendPoint(BaseModel):
    """Metric value for one batch."""

    model_config = ConfigDict(frozen=True)

    batch_id: str
    label: str
    imported_at: datetime
    value: float


class TrendSeries(BaseModel):
    """A metric across the most recent batches, oldest first."""

    model_config = ConfigDict(frozen=True)

    metric: MetricSelector
    points: list[TrendPoint]
    change: float

    available: bool = True

    @property
    def values(self) -> list[float]:
        return [p.value for p in self.points]

    @property
    def current(self) -> float:
        return self.points[-1].value

    @property
    def state(self) -> str | None:
        return self.metric.state


class EmptySeries(BaseModel):
    """Sentinel for a trend that cannot be drawn."""

    model_config = ConfigDict(frozen=True)

    reason: EmptyReason = EmptyReason.INSUFFICIENT_DATA
    missing_batch_ids: list[str] = Field(default_factory=list)

    available: bool = False
