"""Custom exceptions for the invoice batch analytics engine."""

from __future__ import annotations

from collections.abc import Iterable


class InvoicePulseError(Exception):
    """Base exception for all InvoicePulse errors."""
    pass


class DuplicateSnapshot(InvoicePulseError):
    """Raised when a snapshot already exists for a batch.

    Snapshots are append-only: the second writer loses and must not retry.
    """

    def __init__(self, batch_id: str) -> None:
        self.batch_id = batch_id
        super().__init__(f"Snapshot already exists for batch '{batch_id}'")


class InvalidBucketLabel(InvoicePulseError, ValueError):
    """Raised when an aging bucket label cannot be turned into a day range."""

    def __init__(self, label: object) -> None:
        self.label = label
        super().__init__(f"Invalid aging bucket label: {label!r}")


class SnapshotUnavailable(InvoicePulseError):
    """Raised when a batch has no backfilled snapshot and one is strictly required."""

    def __init__(self, batch_ids: Iterable[str]) -> None:
        self.batch_ids = sorted(batch_ids)
        super().__init__(f"No snapshot available for batch(es): {', '.join(self.batch_ids)}")


class SourceUnavailable(InvoicePulseError):
    """Raised when the invoice source, batch directory or snapshot store fails."""
    pass


class BatchNotFound(InvoicePulseError):
    """Raised when a batch identifier is unknown to the batch directory."""

    def __init__(self, batch_id: str) -> None:
        self.batch_id = batch_id
        super().__init__(f"Batch not found: '{batch_id}'")


class BatchOrderViolation(InvoicePulseError):
    """Raised when a batch other than the most recent one is deleted."""
    pass


class InvalidArchive(InvoicePulseError, ValueError):
    """Raised when an uploaded ZIP archive cannot be read."""

    def __init__(self, path: object, reason: str) -> None:
        self.path = path
        super().__init__(f"Cannot read archive {path}: {reason}")
