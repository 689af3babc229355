"""
Base connector — abstract interface for invoice sources.

A connector is the bridge between InvoicePulse and wherever import batches
and their invoice rows live. It plays two roles:

- **Batch directory**: lists import batches, including soft-deleted ones.
- **Invoice source**: lists and queries the invoices of one batch.

The import path writes through the same connector.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from invoicepulse.analyzers.bucket_filter import filter_invoices
from invoicepulse.exceptions import BatchNotFound
from invoicepulse.models.invoice import ImportBatch, InvoiceFilter, InvoiceRecord

if TYPE_CHECKING:
    from invoicepulse.store.base import SnapshotStore


class BaseConnector(ABC):
    """Abstract base class for all invoice connectors.

    To create a new connector, subclass this and implement:
    - `list_batches()`: Every known batch, deleted ones included.
    - `list_invoices()`: All invoice rows of one batch.
    - `add_batch()`: Persist a new batch with its invoices.
    - `soft_delete()`: Mark a batch deleted.
    - `validate_connection()`: Check the source is reachable.

    Example::

        class MyWarehouseConnector(BaseConnector):
            name = "warehouse"

            async def list_batches(self) -> list[ImportBatch]:
                ...

            async def list_invoices(self, batch_id: str) -> list[InvoiceRecord]:
                ...
    """

    name: str = "base"
    description: str = "Base connector"

    def __init__(self, credentials: dict[str, Any] | None = None, **options: Any) -> None:
        self.credentials = credentials or {}
        self.options = options

    # ------------------------------------------------------------------ #
    #  Batch directory                                                    #
    # ------------------------------------------------------------------ #

    @abstractmethod
    async def list_batches(self) -> list[ImportBatch]:
        """All batches in no particular order, soft-deleted ones included."""
        ...

    async def get_batch(self, batch_id: str) -> ImportBatch:
        """Look up one batch.

        Raises:
            BatchNotFound: The id is unknown.
        """
        for batch in await self.list_batches():
            if batch.id == batch_id:
                return batch
        raise BatchNotFound(batch_id)

    # ------------------------------------------------------------------ #
    #  Invoice source                                                     #
    # ------------------------------------------------------------------ #

    @abstractmethod
    async def list_invoices(self, batch_id: str) -> list[InvoiceRecord]:
        """All invoice rows of a batch, outliers included."""
        ...

    async def list_invoice_ids(self, batch_id: str) -> list[str]:
        return sorted({r.id for r in await self.list_invoices(batch_id)})

    async def query_invoices(self, batch_id: str, flt: InvoiceFilter) -> list[InvoiceRecord]:
        """Invoices of a batch matching a filter."""
        return filter_invoices(await self.list_invoices(batch_id), flt)

    # ------------------------------------------------------------------ #
    #  Write side                                                         #
    # ------------------------------------------------------------------ #

    @abstractmethod
    async def add_batch(self, batch: ImportBatch, invoices: Sequence[InvoiceRecord]) -> ImportBatch:
        """Persist a batch and its invoices.

        Returns:
            The stored batch, with ``sequence`` assigned by the connector.
        """
        ...

    @abstractmethod
    async def soft_delete(self, batch_id: str) -> ImportBatch:
        """Mark a batch deleted and return the updated batch."""
        ...

    def snapshot_store(self) -> SnapshotStore | None:
        """A snapshot store living alongside this connector's data, if any."""
        return None

    @abstractmethod
    async def validate_connection(self) -> bool:
        """Validate that the source is accessible."""
        ...

    async def health_check(self) -> dict[str, Any]:
        """Check connector health and connectivity."""
        try:
            valid = await self.validate_connection()
            return {"connector": self.name, "healthy": valid, "error": None}
        except Exception as e:
            return {"connector": self.name, "healthy": False, "error": str(e)}
