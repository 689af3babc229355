"""
Memory Connector — keeps batches and invoices in process memory.

Useful for tests and for one-off CLI runs against a CSV without a database.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from invoicepulse.connectors.base import BaseConnector
from invoicepulse.exceptions import BatchNotFound
from invoicepulse.models.invoice import ImportBatch, InvoiceRecord
from invoicepulse.store.memory_store import InMemorySnapshotStore

logger = logging.getLogger("invoicepulse.connectors.memory")


class MemoryConnector(BaseConnector):
    """Invoice source backed by plain dicts.

    Usage::

        connector = MemoryConnector()
        batch = await connector.add_batch(batch, invoices)
        rows = await connector.list_invoices(batch.id)
    """

    name = "memory"
    description = "Keep batches and invoices in memory"

    def __init__(self, credentials: dict[str, Any] | None = None, **options: Any) -> None:
        super().__init__(credentials, **options)
        self._batches: dict[str, ImportBatch] = {}
        self._invoices: dict[str, list[InvoiceRecord]] = {}
        self._store = InMemorySnapshotStore()

    async def list_batches(self) -> list[ImportBatch]:
        return list(self._batches.values())

    async def list_invoices(self, batch_id: str) -> list[InvoiceRecord]:
        if batch_id not in self._batches:
            raise BatchNotFound(batch_id)
        return list(self._invoices.get(batch_id, []))

    async def add_batch(self, batch: ImportBatch, invoices: Sequence[InvoiceRecord]) -> ImportBatch:
        if batch.id in self._batches:
            raise ValueError(f"Batch '{batch.id}' already exists")
        stored = batch.model_copy(update={"sequence": len(self._batches) + 1})
        self._batches[stored.id] = stored
        self._invoices[stored.id] = [
            r if r.batch_id == stored.id else r.model_copy(update={"batch_id": stored.id})
            for r in invoices
        ]
        logger.info("Added batch %s with %d invoices", stored.id, len(invoices))
        return stored

    async def soft_delete(self, batch_id: str) -> ImportBatch:
        if batch_id not in self._batches:
            raise BatchNotFound(batch_id)
        deleted = self._batches[batch_id].model_copy(update={"is_deleted": True})
        self._batches[batch_id] = deleted
        return deleted

    def snapshot_store(self) -> InMemorySnapshotStore:
        return self._store

    async def validate_connection(self) -> bool:
        return True
