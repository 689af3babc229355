"""In-memory snapshot store, for tests and single-process use."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from datetime import datetime, timezone

from invoicepulse.exceptions import DuplicateSnapshot
from invoicepulse.models.stats import BatchStats
from invoicepulse.store.base import SnapshotStore

logger = logging.getLogger("invoicepulse.store.memory")


class InMemorySnapshotStore(SnapshotStore):
    """Dict-backed snapshot store.

    Snapshots are kept as their JSON payload, like the SQL store, so every
    read hands out a fresh model and no caller can edit a stored snapshot
    through its nested mappings. Check-and-insert runs under a lock so
    concurrent writers from several threads still see exactly one winner.
    """

    name = "memory"

    def __init__(self) -> None:
        self._payloads: dict[str, str] = {}
        self._calculated_at: dict[str, datetime] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._payloads)

    async def put(self, batch_id: str, stats: BatchStats) -> None:
        self._check_key(batch_id, stats)
        payload = stats.to_json()
        with self._lock:
            if batch_id in self._payloads:
                raise DuplicateSnapshot(batch_id)
            self._payloads[batch_id] = payload
            self._calculated_at[batch_id] = datetime.now(timezone.utc)
        logger.debug("Stored snapshot for batch %s", batch_id)

    async def get(self, batch_id: str) -> BatchStats | None:
        payload = self._payloads.get(batch_id)
        return BatchStats.from_json(payload) if payload is not None else None

    async def get_many(self, batch_ids: Iterable[str]) -> dict[str, BatchStats]:
        return {
            b: BatchStats.from_json(self._payloads[b])
            for b in dict.fromkeys(batch_ids)
            if b in self._payloads
        }

    def calculated_at(self, batch_id: str) -> datetime | None:
        """When the snapshot for ``batch_id`` was stored."""
        return self._calculated_at.get(batch_id)
