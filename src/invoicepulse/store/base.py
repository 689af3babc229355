"""
Snapshot store — append-only persistence of batch snapshots.

A snapshot is written exactly once per batch. Writers race by attempting
the insert; the loser gets ``DuplicateSnapshot`` and must not retry.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any

from invoicepulse.models.stats import BatchStats


class SnapshotStore(ABC):
    """Abstract base class for snapshot stores.

    Subclasses implement:
    - `put()`: Insert a snapshot, rejecting a second write for the same batch.
    - `get()`: Fetch one snapshot.
    - `get_many()`: Fetch several snapshots in one round trip.
    - `has()`: Whether a snapshot exists.
    """

    name: str = "base"

    @abstractmethod
    async def put(self, batch_id: str, stats: BatchStats) -> None:
        """Store the snapshot for ``batch_id``.

        Raises:
            DuplicateSnapshot: A snapshot already exists for the batch.
            ValueError: ``batch_id`` does not match ``stats.batch_id``.
        """
        ...

    @abstractmethod
    async def get(self, batch_id: str) -> BatchStats | None:
        """Snapshot for ``batch_id``, or None if it has not been built."""
        ...

    @abstractmethod
    async def get_many(self, batch_ids: Iterable[str]) -> dict[str, BatchStats]:
        """Snapshots for the given batches; unknown ids are simply absent."""
        ...

    async def has(self, batch_id: str) -> bool:
        return await self.get(batch_id) is not None

    async def health_check(self) -> dict[str, Any]:
        """Check store health."""
        try:
            await self.get_many([])
            return {"store": self.name, "healthy": True, "error": None}
        except Exception as e:
            return {"store": self.name, "healthy": False, "error": str(e)}

    @staticmethod
    def _check_key(batch_id: str, stats: BatchStats) -> None:
        if batch_id != stats.batch_id:
            raise ValueError(f"Snapshot for batch '{stats.batch_id}' cannot be stored under '{batch_id}'")
