"""Snapshot store package — append-only persistence of batch snapshots."""
from invoicepulse.store.base import SnapshotStore
from invoicepulse.store.memory_store import InMemorySnapshotStore
from invoicepulse.store.sql_store import SQLSnapshotStore

__all__ = [
    "InMemorySnapshotStore",
    "SQLSnapshotStore",
    "SnapshotStore",
]
