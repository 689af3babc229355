"""
SQL snapshot store — ``batch_stats`` table via SQLAlchemy Core.

The UNIQUE constraint on ``batch_id`` decides insert races, so two
processes writing the same snapshot still produce one row.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timezone

from sqlalchemy import insert, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from invoicepulse.exceptions import DuplicateSnapshot, SourceUnavailable
from invoicepulse.models.stats import BatchStats
from invoicepulse.store.base import SnapshotStore
from invoicepulse.store.sql_schema import batch_stats, create_schema, make_engine

logger = logging.getLogger("invoicepulse.store.sql")


class SQLSnapshotStore(SnapshotStore):
    """Snapshot store backed by any SQLAlchemy-supported database.

    Usage::

        store = SQLSnapshotStore(connection_string="sqlite:///invoicepulse.db")
        await store.put(stats.batch_id, stats)
        snapshots = await store.get_many(["b1", "b2"])
    """

    name = "sql"

    def __init__(self, engine: Engine | None = None, connection_string: str | None = None) -> None:
        if engine is None:
            if not connection_string:
                raise ValueError("SQLSnapshotStore needs an engine or a connection_string")
            engine = make_engine(connection_string)
        self.engine = engine
        create_schema(self.engine)

    async def put(self, batch_id: str, stats: BatchStats) -> None:
        self._check_key(batch_id, stats)
        row = {
            "batch_id": batch_id,
            "total_invoices": stats.total_invoices,
            "total_value": stats.total_value,
            "backlog_count": stats.backlog_count,
            "backlog_value": stats.backlog_value,
            "ready_for_payment_count": stats.ready_for_payment_count,
            "ready_for_payment_value": stats.ready_for_payment_value,
            "payload": stats.to_json(),
            "calculated_at": datetime.now(timezone.utc),
        }
        try:
            with self.engine.begin() as conn:
                conn.execute(insert(batch_stats).values(**row))
        except IntegrityError as e:
            raise DuplicateSnapshot(batch_id) from e
        except SQLAlchemyError as e:
            raise SourceUnavailable(f"Failed to store snapshot for batch '{batch_id}': {e}") from e
        logger.debug("Stored snapshot for batch %s", batch_id)

    async def get(self, batch_id: str) -> BatchStats | None:
        found = await self.get_many([batch_id])
        return found.get(batch_id)

    async def get_many(self, batch_ids: Iterable[str]) -> dict[str, BatchStats]:
        ids = list(dict.fromkeys(batch_ids))
        if not ids:
            return {}
        query = select(batch_stats.c.batch_id, batch_stats.c.payload).where(batch_stats.c.batch_id.in_(ids))
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(query).all()
        except SQLAlchemyError as e:
            raise SourceUnavailable(f"Failed to read snapshots: {e}") from e
        return {row.batch_id: BatchStats.from_json(row.payload) for row in rows}

    async def health_check(self) -> dict[str, object]:
        try:
            with self.engine.connect() as conn:
                conn.execute(select(batch_stats.c.id).limit(1))
            return {"store": self.name, "healthy": True, "error": None}
        except SQLAlchemyError as e:
            return {"store": self.name, "healthy": False, "error": str(e)}
