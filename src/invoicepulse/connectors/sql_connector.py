"""
SQL Connector — batches and invoices in any SQL database.

Works with PostgreSQL, MySQL, SQLite, SQL Server, etc. via SQLAlchemy. The
same engine backs a ``SQLSnapshotStore`` so one database holds everything.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import timezone
from typing import Any

from sqlalchemy import func, insert, select, text, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from invoicepulse.connectors.base import BaseConnector
from invoicepulse.exceptions import BatchNotFound, SourceUnavailable
from invoicepulse.models.invoice import ImportBatch, InvoiceFilter, InvoiceRecord
from invoicepulse.store.sql_schema import create_schema, import_batches, invoices, make_engine
from invoicepulse.store.sql_store import SQLSnapshotStore

logger = logging.getLogger("invoicepulse.connectors.sql")


def _batch_from_row(row: Any) -> ImportBatch:
    return ImportBatch(
        id=row.id,
        filename=row.filename,
        imported_at=row.imported_at,
        sequence=row.sequence,
        is_deleted=bool(row.is_deleted),
        record_count=row.record_count,
        skipped_count=row.skipped_count,
        skipped_fully_paid=row.skipped_fully_paid,
        outlier_count=row.outlier_count,
        outlier_high_value=row.outlier_high_value,
        outlier_negative=row.outlier_negative,
    )


def _invoice_from_row(row: Any) -> InvoiceRecord:
    return InvoiceRecord(
        id=row.invoice_id,
        batch_id=row.batch_id,
        supplier=row.supplier,
        amount=row.amount,
        days_old=row.days_old,
        process_state=row.process_state,
        po_type=row.po_type,
        invoice_number=row.invoice_number,
        invoice_date=row.invoice_date,
        is_outlier=bool(row.is_outlier),
        outlier_reason=row.outlier_reason,
        include_in_analysis=row.include_in_analysis,
    )


class SQLConnector(BaseConnector):
    """Batches and invoices stored in a SQL database.

    Uses SQLAlchemy Core for broad database compatibility.

    Usage::

        connector = SQLConnector(
            credentials={"connection_string": "postgresql://..."},
        )
        batches = await connector.list_batches()
    """

    name = "sql"
    description = "Store batches and invoices in SQL databases"

    def __init__(
        self,
        credentials: dict[str, Any] | None = None,
        engine: Engine | None = None,
        **options: Any,
    ) -> None:
        super().__init__(credentials, **options)
        self.connection_string = (credentials or {}).get("connection_string", "")
        if engine is None:
            if not self.connection_string:
                raise ValueError("SQLConnector needs a connection_string credential or an engine")
            engine = make_engine(self.connection_string, **options.get("engine_options", {}))
        self.engine = engine
        try:
            create_schema(self.engine)
        except SQLAlchemyError as e:
            raise SourceUnavailable(f"Cannot prepare database schema: {e}") from e
        self._store: SQLSnapshotStore | None = None

    async def list_batches(self) -> list[ImportBatch]:
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(select(import_batches)).all()
        except SQLAlchemyError as e:
            raise SourceUnavailable(f"Failed to list batches: {e}") from e
        return [_batch_from_row(row) for row in rows]

    async def get_batch(self, batch_id: str) -> ImportBatch:
        try:
            with self.engine.connect() as conn:
                row = conn.execute(select(import_batches).where(import_batches.c.id == batch_id)).first()
        except SQLAlchemyError as e:
            raise SourceUnavailable(f"Failed to read batch '{batch_id}': {e}") from e
        if row is None:
            raise BatchNotFound(batch_id)
        return _batch_from_row(row)

    async def list_invoices(self, batch_id: str) -> list[InvoiceRecord]:
        return await self.query_invoices(batch_id, InvoiceFilter())

    async def list_invoice_ids(self, batch_id: str) -> list[str]:
        query = (
            select(invoices.c.invoice_id)
            .where(invoices.c.batch_id == batch_id)
            .distinct()
            .order_by(invoices.c.invoice_id)
        )
        try:
            with self.engine.connect() as conn:
                return list(conn.execute(query).scalars())
        except SQLAlchemyError as e:
            raise SourceUnavailable(f"Failed to list invoice ids of batch '{batch_id}': {e}") from e

    async def query_invoices(self, batch_id: str, flt: InvoiceFilter) -> list[InvoiceRecord]:
        """Invoices of a batch matching ``flt``, filtered in the database."""
        query = select(invoices).where(invoices.c.batch_id == batch_id)
        if flt.state is not None:
            query = query.where(invoices.c.process_state == flt.state)
        if flt.vendor:
            query = query.where(func.lower(invoices.c.supplier).contains(flt.vendor.lower(), autoescape=True))
        if flt.po_type is not None:
            query = query.where(invoices.c.po_type == flt.po_type.value)
        if flt.min_days is not None:
            query = query.where(invoices.c.days_old >= flt.min_days)
        if flt.max_days is not None:
            query = query.where(invoices.c.days_old <= flt.max_days)
        query = query.order_by(invoices.c.row_id)

        try:
            with self.engine.connect() as conn:
                rows = conn.execute(query).all()
        except SQLAlchemyError as e:
            raise SourceUnavailable(f"Failed to query invoices of batch '{batch_id}': {e}") from e
        return [_invoice_from_row(row) for row in rows]

    async def add_batch(self, batch: ImportBatch, invoice_rows: Sequence[InvoiceRecord]) -> ImportBatch:
        try:
            with self.engine.begin() as conn:
                last = conn.execute(select(func.max(import_batches.c.sequence))).scalar()
                stored = batch.model_copy(update={"sequence": (last or 0) + 1})
                values = stored.model_dump()
                # Stored as UTC; SQLite keeps no offset
                values["imported_at"] = stored.imported_at.astimezone(timezone.utc)
                conn.execute(insert(import_batches).values(**values))
                if invoice_rows:
                    conn.execute(insert(invoices), [self._invoice_values(stored.id, r) for r in invoice_rows])
        except SQLAlchemyError as e:
            raise SourceUnavailable(f"Failed to add batch '{batch.id}': {e}") from e

        logger.info("Added batch %s with %d invoices", stored.id, len(invoice_rows))
        return stored

    async def soft_delete(self, batch_id: str) -> ImportBatch:
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    update(import_batches).where(import_batches.c.id == batch_id).values(is_deleted=True)
                )
        except SQLAlchemyError as e:
            raise SourceUnavailable(f"Failed to delete batch '{batch_id}': {e}") from e
        if result.rowcount == 0:
            raise BatchNotFound(batch_id)
        return await self.get_batch(batch_id)

    def snapshot_store(self) -> SQLSnapshotStore:
        if self._store is None:
            self._store = SQLSnapshotStore(engine=self.engine)
        return self._store

    async def validate_connection(self) -> bool:
        """Test database connectivity."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            return False

    @staticmethod
    def _invoice_values(batch_id: str, record: InvoiceRecord) -> dict[str, Any]:
        return {
            "invoice_id": record.id,
            "batch_id": batch_id,
            "supplier": record.supplier,
            "amount": record.amount,
            "days_old": record.days_old,
            "process_state": record.process_state,
            "po_type": record.po_type.value,
            "invoice_number": record.invoice_number,
            "invoice_date": record.invoice_date,
            "is_outlier": record.is_outlier,
            "outlier_reason": record.outlier_reason.value if record.outlier_reason else None,
            "include_in_analysis": record.include_in_analysis,
        }
