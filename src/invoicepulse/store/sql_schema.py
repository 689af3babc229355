"""
SQL schema shared by the SQL connector and the SQL snapshot store.

Both sides run on one engine so a SQLite file (or an in-memory database)
holds batches, invoices and snapshots together.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.pool import StaticPool

metadata = MetaData()

import_batches = Table(
    "import_batches",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("filename", String(255), nullable=False),
    Column("imported_at", DateTime(timezone=True), nullable=False),
    Column("sequence", Integer, nullable=False, default=0),
    Column("is_deleted", Boolean, nullable=False, default=False),
    Column("record_count", Integer, nullable=False, default=0),
    Column("skipped_count", Integer, nullable=False, default=0),
    Column("skipped_fully_paid", Integer, nullable=False, default=0),
    Column("outlier_count", Integer, nullable=False, default=0),
    Column("outlier_high_value", Integer, nullable=False, default=0),
    Column("outlier_negative", Integer, nullable=False, default=0),
)

invoices = Table(
    "invoices",
    metadata,
    # Surrogate key: an export may repeat an invoice id within one batch
    Column("row_id", Integer, primary_key=True, autoincrement=True),
    Column("invoice_id", String(128), nullable=False, index=True),
    Column("batch_id", String(64), ForeignKey("import_batches.id"), nullable=False, index=True),
    Column("supplier", String(255)),
    Column("amount", Float, nullable=False, default=0.0),
    Column("days_old", Integer),
    Column("process_state", String(255)),
    Column("po_type", String(16), nullable=False),
    Column("invoice_number", String(128)),
    Column("invoice_date", Date),
    Column("is_outlier", Boolean, nullable=False, default=False),
    Column("outlier_reason", String(32)),
    Column("include_in_analysis", Boolean),
)

batch_stats = Table(
    "batch_stats",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("batch_id", String(64), nullable=False, unique=True),
    # Headline figures duplicated out of the payload for ad-hoc SQL
    Column("total_invoices", Integer, nullable=False),
    Column("total_value", Float, nullable=False),
    Column("backlog_count", Integer, nullable=False),
    Column("backlog_value", Float, nullable=False),
    Column("ready_for_payment_count", Integer, nullable=False),
    Column("ready_for_payment_value", Float, nullable=False),
    Column("payload", Text, nullable=False),
    Column("calculated_at", DateTime(timezone=True), nullable=False),
)


def make_engine(connection_string: str, **options: Any) -> Engine:
    """Create an engine, keeping in-memory SQLite on a single shared connection."""
    url = make_url(connection_string)
    if url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:"):
        options.setdefault("poolclass", StaticPool)
        options.setdefault("connect_args", {"check_same_thread": False})
    return create_engine(url, **options)


def create_schema(engine: Engine) -> None:
    metadata.create_all(engine)
