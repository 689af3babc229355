"""Shared factories for invoice and batch fixtures."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from invoicepulse.models.invoice import ImportBatch, InvoiceRecord

T0 = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)

HEADER = "01 - Header To Be Verified"
READY = "08 - Ready for Payment"


def _invoice(
    invoice_id: str,
    amount: float = 100.0,
    state: str | None = HEADER,
    days_old: int | None = 10,
    supplier: str | None = "Acme Corp",
    po_type: str = "PO",
    batch_id: str = "b1",
    **extra: Any,
) -> InvoiceRecord:
    return InvoiceRecord(
        id=invoice_id,
        batch_id=batch_id,
        amount=amount,
        process_state=state,
        days_old=days_old,
        supplier=supplier,
        po_type=po_type,
        **extra,
    )


def _batch(batch_id: str, day: int = 0, **extra: Any) -> ImportBatch:
    return ImportBatch(
        id=batch_id,
        filename=f"{batch_id}.csv",
        imported_at=T0 + timedelta(days=day),
        **extra,
    )


@pytest.fixture
def make_invoice() -> Callable[..., InvoiceRecord]:
    return _invoice


@pytest.fixture
def make_batch() -> Callable[..., ImportBatch]:
    return _batch
