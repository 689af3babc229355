"""
CSV Connector — parse invoice aging exports into invoice records.

Handles the ERP "AP Invoice Aging" export and its hand-edited variants:
comma or tab separated, upper-case or title-case headers, amounts with
currency symbols and accounting-style negatives.
"""

from __future__ import annotations

import io
import logging
import math
import re
import zipfile
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any

import pandas as pd

from invoicepulse.analyzers.outliers import OutlierClassifier
from invoicepulse.exceptions import InvalidArchive
from invoicepulse.models.invoice import InvoiceRecord, OutlierReason, PoType

logger = logging.getLogger("invoicepulse.connectors.csv")

# Header variants per field, matched case-insensitively in this order
_COLUMN_ALIASES: dict[str, list[str]] = {
    "invoice_id": ["INVOICE_ID", "Invoice ID", "Invoices"],
    "invoice_number": ["INVOICE_NUM", "Invoice Number", "Invoice #"],
    "supplier": ["SUPPLIER_NAME", "Supplier", "Vendor"],
    "amount": ["INVOICE_AMOUNT", "Invoice Amount", "Amount"],
    "invoice_date": ["INVOICE_DATE", "Invoice Date"],
    "days_old": ["DAYS_OLD", "Days Old"],
    "process_state": ["INVOICE_PROCESS_STATUS", "Overall Process State", "Process State"],
    "po_type": ["PO_NONPO", "PO/Non-PO", "PO Type"],
    "invoice_status": ["INVOICE_STATUS", "Invoice Status"],
}

_PAID_STATUSES = {"paid", "fully paid"}

_ARCHIVE_TEXT_SUFFIXES = (".csv", ".txt")

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_US_DATE = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{2}|\d{4})$")


@dataclass
class ImportResult:
    """Parsed invoices plus the counters recorded on the import batch."""

    invoices: list[InvoiceRecord] = field(default_factory=list)
    skipped_count: int = 0
    skipped_fully_paid: int = 0
    outlier_count: int = 0
    outlier_high_value: int = 0
    outlier_negative: int = 0
    # Rows with neither an invoice id nor a number; their ids are positional
    synthetic_ids: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def record_count(self) -> int:
        return len(self.invoices)


@dataclass
class ArchiveMember:
    """A CSV or TXT export pulled out of a ZIP upload."""

    name: str
    path: str
    content: str
    size: int


def extract_csv_members(file_path: str | Path, encoding: str = "utf-8") -> list[ArchiveMember]:
    """Read the CSV/TXT exports inside a ZIP archive, in archive order.

    Directories, macOS resource forks (``__MACOSX/``, ``._*``) and hidden
    files are skipped. Undecodable bytes are replaced rather than failing
    the whole archive.

    Raises:
        FileNotFoundError: The archive does not exist.
        InvalidArchive: The file is not a readable ZIP archive.
    """
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"ZIP file not found: {file_path}")

    members: list[ArchiveMember] = []
    try:
        with zipfile.ZipFile(path) as archive:
            for info in archive.infolist():
                if info.is_dir():
                    continue
                name = info.filename.rsplit("/", 1)[-1]
                if "__MACOSX" in info.filename or name.startswith("."):
                    continue
                if not name.lower().endswith(_ARCHIVE_TEXT_SUFFIXES):
                    continue
                data = archive.read(info)
                members.append(ArchiveMember(
                    name=name,
                    path=info.filename,
                    content=data.decode(encoding, errors="replace"),
                    size=len(data),
                ))
    except (zipfile.BadZipFile, zipfile.LargeZipFile) as e:
        raise InvalidArchive(file_path, str(e)) from e

    logger.info("Extracted %d CSV file(s) from %s", len(members), path.name)
    return members


def detect_delimiter(text: str) -> str:
    """Tab when the header line has more tabs than commas, else comma."""
    header = text.split("\n", 1)[0]
    return "\t" if header.count("\t") > header.count(",") else ","


def parse_amount(raw: Any) -> float:
    """``"$1,234.50"`` -> 1234.5, ``"(12.00)"`` -> -12.0; unparseable -> 0."""
    if raw is None:
        return 0.0
    text_value = str(raw).strip()
    if not text_value:
        return 0.0
    negative = "(" in text_value and ")" in text_value
    cleaned = re.sub(r'[$,"\s()]', "", text_value)
    try:
        amount = float(cleaned)
    except ValueError:
        return 0.0
    if not math.isfinite(amount):
        return 0.0
    return -abs(amount) if negative else amount


def parse_date(raw: Any) -> date | None:
    """Accepts ``YYYY-MM-DD``, ISO timestamps and ``MM-DD-YY(YY)``."""
    if raw is None:
        return None
    text_value = str(raw).strip()
    if not text_value:
        return None
    if "T" in text_value:
        text_value = text_value.split("T", 1)[0]
    try:
        if _ISO_DATE.match(text_value):
            return date.fromisoformat(text_value)
        match = _US_DATE.match(text_value)
        if match:
            month, day, year = match.groups()
            full_year = int(year) + 2000 if len(year) == 2 else int(year)
            return date(full_year, int(month), int(day))
    except ValueError:
        return None
    return None


def _has_identifier(row: dict[str, Any], col_map: dict[str, str]) -> bool:
    for name in ("invoice_id", "invoice_number"):
        column = col_map.get(name)
        if column and str(row.get(column, "")).strip():
            return True
    return False


def _parse_int(raw: Any) -> int | None:
    text_value = str(raw).strip() if raw is not None else ""
    if not text_value:
        return None
    try:
        return int(float(text_value))
    except (ValueError, OverflowError):
        return None


class CSVImporter:
    """Turn an invoice export file into records for a new batch.

    Usage::

        importer = CSVImporter(as_of=date(2025, 12, 1))
        result = importer.parse("aging_report.csv", batch_id="b-2025-12-01")
        print(result.record_count, result.skipped_fully_paid, result.outlier_count)

    ``days_old`` is recomputed from the invoice date against ``as_of``
    (today by default) so ages stay comparable across batches; the
    export's own ``DAYS_OLD`` column is the fallback.
    """

    def __init__(
        self,
        classifier: OutlierClassifier | None = None,
        as_of: date | None = None,
        encoding: str = "utf-8",
    ) -> None:
        self.classifier = classifier or OutlierClassifier()
        self.as_of = as_of
        self.encoding = encoding

    def parse(self, file_path: str | Path, batch_id: str) -> ImportResult:
        """Read and parse a CSV/TSV file."""
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"CSV file not found: {file_path}")

        result = self.parse_text(path.read_text(encoding=self.encoding), batch_id)
        logger.info(
            "Parsed %d invoices from %s (%d skipped, %d outliers)",
            result.record_count, path.name, result.skipped_count, result.outlier_count,
        )
        return result

    def parse_text(self, content: str, batch_id: str) -> ImportResult:
        """Parse CSV/TSV text already in memory."""
        result = ImportResult()
        if not content.strip():
            return result

        df = pd.read_csv(
            io.StringIO(content),
            sep=detect_delimiter(content),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
        df.columns = df.columns.str.strip()
        col_map = self._detect_columns(df)
        if "amount" not in col_map:
            logger.warning("CSV has no amount column; every amount will be 0")

        as_of = self.as_of or date.today()
        for position, row in enumerate(df.to_dict(orient="records"), start=1):
            try:
                record = self._parse_row(row, col_map, batch_id, position, as_of)
            except Exception as e:
                logger.debug("Skipping row %d: %s", position, e)
                result.errors.append(f"Row {position}: {e}")
                result.skipped_count += 1
                continue

            if record is None:
                result.skipped_count += 1
                result.skipped_fully_paid += 1
                continue

            result.invoices.append(record)
            if not _has_identifier(row, col_map):
                result.synthetic_ids += 1
            if record.is_outlier:
                result.outlier_count += 1
                if record.outlier_reason == OutlierReason.HIGH_VALUE:
                    result.outlier_high_value += 1
                elif record.outlier_reason == OutlierReason.NEGATIVE:
                    result.outlier_negative += 1

        if result.synthetic_ids:
            logger.warning(
                "%d row(s) have no invoice id or number and were given positional row-N ids; "
                "they will not match the same invoice in another batch",
                result.synthetic_ids,
            )
        return result

    def _detect_columns(self, df: pd.DataFrame) -> dict[str, str]:
        """Map each field to the first matching header, case-insensitively."""
        by_lower = {str(c).lower(): str(c) for c in df.columns}
        col_map: dict[str, str] = {}
        for name, aliases in _COLUMN_ALIASES.items():
            for alias in aliases:
                if alias.lower() in by_lower:
                    col_map[name] = by_lower[alias.lower()]
                    break
        return col_map

    def _parse_row(
        self,
        row: dict[str, Any],
        col_map: dict[str, str],
        batch_id: str,
        position: int,
        as_of: date,
    ) -> InvoiceRecord | None:
        """One export row as a flagged record, or None for a paid invoice."""

        def get(name: str) -> str:
            column = col_map.get(name)
            return str(row.get(column, "")).strip() if column else ""

        if get("invoice_status").lower() in _PAID_STATUSES:
            return None

        invoice_number = get("invoice_number") or None
        invoice_id = get("invoice_id") or invoice_number or f"row-{position}"
        invoice_date = parse_date(get("invoice_date"))

        if invoice_date is not None:
            days_old: int | None = max((as_of - invoice_date).days, 0)
        else:
            days_old = _parse_int(get("days_old"))

        record = InvoiceRecord(
            id=invoice_id,
            batch_id=batch_id,
            supplier=get("supplier") or None,
            amount=parse_amount(get("amount")),
            days_old=days_old,
            process_state=get("process_state") or None,
            po_type=PoType(get("po_type")),
            invoice_number=invoice_number,
            invoice_date=invoice_date,
        )
        return self.classifier.flag(record)
