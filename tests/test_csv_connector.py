"""Tests for the CSV import connector."""

import logging
import zipfile
from datetime import date
from pathlib import Path

import pytest

from invoicepulse.analyzers.outliers import OutlierClassifier
from invoicepulse.connectors.csv_connector import (
    CSVImporter,
    detect_delimiter,
    extract_csv_members,
    parse_amount,
    parse_date,
)
from invoicepulse.exceptions import InvalidArchive
from invoicepulse.models.invoice import OutlierReason, PoType


SAMPLE_CSV = """INVOICE_ID,INVOICE_NUM,SUPPLIER_NAME,INVOICE_AMOUNT,INVOICE_DATE,DAYS_OLD,INVOICE_PROCESS_STATUS,PO_NONPO,INVOICE_STATUS
1001,INV-1,Acme Corp,"$1,250.00",2025-11-01,3,01 - Header To Be Verified,Yes,Validated
1002,INV-2,Beta LLC,($75.50),2025-11-20T18:00:00.000-06:00,,08 - Ready for Payment,No,Validated
1003,INV-3,Gamma Inc,250000,2025-10-02,,01 - Header To Be Verified,Yes,Needs Revalidation
1004,INV-4,Delta Co,99.99,,45,03 - Awaiting Approval,,Validated
1005,INV-5,Paid Supplier,10.00,2025-11-01,,08 - Ready for Payment,Yes,Fully Paid
1006,INV-6,Paid Supplier,10.00,2025-11-01,,08 - Ready for Payment,Yes,paid
,INV-7,No Id Ltd,5.00,11-15-25,,02 - Coding,Yes,Validated
"""

TSV = "Invoice ID\tSupplier\tAmount\tProcess State\tPO Type\n" "A1\tAcme, Inc\t12.50\t01 - Header To Be Verified\tPO\n"


@pytest.fixture
def csv_file(tmp_path: Path) -> Path:
    """Create a temporary export file."""
    file = tmp_path / "aging_report.csv"
    file.write_text(SAMPLE_CSV)
    return file


@pytest.fixture
def importer() -> CSVImporter:
    return CSVImporter(as_of=date(2025, 12, 1))


class TestCSVImporter:
    def test_parse_counts(self, importer: CSVImporter, csv_file: Path) -> None:
        result = importer.parse(csv_file, "b1")
        assert result.record_count == 5
        assert result.skipped_count == 2
        assert result.skipped_fully_paid == 2
        assert result.outlier_count == 2
        assert result.outlier_high_value == 1
        assert result.outlier_negative == 1
        assert result.errors == []

    def test_field_mapping(self, importer: CSVImporter, csv_file: Path) -> None:
        records = {r.id: r for r in importer.parse(csv_file, "b1").invoices}
        first = records["1001"]
        assert first.batch_id == "b1"
        assert first.supplier == "Acme Corp"
        assert first.amount == 1250.0
        assert first.invoice_number == "INV-1"
        assert first.invoice_date == date(2025, 11, 1)
        assert first.process_state == "01 - Header To Be Verified"
        assert first.po_type == PoType.PO
        assert records["1002"].po_type == PoType.NON_PO
        assert records["1004"].po_type == PoType.UNKNOWN

    def test_days_old_from_invoice_date(self, importer: CSVImporter, csv_file: Path) -> None:
        records = {r.id: r for r in importer.parse(csv_file, "b1").invoices}
        # Computed from the date, not the DAYS_OLD column
        assert records["1001"].days_old == 30
        assert records["1002"].days_old == 11
        # No date: fall back to the export's DAYS_OLD
        assert records["1004"].days_old == 45

    def test_days_old_clamped_at_zero(self, csv_file: Path) -> None:
        importer = CSVImporter(as_of=date(2025, 10, 1))
        records = {r.id: r for r in importer.parse(csv_file, "b1").invoices}
        assert records["1001"].days_old == 0

    def test_outlier_flags(self, importer: CSVImporter, csv_file: Path) -> None:
        records = {r.id: r for r in importer.parse(csv_file, "b1").invoices}
        assert records["1003"].outlier_reason == OutlierReason.HIGH_VALUE
        assert records["1003"].include_in_analysis is False
        assert records["1002"].outlier_reason == OutlierReason.NEGATIVE
        assert records["1002"].amount == -75.5
        assert records["1001"].include_in_analysis is True

    def test_custom_outlier_threshold(self, csv_file: Path) -> None:
        importer = CSVImporter(classifier=OutlierClassifier(high_value_threshold=1000.0), as_of=date(2025, 12, 1))
        result = importer.parse(csv_file, "b1")
        assert result.outlier_high_value == 2

    def test_missing_id_falls_back_to_invoice_number(self, importer: CSVImporter, csv_file: Path) -> None:
        records = {r.id: r for r in importer.parse(csv_file, "b1").invoices}
        assert "INV-7" in records
        assert records["INV-7"].invoice_date == date(2025, 11, 15)

    def test_tab_separated_title_case_headers(self, importer: CSVImporter) -> None:
        result = importer.parse_text(TSV, "b2")
        assert result.record_count == 1
        record = result.invoices[0]
        assert record.id == "A1"
        assert record.supplier == "Acme, Inc"
        assert record.amount == 12.5
        assert record.days_old is None

    def test_synthetic_row_ids(self, importer: CSVImporter) -> None:
        result = importer.parse_text("Supplier,Amount\nA,1\nB,2\n", "b3")
        assert [r.id for r in result.invoices] == ["row-1", "row-2"]
        assert result.synthetic_ids == 2

    def test_invoice_number_is_a_real_identifier(self, importer: CSVImporter) -> None:
        result = importer.parse_text(SAMPLE_CSV, "b1")
        assert result.synthetic_ids == 0
        assert "INV-7" in [r.id for r in result.invoices]

    def test_positional_ids_are_warned_about(
        self, importer: CSVImporter, caplog: pytest.LogCaptureFixture, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(logging.getLogger("invoicepulse"), "propagate", True)
        with caplog.at_level(logging.WARNING, logger="invoicepulse.connectors.csv"):
            importer.parse_text("Supplier,Amount\nA,1\nB,2\n", "b3")
        assert "2 row(s) have no invoice id or number" in caplog.text

    def test_empty_text(self, importer: CSVImporter) -> None:
        assert importer.parse_text("", "b").record_count == 0

    def test_missing_file(self, importer: CSVImporter) -> None:
        with pytest.raises(FileNotFoundError):
            importer.parse("/nonexistent/file.csv", "b")


class TestParsers:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("$1,234.50", 1234.5),
            ("(12.00)", -12.0),
            ("($1,000)", -1000.0),
            ("-3", -3.0),
            ("", 0.0),
            ("n/a", 0.0),
            (None, 0.0),
        ],
    )
    def test_parse_amount(self, raw, expected) -> None:
        assert parse_amount(raw) == expected

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("2025-11-30", date(2025, 11, 30)),
            ("2025-11-30T18:00:00.000-06:00", date(2025, 11, 30)),
            ("11-30-25", date(2025, 11, 30)),
            ("1-5-2024", date(2024, 1, 5)),
            ("2025-13-40", None),
            ("yesterday", None),
            ("", None),
        ],
    )
    def test_parse_date(self, raw, expected) -> None:
        assert parse_date(raw) == expected

    def test_detect_delimiter(self) -> None:
        assert detect_delimiter("a\tb\tc\n1\t2\t3") == "\t"
        assert detect_delimiter("a,b,c\n1,2,3") == ","


class TestExtractCSVMembers:
    @pytest.fixture
    def archive(self, tmp_path: Path) -> Path:
        path = tmp_path / "exports.zip"
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr("day1.csv", SAMPLE_CSV)
            zf.writestr("nested/", "")
            zf.writestr("nested/day2.TXT", TSV)
            zf.writestr("__MACOSX/._day1.csv", "resource fork")
            zf.writestr(".hidden.csv", "a,b\n1,2\n")
            zf.writestr("readme.md", "# exports")
        return path

    def test_keeps_exports_in_archive_order(self, archive: Path) -> None:
        members = extract_csv_members(archive)
        assert [m.name for m in members] == ["day1.csv", "day2.TXT"]
        assert [m.path for m in members] == ["day1.csv", "nested/day2.TXT"]
        assert members[0].content == SAMPLE_CSV
        assert members[1].size == len(TSV.encode())

    def test_members_parse_like_files(self, archive: Path, importer: CSVImporter) -> None:
        members = extract_csv_members(archive)
        result = importer.parse_text(members[1].content, "b2")
        assert [r.id for r in result.invoices] == ["A1"]
        assert result.invoices[0].supplier == "Acme, Inc"

    def test_undecodable_bytes_are_replaced(self, tmp_path: Path) -> None:
        path = tmp_path / "latin.zip"
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr("export.csv", b"Supplier,Amount\nCaf\xe9,1\n")
        members = extract_csv_members(path)
        assert "�" in members[0].content

    def test_missing_archive(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            extract_csv_members(tmp_path / "nope.zip")

    def test_not_a_zip(self, tmp_path: Path) -> None:
        path = tmp_path / "fake.zip"
        path.write_text(SAMPLE_CSV)
        with pytest.raises(InvalidArchive) as exc_info:
            extract_csv_members(path)
        assert exc_info.value.path == path
