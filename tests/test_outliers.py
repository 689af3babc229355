"""Tests for outlier flagging and analysis inclusion."""

from invoicepulse.analyzers.outliers import (
    OutlierClassifier,
    analysis_set,
    is_included,
    outlier_stats,
)
from invoicepulse.models.invoice import OutlierReason

from conftest import HEADER, READY


class TestOutlierClassifier:
    def test_high_value_needs_header_state(self) -> None:
        classifier = OutlierClassifier()
        assert classifier.classify(150_000.0, HEADER) == OutlierReason.HIGH_VALUE
        assert classifier.classify(150_000.0, READY) is None
        assert classifier.classify(100_000.0, HEADER) is None

    def test_negative(self) -> None:
        assert OutlierClassifier().classify(-0.01, READY) == OutlierReason.NEGATIVE

    def test_custom_threshold_and_state(self) -> None:
        classifier = OutlierClassifier(high_value_threshold=500.0, high_value_state=READY)
        assert classifier.classify(600.0, READY) == OutlierReason.HIGH_VALUE

    def test_flag_defaults_inclusion(self, make_invoice) -> None:
        classifier = OutlierClassifier()
        flagged = classifier.flag(make_invoice("1", 200_000.0, HEADER))
        assert flagged.is_outlier
        assert flagged.outlier_reason == OutlierReason.HIGH_VALUE
        assert flagged.include_in_analysis is False

        regular = classifier.flag(make_invoice("2", 20.0, HEADER))
        assert not regular.is_outlier
        assert regular.include_in_analysis is True

    def test_flag_keeps_explicit_inclusion(self, make_invoice) -> None:
        record = make_invoice("1", -5.0, include_in_analysis=True)
        flagged = OutlierClassifier().flag(record)
        assert flagged.is_outlier
        assert flagged.include_in_analysis is True

    def test_flag_all(self, make_invoice) -> None:
        records = OutlierClassifier().flag_all([make_invoice("1", -1.0), make_invoice("2", 1.0)])
        assert [r.is_outlier for r in records] == [True, False]


class TestInclusion:
    def test_outliers_excluded_by_default(self, make_invoice) -> None:
        classifier = OutlierClassifier()
        high = classifier.flag(make_invoice("1", 200_000.0, HEADER))
        negative = classifier.flag(make_invoice("2", -50.0))
        regular = classifier.flag(make_invoice("3", 50.0))

        assert not is_included(high)
        assert not is_included(negative)
        assert is_included(regular)
        assert is_included(high, include_high_value=True)
        assert is_included(negative, include_negative=True)
        assert not is_included(high, include_negative=True)

    def test_unflagged_record_counts(self, make_invoice) -> None:
        assert is_included(make_invoice("1"))
        assert not is_included(make_invoice("2", include_in_analysis=False))

    def test_analysis_set_and_stats(self, make_invoice) -> None:
        records = OutlierClassifier().flag_all([
            make_invoice("1", 200_000.0, HEADER),
            make_invoice("2", -50.0),
            make_invoice("3", 50.0),
        ])
        assert [r.id for r in analysis_set(records)] == ["3"]
        assert [r.id for r in analysis_set(records, include_negative=True)] == ["2", "3"]

        stats = outlier_stats(records, include_high_value=True)
        assert stats.total == 2
        assert stats.high_value == 1
        assert stats.negative == 1
        assert stats.included == 1
        assert stats.excluded == 1
