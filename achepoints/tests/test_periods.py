"""Tests for the calendar-month period value type."""

from datetime import date, datetime, timezone

import pytest

from achepoints.periods import Period


class TestPeriodParsing:

    def test_label_round_trip(self):
        assert Period.parse("2024-03") == Period(2024, 3)
        assert str(Period(2024, 3)) == "2024-03"
        assert Period(987, 1).label == "0987-01"

    @pytest.mark.parametrize("label", ["2024-3", "2024-13", "2024-00", "24-03", "2024/03", "", "2024-03-01"])
    def test_rejects_malformed_labels(self, label):
        with pytest.raises(ValueError):
            Period.parse(label)

    def test_from_datetime_truncates_to_month(self):
        assert Period.from_datetime(datetime(2024, 12, 31, 23, 59, tzinfo=timezone.utc)) == Period(2024, 12)


class TestPeriodArithmetic:

    def test_ordering(self):
        assert Period(2023, 12) < Period(2024, 1) < Period(2024, 2)
        assert sorted([Period(2024, 2), Period(2023, 11), Period(2024, 1)]) == [
            Period(2023, 11), Period(2024, 1), Period(2024, 2),
        ]

    def test_year_rollover(self):
        assert Period(2024, 12).next() == Period(2025, 1)
        assert Period(2025, 1).previous() == Period(2024, 12)

    def test_days_remaining(self):
        march = Period(2024, 3)
        assert march.days_remaining(date(2024, 3, 15)) == 16
        assert march.days_remaining(date(2024, 3, 31)) == 0
        assert march.days_remaining(date(2024, 4, 1)) == 0

    def test_days_remaining_in_leap_february(self):
        assert Period(2024, 2).days_remaining(date(2024, 2, 10)) == 19
        assert Period(2023, 2).days_remaining(date(2023, 2, 10)) == 18

    def test_contains(self):
        assert Period(2024, 3).contains(date(2024, 3, 1))
        assert not Period(2024, 3).contains(date(2025, 3, 1))
