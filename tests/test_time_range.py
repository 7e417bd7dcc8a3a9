"""
Tests for time ranges and overlap detection.
"""

from datetime import datetime, timedelta, timezone

import pytest

from use_cases.scheduling.domain import InvalidTimeRange, TimeRange, conflicts_with_any, overlaps

from conftest import NOW


def hours(start: float, end: float) -> TimeRange:
    return TimeRange(NOW + timedelta(hours=start), NOW + timedelta(hours=end))


class TestTimeRange:

    def test_start_must_precede_end(self):
        with pytest.raises(InvalidTimeRange):
            TimeRange(NOW, NOW)
        with pytest.raises(InvalidTimeRange):
            TimeRange(NOW, NOW - timedelta(minutes=1))

    def test_naive_datetimes_are_utc(self):
        r = TimeRange(datetime(2025, 1, 6, 9, 0), datetime(2025, 1, 6, 10, 0))
        assert r.start == NOW
        assert r.start.tzinfo == timezone.utc

    def test_duration(self):
        assert hours(0, 1.5).duration == timedelta(minutes=90)

    def test_from_epoch(self):
        r = TimeRange.from_epoch(0, 3600)
        assert r.start == datetime(1970, 1, 1, tzinfo=timezone.utc)
        assert r.duration == timedelta(hours=1)


class TestOverlaps:

    def test_touching_ranges_do_not_overlap(self):
        assert not overlaps(hours(0, 1), hours(1, 2))
        assert not overlaps(hours(1, 2), hours(0, 1))

    def test_partial_and_contained_overlap(self):
        assert overlaps(hours(0, 2), hours(1, 3))
        assert overlaps(hours(0, 4), hours(1, 2))
        assert overlaps(hours(1, 2), hours(0, 4))

    def test_overlap_is_symmetric(self):
        a, b = hours(0, 2), hours(1.5, 5)
        assert overlaps(a, b) == overlaps(b, a) == a.overlaps(b)

    def test_conflicts_preserve_input_order(self):
        existing = [hours(3, 4), hours(0, 1), hours(1, 2), hours(0.5, 3.5)]
        conflicts = conflicts_with_any(hours(1, 3), existing)
        assert conflicts == [existing[2], existing[3]]

    def test_no_conflicts_means_bookable(self):
        assert conflicts_with_any(hours(5, 6), [hours(0, 1), hours(6, 7)]) == []
