"""
Unit tests for wall-clock time range helpers.
"""

from datetime import time

import pytest

from app.utils.time_ranges import (
    WeeklyInterval,
    add_minutes,
    duration_minutes,
    format_range,
    format_time,
    from_minutes,
    intervals_conflict,
    parse_time,
    times_overlap,
    to_minutes,
)


class TestParsing:
    """Test cases for parsing and formatting."""

    def test_parse_strings_and_times(self):
        assert parse_time("09:30") == time(9, 30)
        assert parse_time("09:30:45") == time(9, 30)
        assert parse_time(time(14, 5, 59)) == time(14, 5)

    def test_parse_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_time("930")

    def test_minutes_round_trip_boundaries(self):
        assert to_minutes("00:00") == 0
        assert to_minutes("23:59") == 1439
        assert from_minutes(570) == time(9, 30)

    def test_from_minutes_out_of_range(self):
        with pytest.raises(ValueError):
            from_minutes(1440)
        with pytest.raises(ValueError):
            from_minutes(-1)

    def test_formatting(self):
        assert format_time(time(9, 5)) == "09:05"
        assert format_range("09:00", "10:30") == "09:00 - 10:30"
        assert add_minutes("09:45", 30) == time(10, 15)
        assert duration_minutes("09:00", "10:30") == 90


class TestOverlap:
    """Half-open [start, end) overlap semantics."""

    @pytest.mark.parametrize(
        "a, b, expected",
        [
            (("09:00", "10:00"), ("09:30", "10:30"), True),   # ends inside
            (("09:30", "10:30"), ("09:00", "10:00"), True),   # starts inside
            (("09:00", "11:00"), ("09:30", "10:00"), True),   # contains
            (("09:30", "10:00"), ("09:00", "11:00"), True),   # contained
            (("09:00", "10:00"), ("09:00", "10:00"), True),   # identical
            (("09:00", "10:00"), ("10:00", "11:00"), False),  # back-to-back
            (("10:00", "11:00"), ("09:00", "10:00"), False),  # back-to-back, reversed
            (("08:00", "08:30"), ("09:00", "10:00"), False),  # disjoint
        ],
    )
    def test_times_overlap(self, a, b, expected):
        assert times_overlap(a[0], a[1], b[0], b[1]) is expected

    def test_overlap_is_symmetric(self):
        ranges = [("08:00", "09:00"), ("08:30", "09:30"), ("09:00", "10:00"), ("08:00", "12:00")]
        for s1, e1 in ranges:
            for s2, e2 in ranges:
                assert times_overlap(s1, e1, s2, e2) == times_overlap(s2, e2, s1, e1)

    def test_weekly_intervals_need_same_day(self):
        monday = WeeklyInterval(1, time(9, 0), time(10, 0))
        tuesday = WeeklyInterval(2, time(9, 0), time(10, 0))
        monday_late = WeeklyInterval(1, time(9, 30), time(10, 30))

        assert not intervals_conflict(monday, tuesday)
        assert intervals_conflict(monday, monday_late)
