"""Wall-clock time range arithmetic.

All ranges are half-open ``[start, end)`` at minute precision, so a lesson
ending at 10:00 and another starting at 10:00 do not overlap.
"""

from datetime import time
from typing import NamedTuple, Union

TimeLike = Union[time, str]

MINUTES_PER_DAY = 24 * 60


class WeeklyInterval(NamedTuple):
    """A weekly recurring time window."""

    day_of_week: int
    start_time: time
    end_time: time


def parse_time(value: TimeLike) -> time:
    """Parse '14:30' / '14:30:00' strings; ``time`` objects pass through."""
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0, tzinfo=None)
    parts = value.strip().split(":")
    if len(parts) < 2:
        raise ValueError(f"Invalid time format: {value!r}. Use HH:MM")
    hour, minute = int(parts[0]), int(parts[1])
    return time(hour, minute)


def to_minutes(value: TimeLike) -> int:
    """Minutes since midnight."""
    t = parse_time(value)
    return t.hour * 60 + t.minute


def from_minutes(minutes: int) -> time:
    """Inverse of ``to_minutes``; rejects values outside a single day."""
    if minutes < 0 or minutes >= MINUTES_PER_DAY:
        raise ValueError(f"Minutes out of range for a wall-clock time: {minutes}")
    return time(minutes // 60, minutes % 60)


def format_time(value: TimeLike) -> str:
    """Format as HH:MM."""
    t = parse_time(value)
    return f"{t.hour:02d}:{t.minute:02d}"


def add_minutes(value: TimeLike, minutes: int) -> time:
    return from_minutes(to_minutes(value) + minutes)


def duration_minutes(start: TimeLike, end: TimeLike) -> int:
    return to_minutes(end) - to_minutes(start)


def times_overlap(start1: TimeLike, end1: TimeLike, start2: TimeLike, end2: TimeLike) -> bool:
    """Check whether two same-day time ranges overlap.

    Matches the three conflict cases used for lesson availability: the first
    range starts inside the second, ends inside it, or contains it. Touching
    boundaries are not an overlap.
    """
    s1, e1 = to_minutes(start1), to_minutes(end1)
    s2, e2 = to_minutes(start2), to_minutes(end2)

    starts_inside = s2 <= s1 < e2
    ends_inside = s2 < e1 <= e2
    contains = s1 <= s2 and e2 <= e1
    return starts_inside or ends_inside or contains


def intervals_conflict(a: WeeklyInterval, b: WeeklyInterval) -> bool:
    """Two weekly windows conflict when they share a day and overlap."""
    if a.day_of_week != b.day_of_week:
        return False
    return times_overlap(a.start_time, a.end_time, b.start_time, b.end_time)


def format_range(start: TimeLike, end: TimeLike) -> str:
    return f"{format_time(start)} - {format_time(end)}"
