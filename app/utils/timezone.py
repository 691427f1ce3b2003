"""Timezone utilities for reliable UTC handling.

Lesson times are stored as school wall-clock times; anything compared against
"now" is converted to UTC first.
"""

from datetime import date, datetime, time, timezone
from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo

from app.core.settings import settings


@lru_cache(maxsize=64)
def school_zone(tz_name: Optional[str] = None) -> ZoneInfo:
    """Get the zone for a school, falling back to the configured default."""
    return ZoneInfo(tz_name or settings.timezone)


def to_utc(dt_local: datetime, tz_name: Optional[str] = None) -> datetime:
    """Convert school-local time to UTC."""
    if dt_local.tzinfo is None:
        dt_local = dt_local.replace(tzinfo=school_zone(tz_name))
    return dt_local.astimezone(timezone.utc)


def from_utc_to_local(dt_utc: datetime, tz_name: Optional[str] = None) -> datetime:
    """Convert UTC time to school-local time."""
    if dt_utc.tzinfo is None:
        dt_utc = dt_utc.replace(tzinfo=timezone.utc)
    return dt_utc.astimezone(school_zone(tz_name))


def now_utc() -> datetime:
    """Get current time in UTC."""
    return datetime.now(timezone.utc)


def combine_date_time_to_utc(date_obj: date, time_obj: time, tz_name: Optional[str] = None) -> datetime:
    """Combine date and time objects and convert to UTC."""
    local_dt = datetime.combine(date_obj, time_obj, tzinfo=school_zone(tz_name))
    return local_dt.astimezone(timezone.utc)


def hours_until(date_obj: date, time_obj: time, now: datetime, tz_name: Optional[str] = None) -> float:
    """Hours from ``now`` until the given school-local date and time."""
    start_utc = combine_date_time_to_utc(date_obj, time_obj, tz_name)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return (start_utc - now).total_seconds() / 3600


def sunday_based_weekday(date_obj: date) -> int:
    """Weekday with 0=Sunday, 1=Monday, ..., 6=Saturday."""
    return (date_obj.weekday() + 1) % 7
