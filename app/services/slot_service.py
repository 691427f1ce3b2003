"""Individual slot generation for hybrid lesson weeks."""

import logging
from dataclasses import dataclass
from datetime import date, time
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.errors import BookingsClosedError, InvalidWeekError, NotFoundError
from app.models import HybridBooking, HybridBookingStatus, Lesson
from app.services.hybrid_pattern import WeekKind, classify_pattern_week, date_for_week
from app.utils.time_ranges import from_minutes, times_overlap, to_minutes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimeSlot:
    """A bookable individual-session window."""

    date: date
    start_time: time
    end_time: time
    week_number: int
    is_available: bool


def generate_slot_windows(start: time, end: time, slot_minutes: int) -> List[Tuple[time, time]]:
    """Split ``[start, end)`` into consecutive windows of ``slot_minutes``.

    A trailing remainder shorter than one slot is dropped.
    """
    if slot_minutes <= 0:
        raise ValueError("Slot duration must be positive")

    windows = []
    cursor = to_minutes(start)
    limit = to_minutes(end)
    while cursor + slot_minutes <= limit:
        windows.append((from_minutes(cursor), from_minutes(cursor + slot_minutes)))
        cursor += slot_minutes
    return windows


def mark_slots(
    slot_date: date,
    week_number: int,
    windows: Sequence[Tuple[time, time]],
    taken: Sequence[Tuple[time, time]],
) -> List[TimeSlot]:
    """Flag each window as unavailable when any taken range overlaps it."""
    slots = []
    for slot_start, slot_end in windows:
        is_booked = any(
            times_overlap(slot_start, slot_end, taken_start, taken_end)
            for taken_start, taken_end in taken
        )
        slots.append(
            TimeSlot(
                date=slot_date,
                start_time=slot_start,
                end_time=slot_end,
                week_number=week_number,
                is_available=not is_booked,
            )
        )
    return slots


async def load_hybrid_lesson(db: AsyncSession, school_id: int, lesson_id: int) -> Lesson:
    """Load an active lesson with its term and pattern, or raise NOT_FOUND."""
    result = await db.execute(
        select(Lesson)
        .options(
            selectinload(Lesson.term),
            selectinload(Lesson.hybrid_pattern),
        )
        .where(
            Lesson.id == lesson_id,
            Lesson.school_id == school_id,
            Lesson.active == True,  # noqa: E712
        )
    )
    lesson = result.scalar_one_or_none()
    if not lesson:
        raise NotFoundError("Lesson not found.")
    return lesson


def ensure_individual_week(lesson: Lesson, week_number: int) -> None:
    """Raise INVALID_WEEK unless the week is an individual week of a hybrid lesson."""
    if not lesson.is_hybrid or lesson.hybrid_pattern is None:
        raise InvalidWeekError("This lesson is not a hybrid lesson.")
    if classify_pattern_week(lesson.hybrid_pattern, week_number) != WeekKind.INDIVIDUAL:
        raise InvalidWeekError(f"Week {week_number} is not an individual booking week.")


def ensure_bookings_open(lesson: Lesson) -> None:
    if not lesson.hybrid_pattern or not lesson.hybrid_pattern.bookings_open:
        raise BookingsClosedError("Bookings are not currently open for this lesson.")


async def taken_windows(
    db: AsyncSession,
    lesson_id: int,
    week_number: int,
    exclude_booking_id: Optional[int] = None,
) -> List[Tuple[time, time]]:
    """Start/end of every non-cancelled booking of a lesson week."""
    query = select(HybridBooking.start_time, HybridBooking.end_time).where(
        HybridBooking.lesson_id == lesson_id,
        HybridBooking.week_number == week_number,
        HybridBooking.status != HybridBookingStatus.CANCELLED,
    )
    if exclude_booking_id is not None:
        query = query.where(HybridBooking.id != exclude_booking_id)

    result = await db.execute(query)
    return [(row.start_time, row.end_time) for row in result.all()]


async def slots_for_lesson(
    db: AsyncSession,
    lesson: Lesson,
    week_number: int,
    exclude_booking_id: Optional[int] = None,
) -> List[TimeSlot]:
    """Slots of an already loaded and validated hybrid lesson."""
    slot_date = date_for_week(lesson.term.start_date, week_number, lesson.day_of_week)
    windows = generate_slot_windows(
        lesson.start_time, lesson.end_time, lesson.hybrid_pattern.individual_slot_duration
    )
    taken = await taken_windows(db, lesson.id, week_number, exclude_booking_id)
    return mark_slots(slot_date, week_number, windows, taken)


async def available_slots(
    db: AsyncSession,
    school_id: int,
    lesson_id: int,
    week_number: int,
) -> List[TimeSlot]:
    """
    Get the individual slots of a hybrid lesson week.

    Raises:
        NotFoundError: lesson missing, inactive or in another school
        InvalidWeekError: lesson is not hybrid or the week is not an individual week
        BookingsClosedError: bookings are closed for the lesson
    """
    lesson = await load_hybrid_lesson(db, school_id, lesson_id)
    ensure_individual_week(lesson, week_number)
    ensure_bookings_open(lesson)

    slots = await slots_for_lesson(db, lesson, week_number)
    logger.debug(
        f"Lesson {lesson_id} week {week_number}: "
        f"{sum(s.is_available for s in slots)}/{len(slots)} slots available"
    )
    return slots
