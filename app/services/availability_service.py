"""Teacher and room availability checks for weekly recurring lessons."""

import enum
import logging
from dataclasses import dataclass
from datetime import time
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import InvalidRequestError
from app.models import Lesson
from app.utils.time_ranges import TimeLike, parse_time, times_overlap, to_minutes

logger = logging.getLogger(__name__)


class ResourceKind(str, enum.Enum):
    """Resource a lesson occupies."""

    TEACHER = "TEACHER"
    ROOM = "ROOM"


@dataclass
class AvailabilityResult:
    """Outcome of an availability check."""

    available: bool
    conflicting_lesson: Optional[Lesson] = None


_RESOURCE_COLUMNS = {
    ResourceKind.TEACHER: Lesson.teacher_id,
    ResourceKind.ROOM: Lesson.room_id,
}


async def check_availability(
    db: AsyncSession,
    school_id: int,
    resource_kind: ResourceKind,
    resource_id: int,
    day_of_week: int,
    start_time: TimeLike,
    end_time: TimeLike,
    exclude_lesson_id: Optional[int] = None,
) -> AvailabilityResult:
    """
    Check whether a teacher or room is free for a weekly time window.

    Args:
        db: Database session
        school_id: Tenant the lookup is scoped to
        resource_kind: TEACHER or ROOM
        resource_id: ID of the teacher or room
        day_of_week: 0=Sunday ... 6=Saturday
        start_time: Proposed start (wall clock)
        end_time: Proposed end (wall clock)
        exclude_lesson_id: Lesson to ignore, used when updating or rescheduling it

    Returns:
        AvailabilityResult with the first conflicting active lesson, if any
    """
    start: time = parse_time(start_time)
    end: time = parse_time(end_time)
    if to_minutes(start) >= to_minutes(end):
        raise InvalidRequestError("End time must be after start time.")
    if not 0 <= day_of_week <= 6:
        raise InvalidRequestError("Day of week must be between 0 and 6.")

    query = (
        select(Lesson)
        .where(
            Lesson.school_id == school_id,
            _RESOURCE_COLUMNS[ResourceKind(resource_kind)] == resource_id,
            Lesson.day_of_week == day_of_week,
            Lesson.active == True,  # noqa: E712
        )
        .order_by(Lesson.start_time, Lesson.id)
    )
    if exclude_lesson_id is not None:
        query = query.where(Lesson.id != exclude_lesson_id)

    result = await db.execute(query)
    candidates = result.scalars().all()

    for lesson in candidates:
        if times_overlap(start, end, lesson.start_time, lesson.end_time):
            logger.info(
                f"{resource_kind} {resource_id} busy on day {day_of_week} "
                f"{start}-{end}: conflicts with lesson {lesson.id} ({lesson.name})"
            )
            return AvailabilityResult(available=False, conflicting_lesson=lesson)

    return AvailabilityResult(available=True)


async def check_teacher_availability(db: AsyncSession, school_id: int, teacher_id: int, day_of_week: int,
                                     start_time: TimeLike, end_time: TimeLike,
                                     exclude_lesson_id: Optional[int] = None) -> AvailabilityResult:
    return await check_availability(
        db, school_id, ResourceKind.TEACHER, teacher_id, day_of_week, start_time, end_time, exclude_lesson_id
    )


async def check_room_availability(db: AsyncSession, school_id: int, room_id: int, day_of_week: int,
                                  start_time: TimeLike, end_time: TimeLike,
                                  exclude_lesson_id: Optional[int] = None) -> AvailabilityResult:
    return await check_availability(
        db, school_id, ResourceKind.ROOM, room_id, day_of_week, start_time, end_time, exclude_lesson_id
    )
