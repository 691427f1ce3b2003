"""Calendar projection of recurring lessons, hybrid weeks and bookings.

Nothing here writes to the database: lessons are expanded week by week over
the requested range and merged with the bookings that fall inside it.
"""

import logging
import math
from datetime import date, datetime, time
from typing import Annotated, Dict, Iterator, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.errors import InvalidRequestError
from app.core.settings import settings
from app.models import (
    Family,
    HybridBooking,
    HybridBookingStatus,
    Lesson,
    LessonEnrollment,
    Parent,
    School,
    Student,
)
from app.services.hybrid_pattern import WeekKind, classify_pattern_week, date_for_week, week_start
from app.utils.timezone import school_zone

logger = logging.getLogger(__name__)


# ----------------------------------------------------------------------
# Event models
# ----------------------------------------------------------------------


class _EventBase(BaseModel):
    id: str
    title: str
    start: datetime
    end: datetime
    lesson_id: int
    lesson_name: str
    teacher_name: Optional[str] = None
    room_name: Optional[str] = None
    location_name: Optional[str] = None
    week_number: int
    student_id: Optional[int] = None
    student_name: Optional[str] = None
    enrolled_count: Optional[int] = None
    max_students: Optional[int] = None


class GroupSessionEvent(_EventBase):
    """A regular session; ``session_type`` is the lesson category or HYBRID_GROUP."""

    kind: Literal["GROUP"] = "GROUP"
    session_type: str


class BookingEvent(_EventBase):
    kind: Literal["BOOKING"] = "BOOKING"
    booking_id: int
    status: HybridBookingStatus


class PlaceholderEvent(_EventBase):
    """An individual week of a hybrid lesson that still needs a booking."""

    kind: Literal["PLACEHOLDER"] = "PLACEHOLDER"
    bookings_open: bool


CalendarEvent = Annotated[
    Union[GroupSessionEvent, BookingEvent, PlaceholderEvent],
    Field(discriminator="kind"),
]


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_more: bool


class CalendarPage(BaseModel):
    events: List[CalendarEvent]
    pagination: Pagination


# ----------------------------------------------------------------------
# Pure helpers
# ----------------------------------------------------------------------


def validate_range(start_date: date, end_date: date, max_days: Optional[int] = None) -> None:
    max_days = max_days or settings.calendar_max_range_days
    if end_date < start_date:
        raise InvalidRequestError("End date must be on or after start date.")
    if (end_date - start_date).days > max_days:
        raise InvalidRequestError(f"Date range cannot exceed {max_days} days.")


def validate_page(page: int, limit: int) -> None:
    if page < 1:
        raise InvalidRequestError("Page must be at least 1.")
    if not 1 <= limit <= settings.calendar_max_page_size:
        raise InvalidRequestError(f"Limit must be between 1 and {settings.calendar_max_page_size}.")


def lesson_dates(
    term_start: date,
    term_end: date,
    day_of_week: int,
    range_start: date,
    range_end: date,
) -> Iterator[Tuple[int, date]]:
    """Yield (week_number, date) of a weekly lesson inside both the term and the range."""
    last_day = min(term_end, range_end)
    week = 1
    while week_start(term_start, week) <= last_day:
        lesson_date = date_for_week(term_start, week, day_of_week)
        if range_start <= lesson_date <= range_end and term_start <= lesson_date <= term_end:
            yield week, lesson_date
        week += 1


def paginate(events: list, page: int, limit: int) -> CalendarPage:
    events.sort(key=lambda e: (e.start, e.id))
    total = len(events)
    total_pages = math.ceil(total / limit) if total else 0
    offset = (page - 1) * limit
    return CalendarPage(
        events=events[offset:offset + limit],
        pagination=Pagination(
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_more=page < total_pages,
        ),
    )


# ----------------------------------------------------------------------
# Projector
# ----------------------------------------------------------------------


class CalendarProjector:
    """Expands lessons and bookings into calendar events."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _zone(self, school_id: int):
        tz_name = await self.db.scalar(select(School.timezone).where(School.id == school_id))
        return school_zone(tz_name)

    async def school_today(self, school_id: int, now: datetime) -> date:
        """The current date on the school's wall clock."""
        return now.astimezone(await self._zone(school_id)).date()

    async def _enrolled_counts(self, lesson_ids: List[int]) -> Dict[int, int]:
        if not lesson_ids:
            return {}
        result = await self.db.execute(
            select(LessonEnrollment.lesson_id, func.count())
            .where(LessonEnrollment.lesson_id.in_(lesson_ids), LessonEnrollment.active == True)  # noqa: E712
            .group_by(LessonEnrollment.lesson_id)
        )
        return dict(result.all())

    @staticmethod
    def _lesson_fields(lesson: Lesson) -> dict:
        return {
            "lesson_id": lesson.id,
            "lesson_name": lesson.name,
            "teacher_name": lesson.teacher.full_name if lesson.teacher else None,
            "room_name": lesson.room.name if lesson.room else None,
            "location_name": lesson.room.location_name if lesson.room else None,
        }

    @staticmethod
    def _at(day: date, at: time, zone) -> datetime:
        return datetime.combine(day, at, tzinfo=zone)

    def _booking_event(self, booking: HybridBooking, lesson: Lesson, zone) -> BookingEvent:
        student = booking.student
        return BookingEvent(
            id=f"booking-{booking.id}",
            title=f"{lesson.name} - {student.first_name} (Booked)",
            start=self._at(booking.scheduled_date, booking.start_time, zone),
            end=self._at(booking.scheduled_date, booking.end_time, zone),
            week_number=booking.week_number,
            student_id=student.id,
            student_name=student.full_name,
            booking_id=booking.id,
            status=booking.status,
            **self._lesson_fields(lesson),
        )

    @staticmethod
    def _lesson_options():
        return (
            selectinload(Lesson.term),
            selectinload(Lesson.teacher),
            selectinload(Lesson.room),
            selectinload(Lesson.hybrid_pattern),
        )

    async def project_events(
        self,
        school_id: int,
        start_date: date,
        end_date: date,
        term_id: Optional[int] = None,
        teacher_id: Optional[int] = None,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> CalendarPage:
        """Admin/teacher calendar: sessions, placeholders and every live booking."""
        limit = limit or settings.calendar_default_page_size
        validate_range(start_date, end_date)
        validate_page(page, limit)
        zone = await self._zone(school_id)

        query = (
            select(Lesson)
            .options(*self._lesson_options())
            .where(Lesson.school_id == school_id, Lesson.active == True)  # noqa: E712
        )
        if term_id is not None:
            query = query.where(Lesson.term_id == term_id)
        if teacher_id is not None:
            query = query.where(Lesson.teacher_id == teacher_id)
        lessons = (await self.db.execute(query)).scalars().all()

        enrolled = await self._enrolled_counts([lesson.id for lesson in lessons])

        events: list = []
        for lesson in lessons:
            fields = self._lesson_fields(lesson)
            capacity = {"enrolled_count": enrolled.get(lesson.id, 0), "max_students": lesson.max_students}
            pattern = lesson.hybrid_pattern
            for week, lesson_date in lesson_dates(
                lesson.term.start_date, lesson.term.end_date, lesson.day_of_week, start_date, end_date
            ):
                start = self._at(lesson_date, lesson.start_time, zone)
                end = self._at(lesson_date, lesson.end_time, zone)

                if not lesson.is_hybrid:
                    events.append(GroupSessionEvent(
                        id=f"{lesson.id}-week-{week}",
                        title=lesson.name,
                        start=start,
                        end=end,
                        week_number=week,
                        session_type=lesson.category.value,
                        **fields,
                        **capacity,
                    ))
                    continue

                week_kind = classify_pattern_week(pattern, week)
                if week_kind == WeekKind.GROUP:
                    events.append(GroupSessionEvent(
                        id=f"{lesson.id}-week-{week}",
                        title=f"{lesson.name} (Group)",
                        start=start,
                        end=end,
                        week_number=week,
                        session_type="HYBRID_GROUP",
                        **fields,
                        **capacity,
                    ))
                elif week_kind == WeekKind.INDIVIDUAL:
                    events.append(PlaceholderEvent(
                        id=f"{lesson.id}-week-{week}-placeholder",
                        title=f"{lesson.name} (Individual Week)",
                        start=start,
                        end=end,
                        week_number=week,
                        bookings_open=pattern.bookings_open,
                        **fields,
                        **capacity,
                    ))

        lessons_by_id = {lesson.id: lesson for lesson in lessons}
        if lessons_by_id:
            result = await self.db.execute(
                select(HybridBooking)
                .options(selectinload(HybridBooking.student))
                .where(
                    HybridBooking.lesson_id.in_(list(lessons_by_id)),
                    HybridBooking.status != HybridBookingStatus.CANCELLED,
                    HybridBooking.scheduled_date >= start_date,
                    HybridBooking.scheduled_date <= end_date,
                )
            )
            for booking in result.scalars().all():
                events.append(self._booking_event(booking, lessons_by_id[booking.lesson_id], zone))

        logger.debug(f"Projected {len(events)} calendar events for school {school_id}")
        return paginate(events, page, limit)

    async def project_parent_events(
        self,
        school_id: int,
        parent_id: int,
        start_date: date,
        end_date: date,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> CalendarPage:
        """Parent calendar: one entry per child per lesson week, plus their bookings."""
        limit = limit or settings.calendar_default_page_size
        validate_range(start_date, end_date)
        validate_page(page, limit)

        parent = await self.db.scalar(
            select(Parent)
            .options(selectinload(Parent.family).selectinload(Family.students))
            .where(Parent.id == parent_id, Parent.school_id == school_id)
        )
        if not parent or not parent.family:
            return paginate([], page, limit)

        zone = await self._zone(school_id)
        student_ids = [s.id for s in parent.family.students if s.school_id == school_id]
        if not student_ids:
            return paginate([], page, limit)

        result = await self.db.execute(
            select(LessonEnrollment)
            .join(Lesson, Lesson.id == LessonEnrollment.lesson_id)
            .options(
                selectinload(LessonEnrollment.student),
                selectinload(LessonEnrollment.lesson).options(*self._lesson_options()),
            )
            .where(
                LessonEnrollment.student_id.in_(student_ids),
                LessonEnrollment.active == True,  # noqa: E712
                Lesson.active == True,  # noqa: E712
                Lesson.school_id == school_id,
            )
        )
        enrollments = result.scalars().all()

        result = await self.db.execute(
            select(HybridBooking)
            .join(Lesson, Lesson.id == HybridBooking.lesson_id)
            .options(
                selectinload(HybridBooking.student),
                selectinload(HybridBooking.lesson).options(*self._lesson_options()),
            )
            .where(
                Lesson.school_id == school_id,
                HybridBooking.status != HybridBookingStatus.CANCELLED,
                (HybridBooking.student_id.in_(student_ids)) | (HybridBooking.parent_id == parent_id),
            )
        )
        # Any live booking fills its week, whatever its status
        live = result.scalars().all()
        by_week: Dict[Tuple[int, int, int], HybridBooking] = {
            (b.lesson_id, b.student_id, b.week_number): b for b in live
        }

        events: list = []
        emitted_bookings = set()

        for enrollment in enrollments:
            lesson = enrollment.lesson
            student: Student = enrollment.student
            fields = self._lesson_fields(lesson)
            pattern = lesson.hybrid_pattern

            for week, lesson_date in lesson_dates(
                lesson.term.start_date, lesson.term.end_date, lesson.day_of_week, start_date, end_date
            ):
                start = self._at(lesson_date, lesson.start_time, zone)
                end = self._at(lesson_date, lesson.end_time, zone)
                common = dict(
                    start=start,
                    end=end,
                    week_number=week,
                    student_id=student.id,
                    student_name=student.full_name,
                    **fields,
                )

                if not lesson.is_hybrid:
                    events.append(GroupSessionEvent(
                        id=f"{lesson.id}-week-{week}-{student.id}",
                        title=f"{lesson.name} - {student.first_name}",
                        session_type=lesson.category.value,
                        **common,
                    ))
                    continue

                week_kind = classify_pattern_week(pattern, week)
                if week_kind == WeekKind.GROUP:
                    events.append(GroupSessionEvent(
                        id=f"{lesson.id}-week-{week}-{student.id}",
                        title=f"{lesson.name} (Group) - {student.first_name}",
                        session_type="HYBRID_GROUP",
                        **common,
                    ))
                elif week_kind == WeekKind.INDIVIDUAL:
                    booking = by_week.get((lesson.id, student.id, week))
                    if booking is not None:
                        if start_date <= booking.scheduled_date <= end_date:
                            events.append(self._booking_event(booking, lesson, zone))
                            emitted_bookings.add(booking.id)
                    else:
                        events.append(PlaceholderEvent(
                            id=f"{lesson.id}-week-{week}-{student.id}-placeholder",
                            title=f"{lesson.name} (Book individual session) - {student.first_name}",
                            bookings_open=pattern.bookings_open,
                            **common,
                        ))

        for booking in live:
            if booking.id in emitted_bookings or booking.parent_id != parent_id:
                continue
            if start_date <= booking.scheduled_date <= end_date:
                events.append(self._booking_event(booking, booking.lesson, zone))
                emitted_bookings.add(booking.id)

        return paginate(events, page, limit)
