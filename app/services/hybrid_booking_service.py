"""Service for individual-session bookings of hybrid lessons.

Bookings move through PENDING -> CONFIRMED -> {CANCELLED, COMPLETED, NO_SHOW};
PENDING may also be cancelled directly. Slot availability is always computed
live from non-cancelled bookings. Races between parents booking the same slot
are settled by the partial unique indexes on ``hybrid_bookings``.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Callable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.errors import (
    ConflictError,
    DateMismatchError,
    DeadlineExceededError,
    ForbiddenError,
    InvalidStateError,
    InvalidWeekError,
    NotFoundError,
    SlotUnavailableError,
)
from app.models import (
    ACTIVE_BOOKING_STATUSES,
    Family,
    HybridBooking,
    HybridBookingStatus,
    HybridPattern,
    Lesson,
    LessonEnrollment,
    Parent,
    School,
    Student,
)
from app.services.audit_service import log_audit
from app.services.hybrid_pattern import date_for_week
from app.services.notification_service import NotificationService
from app.services.slot_service import (
    ensure_bookings_open,
    ensure_individual_week,
    load_hybrid_lesson,
    slots_for_lesson,
)
from app.utils.time_ranges import format_range, format_time, parse_time, to_minutes
from app.utils.timezone import hours_until, now_utc

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS = {
    HybridBookingStatus.PENDING: {HybridBookingStatus.CONFIRMED, HybridBookingStatus.CANCELLED},
    HybridBookingStatus.CONFIRMED: {
        HybridBookingStatus.CANCELLED,
        HybridBookingStatus.COMPLETED,
        HybridBookingStatus.NO_SHOW,
    },
    HybridBookingStatus.CANCELLED: set(),
    HybridBookingStatus.COMPLETED: set(),
    HybridBookingStatus.NO_SHOW: set(),
}


@dataclass
class CreateBookingInput:
    lesson_id: int
    student_id: int
    week_number: int
    scheduled_date: date
    start_time: time
    end_time: time


@dataclass
class RescheduleBookingInput:
    scheduled_date: date
    start_time: time
    end_time: time


@dataclass
class BookingStats:
    total_students: int
    booked_count: int
    unbooked_count: int
    completion_rate: float
    pending_bookings: int
    confirmed_bookings: int


@dataclass
class UnbookedStudent:
    student: Student
    parent: Optional[Parent]


class HybridBookingService:
    """Creates, reschedules and cancels individual-session bookings."""

    def __init__(
        self,
        db: AsyncSession,
        notifications: Optional[NotificationService] = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.db = db
        self.notifications = notifications or NotificationService()
        self.clock = clock

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def _school_timezone(self, school_id: int) -> Optional[str]:
        result = await self.db.execute(select(School.timezone).where(School.id == school_id))
        return result.scalar_one_or_none()

    async def parent_owns_student(self, school_id: int, parent_id: int, student_id: int) -> bool:
        """True when the student belongs to the parent's family in this school."""
        result = await self.db.execute(
            select(Student.id)
            .join(Family, Family.id == Student.family_id)
            .join(Parent, Parent.family_id == Family.id)
            .where(
                Parent.id == parent_id,
                Parent.school_id == school_id,
                Student.id == student_id,
                Student.school_id == school_id,
            )
        )
        return result.scalar_one_or_none() is not None

    async def _is_enrolled(self, lesson_id: int, student_id: int) -> bool:
        result = await self.db.execute(
            select(LessonEnrollment.id).where(
                LessonEnrollment.lesson_id == lesson_id,
                LessonEnrollment.student_id == student_id,
                LessonEnrollment.active == True,  # noqa: E712
            )
        )
        return result.scalar_one_or_none() is not None

    async def _student_week_booking(
        self, lesson_id: int, student_id: int, week_number: int, exclude_booking_id: Optional[int] = None
    ) -> Optional[HybridBooking]:
        query = select(HybridBooking).where(
            HybridBooking.lesson_id == lesson_id,
            HybridBooking.student_id == student_id,
            HybridBooking.week_number == week_number,
            HybridBooking.status != HybridBookingStatus.CANCELLED,
        )
        if exclude_booking_id is not None:
            query = query.where(HybridBooking.id != exclude_booking_id)
        result = await self.db.execute(query.limit(1))
        return result.scalar_one_or_none()

    async def _load_booking(self, school_id: int, booking_id: int) -> HybridBooking:
        result = await self.db.execute(
            select(HybridBooking)
            .join(Lesson, Lesson.id == HybridBooking.lesson_id)
            .options(
                selectinload(HybridBooking.lesson),
                selectinload(HybridBooking.student),
                selectinload(HybridBooking.parent),
            )
            .where(
                HybridBooking.id == booking_id,
                Lesson.school_id == school_id,
            )
            .execution_options(populate_existing=True)
        )
        booking = result.scalar_one_or_none()
        if not booking:
            raise NotFoundError("Booking not found.")
        return booking

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _check_deadline(
        self,
        pattern: HybridPattern,
        scheduled_date: date,
        start_time: time,
        tz_name: Optional[str],
        message: Optional[str] = None,
    ) -> None:
        deadline = pattern.booking_deadline_hours
        remaining = hours_until(scheduled_date, start_time, self.clock(), tz_name)
        if remaining < deadline:
            raise DeadlineExceededError(
                message or f"Bookings must be made at least {deadline} hours in advance."
            )

    async def _validate_schedule(
        self,
        lesson: Lesson,
        student_id: int,
        week_number: int,
        scheduled_date: date,
        start_time: time,
        end_time: time,
        tz_name: Optional[str],
        exclude_booking_id: Optional[int] = None,
    ) -> None:
        """Date, deadline, per-student uniqueness and slot checks, in that order."""
        expected_date = date_for_week(lesson.term.start_date, week_number, lesson.day_of_week)
        if scheduled_date != expected_date:
            raise DateMismatchError(
                f"Scheduled date {scheduled_date.isoformat()} does not match week {week_number} "
                f"of this lesson (expected {expected_date.isoformat()})."
            )

        self._check_deadline(lesson.hybrid_pattern, scheduled_date, start_time, tz_name)

        existing = await self._student_week_booking(lesson.id, student_id, week_number, exclude_booking_id)
        if existing:
            raise ConflictError("This student already has a booking for this week.")

        slots = await slots_for_lesson(self.db, lesson, week_number, exclude_booking_id)
        wanted = (to_minutes(start_time), to_minutes(end_time))
        if not any(
            slot.is_available and (to_minutes(slot.start_time), to_minutes(slot.end_time)) == wanted
            for slot in slots
        ):
            raise SlotUnavailableError(
                f"The {format_range(start_time, end_time)} slot is not available."
            )

    async def _race_error(self, lesson_id: int, student_id: int, week_number: int) -> Exception:
        """Classify a unique-index violation raised by a concurrent booking."""
        if await self._student_week_booking(lesson_id, student_id, week_number):
            return ConflictError("This student already has a booking for this week.")
        return SlotUnavailableError("This time slot is already booked.")

    @staticmethod
    def _transition(booking: HybridBooking, new_status: HybridBookingStatus) -> None:
        if new_status not in ALLOWED_TRANSITIONS[booking.status]:
            raise InvalidStateError(
                f"Cannot change a {booking.status.value.lower()} booking to {new_status.value.lower()}."
            )
        booking.status = new_status

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def create_booking(self, school_id: int, parent_id: int, data: CreateBookingInput) -> HybridBooking:
        """
        Create a CONFIRMED booking for a parent's child.

        Raises:
            NotFoundError, InvalidWeekError, BookingsClosedError, ForbiddenError,
            DateMismatchError, DeadlineExceededError, ConflictError, SlotUnavailableError
        """
        start_time = parse_time(data.start_time)
        end_time = parse_time(data.end_time)

        lesson = await load_hybrid_lesson(self.db, school_id, data.lesson_id)
        if not lesson.is_hybrid or lesson.hybrid_pattern is None:
            raise InvalidWeekError("This lesson is not a hybrid lesson.")
        ensure_bookings_open(lesson)

        if not await self.parent_owns_student(school_id, parent_id, data.student_id):
            raise ForbiddenError("You can only book for your own children.")
        if not await self._is_enrolled(lesson.id, data.student_id):
            raise ForbiddenError("Student is not enrolled in this lesson.")

        ensure_individual_week(lesson, data.week_number)

        tz_name = await self._school_timezone(school_id)
        await self._validate_schedule(
            lesson,
            data.student_id,
            data.week_number,
            data.scheduled_date,
            start_time,
            end_time,
            tz_name,
        )

        now = self.clock()
        booking = HybridBooking(
            lesson_id=lesson.id,
            student_id=data.student_id,
            parent_id=parent_id,
            week_number=data.week_number,
            scheduled_date=data.scheduled_date,
            start_time=start_time,
            end_time=end_time,
            status=HybridBookingStatus.CONFIRMED,
            confirmed_at=now,
        )
        self.db.add(booking)

        try:
            await self.db.flush()
            await log_audit(
                db=self.db,
                school_id=school_id,
                action_type="CREATE",
                entity_type="hybrid_booking",
                entity_id=booking.id,
                entity_name=f"{lesson.name} - week {data.week_number}",
                description=(
                    f"Booked individual session for student {data.student_id}: "
                    f"{data.scheduled_date.isoformat()} {format_range(start_time, end_time)}"
                ),
                user_name=f"Parent {parent_id}",
                user_type="parent",
                user_id=parent_id,
            )
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.warning(
                f"Concurrent booking detected for lesson {data.lesson_id} week {data.week_number} "
                f"{format_range(start_time, end_time)}"
            )
            raise await self._race_error(data.lesson_id, data.student_id, data.week_number)

        booking = await self._load_booking(school_id, booking.id)
        logger.info(
            f"✅ Booking {booking.id} created: lesson {lesson.id}, student {data.student_id}, "
            f"week {data.week_number}, {data.scheduled_date} {format_range(start_time, end_time)}"
        )

        await self.notifications.individual_session_booked(school_id, booking.id)
        return booking

    async def reschedule_booking(
        self, school_id: int, parent_id: int, booking_id: int, data: RescheduleBookingInput
    ) -> HybridBooking:
        """Move a booking to another slot of the same week."""
        start_time = parse_time(data.start_time)
        end_time = parse_time(data.end_time)

        booking = await self._load_booking(school_id, booking_id)
        if booking.parent_id != parent_id:
            raise ForbiddenError("You can only reschedule your own bookings.")
        if booking.status not in ACTIVE_BOOKING_STATUSES:
            raise InvalidStateError(f"Cannot reschedule a {booking.status.value.lower()} booking.")

        lesson = await load_hybrid_lesson(self.db, school_id, booking.lesson_id)
        if not lesson.is_hybrid or lesson.hybrid_pattern is None:
            raise InvalidWeekError("This lesson is not a hybrid lesson.")

        tz_name = await self._school_timezone(school_id)
        deadline = lesson.hybrid_pattern.booking_deadline_hours
        self._check_deadline(
            lesson.hybrid_pattern,
            booking.scheduled_date,
            booking.start_time,
            tz_name,
            message=f"Cannot reschedule bookings within {deadline} hours of the scheduled time.",
        )
        ensure_bookings_open(lesson)
        ensure_individual_week(lesson, booking.week_number)

        await self._validate_schedule(
            lesson,
            booking.student_id,
            booking.week_number,
            data.scheduled_date,
            start_time,
            end_time,
            tz_name,
            exclude_booking_id=booking.id,
        )

        old_date = booking.scheduled_date
        old_time = format_range(booking.start_time, booking.end_time)

        booking.scheduled_date = data.scheduled_date
        booking.start_time = start_time
        booking.end_time = end_time

        try:
            await log_audit(
                db=self.db,
                school_id=school_id,
                action_type="RESCHEDULE",
                entity_type="hybrid_booking",
                entity_id=booking.id,
                entity_name=f"{lesson.name} - week {booking.week_number}",
                description=(
                    f"Rescheduled individual session from {old_date.isoformat()} {old_time} "
                    f"to {data.scheduled_date.isoformat()} {format_range(start_time, end_time)}"
                ),
                user_name=f"Parent {parent_id}",
                user_type="parent",
                user_id=parent_id,
                changes={
                    "before": {"scheduled_date": old_date.isoformat(), "time": old_time},
                    "after": {
                        "scheduled_date": data.scheduled_date.isoformat(),
                        "time": format_range(start_time, end_time),
                    },
                },
            )
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise SlotUnavailableError("This time slot is already booked.")

        booking = await self._load_booking(school_id, booking.id)
        logger.info(f"🔄 Booking {booking.id} rescheduled to {booking.scheduled_date} {format_time(start_time)}")

        await self.notifications.individual_session_rescheduled(
            school_id, booking.id, old_date.isoformat(), old_time
        )
        return booking

    async def cancel_booking(
        self, school_id: int, parent_id: int, booking_id: int, reason: Optional[str] = None
    ) -> HybridBooking:
        """Cancel a booking; the slot becomes available again immediately."""
        booking = await self._load_booking(school_id, booking_id)
        if booking.parent_id != parent_id and not await self.parent_owns_student(
            school_id, parent_id, booking.student_id
        ):
            raise ForbiddenError("You can only cancel bookings for your own children.")

        if booking.status == HybridBookingStatus.CANCELLED:
            raise InvalidStateError("Booking is already cancelled.")
        if booking.status in (HybridBookingStatus.COMPLETED, HybridBookingStatus.NO_SHOW):
            raise InvalidStateError("Cannot cancel a completed booking.")

        self._transition(booking, HybridBookingStatus.CANCELLED)
        booking.cancelled_at = self.clock()
        booking.cancellation_reason = reason

        await log_audit(
            db=self.db,
            school_id=school_id,
            action_type="CANCEL",
            entity_type="hybrid_booking",
            entity_id=booking.id,
            entity_name=f"{booking.lesson.name} - week {booking.week_number}",
            description=f"Cancelled individual session on {booking.scheduled_date.isoformat()}"
                        + (f": {reason}" if reason else ""),
            user_name=f"Parent {parent_id}",
            user_type="parent",
            user_id=parent_id,
        )
        await self.db.commit()
        booking = await self._load_booking(school_id, booking.id)

        logger.info(f"🗑️ Booking {booking.id} cancelled by parent {parent_id}")
        await self.notifications.individual_session_cancelled(school_id, booking.id, reason)
        return booking

    async def update_status(
        self,
        school_id: int,
        booking_id: int,
        new_status: HybridBookingStatus,
        actor_name: str = "Administrator",
        teacher_id: Optional[int] = None,
    ) -> HybridBooking:
        """Staff transitions: confirm a pending booking, or record its outcome.

        When ``teacher_id`` is given, only bookings of that teacher's lessons
        may be changed.
        """
        if new_status not in (
            HybridBookingStatus.CONFIRMED,
            HybridBookingStatus.COMPLETED,
            HybridBookingStatus.NO_SHOW,
        ):
            raise InvalidStateError("Staff can only confirm, complete or mark bookings as no-show.")

        booking = await self._load_booking(school_id, booking_id)
        if teacher_id is not None and booking.lesson.teacher_id != teacher_id:
            raise ForbiddenError("You can only update bookings for your own lessons.")

        old_status = booking.status
        self._transition(booking, new_status)
        now = self.clock()
        if new_status == HybridBookingStatus.CONFIRMED:
            booking.confirmed_at = now
        else:
            booking.completed_at = now

        await log_audit(
            db=self.db,
            school_id=school_id,
            action_type="UPDATE",
            entity_type="hybrid_booking",
            entity_id=booking.id,
            entity_name=f"{booking.lesson.name} - week {booking.week_number}",
            description=f"Booking status changed: {old_status.value} → {new_status.value}",
            user_name=actor_name,
            user_type="teacher" if teacher_id is not None else "admin",
            changes={"before": {"status": old_status.value}, "after": {"status": new_status.value}},
        )
        await self.db.commit()
        booking = await self._load_booking(school_id, booking.id)
        return booking

    async def confirm_booking(self, school_id: int, booking_id: int, **kwargs) -> HybridBooking:
        return await self.update_status(school_id, booking_id, HybridBookingStatus.CONFIRMED, **kwargs)

    async def complete_booking(self, school_id: int, booking_id: int, **kwargs) -> HybridBooking:
        return await self.update_status(school_id, booking_id, HybridBookingStatus.COMPLETED, **kwargs)

    async def mark_no_show(self, school_id: int, booking_id: int, **kwargs) -> HybridBooking:
        return await self.update_status(school_id, booking_id, HybridBookingStatus.NO_SHOW, **kwargs)

    async def set_bookings_open(
        self, school_id: int, lesson_id: int, is_open: bool, actor_name: str = "Administrator"
    ) -> HybridPattern:
        """Open or close individual bookings for a hybrid lesson."""
        result = await self.db.execute(
            select(Lesson)
            .options(selectinload(Lesson.hybrid_pattern))
            .where(Lesson.id == lesson_id, Lesson.school_id == school_id)
        )
        lesson = result.scalar_one_or_none()
        if not lesson:
            raise NotFoundError("Lesson not found.")
        if lesson.hybrid_pattern is None:
            raise InvalidWeekError("This lesson is not a hybrid lesson.")

        pattern = lesson.hybrid_pattern
        was_open = pattern.bookings_open
        pattern.bookings_open = is_open

        await log_audit(
            db=self.db,
            school_id=school_id,
            action_type="UPDATE",
            entity_type="hybrid_pattern",
            entity_id=pattern.id,
            entity_name=lesson.name,
            description=f"Individual bookings {'opened' if is_open else 'closed'} for {lesson.name}",
            user_name=actor_name,
            changes={"bookings_open": {"before": was_open, "after": is_open}},
        )
        await self.db.commit()

        if is_open and not was_open:
            await self.notifications.hybrid_bookings_opened(school_id, lesson_id)
        return pattern

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_booking(self, school_id: int, booking_id: int, parent_id: Optional[int] = None) -> HybridBooking:
        """Get a booking; parents only ever see their own."""
        booking = await self._load_booking(school_id, booking_id)
        if parent_id is not None and booking.parent_id != parent_id:
            raise NotFoundError("Booking not found.")
        return booking

    async def get_parent_bookings(
        self,
        school_id: int,
        parent_id: int,
        lesson_id: Optional[int] = None,
        status: Optional[HybridBookingStatus] = None,
        week_number: Optional[int] = None,
    ) -> List[HybridBooking]:
        query = (
            select(HybridBooking)
            .join(Lesson, Lesson.id == HybridBooking.lesson_id)
            .options(
                selectinload(HybridBooking.lesson),
                selectinload(HybridBooking.student),
            )
            .where(
                HybridBooking.parent_id == parent_id,
                Lesson.school_id == school_id,
            )
        )
        if lesson_id is not None:
            query = query.where(HybridBooking.lesson_id == lesson_id)
        if status is not None:
            query = query.where(HybridBooking.status == status)
        if week_number is not None:
            query = query.where(HybridBooking.week_number == week_number)

        result = await self.db.execute(
            query.order_by(HybridBooking.scheduled_date, HybridBooking.start_time)
        )
        return list(result.scalars().all())

    async def _get_lesson(self, school_id: int, lesson_id: int, with_enrollments: bool = False) -> Lesson:
        query = select(Lesson).options(selectinload(Lesson.hybrid_pattern))
        if with_enrollments:
            query = query.options(
                selectinload(Lesson.enrollments)
                .selectinload(LessonEnrollment.student)
                .selectinload(Student.family)
                .selectinload(Family.parents)
            )
        result = await self.db.execute(
            query.where(Lesson.id == lesson_id, Lesson.school_id == school_id)
            .execution_options(populate_existing=True)
        )
        lesson = result.scalar_one_or_none()
        if not lesson:
            raise NotFoundError("Lesson not found.")
        return lesson

    async def get_lesson_bookings(
        self,
        school_id: int,
        lesson_id: int,
        week_number: Optional[int] = None,
        status: Optional[HybridBookingStatus] = None,
    ) -> List[HybridBooking]:
        """All bookings of a lesson (admin/teacher view)."""
        await self._get_lesson(school_id, lesson_id)

        query = (
            select(HybridBooking)
            .options(
                selectinload(HybridBooking.lesson),
                selectinload(HybridBooking.student),
                selectinload(HybridBooking.parent),
            )
            .where(HybridBooking.lesson_id == lesson_id)
        )
        if week_number is not None:
            query = query.where(HybridBooking.week_number == week_number)
        if status is not None:
            query = query.where(HybridBooking.status == status)

        result = await self.db.execute(
            query.order_by(
                HybridBooking.week_number, HybridBooking.scheduled_date, HybridBooking.start_time
            )
        )
        return list(result.scalars().all())

    async def get_booking_stats(
        self, school_id: int, lesson_id: int, week_number: Optional[int] = None
    ) -> BookingStats:
        lesson = await self._get_lesson(school_id, lesson_id, with_enrollments=True)
        if lesson.hybrid_pattern is None:
            raise InvalidWeekError("This lesson is not a hybrid lesson.")

        total_students = len(lesson.active_enrollments)

        query = (
            select(HybridBooking.status, func.count(HybridBooking.id))
            .where(
                HybridBooking.lesson_id == lesson_id,
                HybridBooking.status != HybridBookingStatus.CANCELLED,
            )
            .group_by(HybridBooking.status)
        )
        if week_number is not None:
            query = query.where(HybridBooking.week_number == week_number)

        result = await self.db.execute(query)
        counts = {status: count for status, count in result.all()}

        pending = counts.get(HybridBookingStatus.PENDING, 0)
        confirmed = counts.get(HybridBookingStatus.CONFIRMED, 0)
        completed = counts.get(HybridBookingStatus.COMPLETED, 0)

        booked = pending + confirmed + completed
        completion_rate = (booked / total_students * 100) if total_students > 0 else 0.0

        return BookingStats(
            total_students=total_students,
            booked_count=booked,
            unbooked_count=total_students - booked,
            completion_rate=round(completion_rate, 2),
            pending_bookings=pending,
            confirmed_bookings=confirmed,
        )

    async def get_students_without_bookings(
        self, school_id: int, lesson_id: int, week_number: int
    ) -> List[UnbookedStudent]:
        """Actively enrolled students with no live booking for the week."""
        lesson = await self._get_lesson(school_id, lesson_id, with_enrollments=True)
        if lesson.hybrid_pattern is None:
            raise InvalidWeekError("This lesson is not a hybrid lesson.")

        result = await self.db.execute(
            select(HybridBooking.student_id).where(
                HybridBooking.lesson_id == lesson_id,
                HybridBooking.week_number == week_number,
                HybridBooking.status != HybridBookingStatus.CANCELLED,
            )
        )
        booked_ids = set(result.scalars().all())

        unbooked = []
        for enrollment in lesson.active_enrollments:
            if enrollment.student_id in booked_ids:
                continue
            student = enrollment.student
            parents = student.family.parents if student.family else []
            unbooked.append(UnbookedStudent(student=student, parent=parents[0] if parents else None))
        return unbooked
