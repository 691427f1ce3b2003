"""Service for recurring lessons, their enrollments and rescheduling."""

import logging
from dataclasses import dataclass, field
from datetime import time
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.errors import ConflictError, InvalidRequestError, NotFoundError
from app.models import (
    WEEKDAY_NAMES,
    HybridPattern,
    HybridPatternKind,
    Lesson,
    LessonCategory,
    LessonEnrollment,
    Room,
    Student,
    Teacher,
    Term,
)
from app.services.audit_service import diff_changes, log_audit
from app.services.availability_service import check_room_availability, check_teacher_availability
from app.services.hybrid_pattern import MAX_TERM_WEEKS, alternating_weeks, validate_pattern
from app.services.notification_service import NotificationService
from app.utils.time_ranges import duration_minutes, format_range, format_time, parse_time

logger = logging.getLogger(__name__)

MIN_SLOT_DURATION = 15
MAX_SLOT_DURATION = 60
MAX_DEADLINE_HOURS = 168


@dataclass
class HybridPatternInput:
    kind: HybridPatternKind = HybridPatternKind.CUSTOM
    group_weeks: Optional[List[int]] = None
    individual_weeks: Optional[List[int]] = None
    individual_slot_duration: int = 30
    booking_deadline_hours: int = 24
    bookings_open: bool = False


@dataclass
class LessonCreateInput:
    term_id: int
    teacher_id: int
    room_id: int
    name: str
    day_of_week: int
    start_time: time
    end_time: time
    category: LessonCategory = LessonCategory.GROUP
    max_students: int = 1
    description: Optional[str] = None
    duration_mins: Optional[int] = None
    hybrid_pattern: Optional[HybridPatternInput] = None


@dataclass
class LessonUpdateInput:
    """Fields left as ``None`` are not changed."""

    term_id: Optional[int] = None
    teacher_id: Optional[int] = None
    room_id: Optional[int] = None
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[LessonCategory] = None
    day_of_week: Optional[int] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    max_students: Optional[int] = None
    hybrid_pattern: Optional[HybridPatternInput] = None


@dataclass
class RescheduleInput:
    new_day_of_week: int
    new_start_time: time
    new_end_time: time
    notify_parents: bool = True
    reason: Optional[str] = None


@dataclass
class ConflictInfo:
    lesson_id: int
    lesson_name: str
    time: str


@dataclass
class AffectedEnrollment:
    student_id: int
    student_name: str
    has_other_lessons: bool


@dataclass
class RescheduleCheck:
    has_conflicts: bool
    teacher_conflict: Optional[ConflictInfo] = None
    room_conflict: Optional[ConflictInfo] = None
    affected_students: int = 0
    affected_enrollments: List[AffectedEnrollment] = field(default_factory=list)


def _conflict_info(lesson: Optional[Lesson]) -> Optional[ConflictInfo]:
    if lesson is None:
        return None
    return ConflictInfo(
        lesson_id=lesson.id,
        lesson_name=lesson.name,
        time=format_range(lesson.start_time, lesson.end_time),
    )


class LessonService:
    """Lesson CRUD, enrollments and drag-and-drop rescheduling."""

    def __init__(self, db: AsyncSession, notifications: Optional[NotificationService] = None):
        self.db = db
        self.notifications = notifications or NotificationService()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_lesson(self, school_id: int, lesson_id: int) -> Lesson:
        result = await self.db.execute(
            select(Lesson)
            .options(
                selectinload(Lesson.term),
                selectinload(Lesson.teacher),
                selectinload(Lesson.room),
                selectinload(Lesson.hybrid_pattern),
                selectinload(Lesson.enrollments).selectinload(LessonEnrollment.student),
            )
            .where(Lesson.id == lesson_id, Lesson.school_id == school_id)
            .execution_options(populate_existing=True)
        )
        lesson = result.scalar_one_or_none()
        if not lesson:
            raise NotFoundError("Lesson not found.")
        return lesson

    async def list_lessons(
        self,
        school_id: int,
        term_id: Optional[int] = None,
        teacher_id: Optional[int] = None,
        day_of_week: Optional[int] = None,
        include_inactive: bool = False,
    ) -> List[Lesson]:
        query = (
            select(Lesson)
            .options(
                selectinload(Lesson.teacher),
                selectinload(Lesson.room),
                selectinload(Lesson.hybrid_pattern),
                selectinload(Lesson.enrollments),
            )
            .where(Lesson.school_id == school_id)
        )
        if term_id is not None:
            query = query.where(Lesson.term_id == term_id)
        if teacher_id is not None:
            query = query.where(Lesson.teacher_id == teacher_id)
        if day_of_week is not None:
            query = query.where(Lesson.day_of_week == day_of_week)
        if not include_inactive:
            query = query.where(Lesson.active == True)  # noqa: E712

        result = await self.db.execute(query.order_by(Lesson.day_of_week, Lesson.start_time, Lesson.id))
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    async def _validate_references(
        self,
        school_id: int,
        term_id: Optional[int] = None,
        teacher_id: Optional[int] = None,
        room_id: Optional[int] = None,
    ) -> Optional[Term]:
        """Make sure referenced rows belong to the school; returns the term if given."""
        errors = []
        term = None

        if term_id is not None:
            term = await self.db.scalar(select(Term).where(Term.id == term_id, Term.school_id == school_id))
            if not term:
                errors.append("Invalid term.")
        if teacher_id is not None:
            teacher = await self.db.scalar(
                select(Teacher.id).where(Teacher.id == teacher_id, Teacher.school_id == school_id)
            )
            if not teacher:
                errors.append("Invalid teacher.")
        if room_id is not None:
            room = await self.db.scalar(select(Room.id).where(Room.id == room_id, Room.school_id == school_id))
            if not room:
                errors.append("Invalid room.")

        if errors:
            raise InvalidRequestError(" ".join(errors))
        return term

    async def _ensure_available(
        self,
        school_id: int,
        teacher_id: int,
        room_id: int,
        day_of_week: int,
        start_time: time,
        end_time: time,
        exclude_lesson_id: Optional[int] = None,
    ) -> None:
        room_check = await check_room_availability(
            self.db, school_id, room_id, day_of_week, start_time, end_time, exclude_lesson_id
        )
        if not room_check.available:
            raise ConflictError(
                f"Room is not available at this time. Conflicts with: {room_check.conflicting_lesson.name}"
            )

        teacher_check = await check_teacher_availability(
            self.db, school_id, teacher_id, day_of_week, start_time, end_time, exclude_lesson_id
        )
        if not teacher_check.available:
            raise ConflictError(
                f"Teacher is not available at this time. Conflicts with: {teacher_check.conflicting_lesson.name}"
            )

    @staticmethod
    def _resolve_pattern_weeks(data: HybridPatternInput, term: Term):
        """Validate a pattern and return its (group_weeks, individual_weeks)."""
        total_weeks = min(term.total_weeks, MAX_TERM_WEEKS) or MAX_TERM_WEEKS

        if not MIN_SLOT_DURATION <= data.individual_slot_duration <= MAX_SLOT_DURATION:
            raise InvalidRequestError(
                f"Individual slot duration must be between {MIN_SLOT_DURATION} and {MAX_SLOT_DURATION} minutes."
            )
        if not 0 <= data.booking_deadline_hours <= MAX_DEADLINE_HOURS:
            raise InvalidRequestError(
                f"Booking deadline must be between 0 and {MAX_DEADLINE_HOURS} hours."
            )

        group_weeks, individual_weeks = data.group_weeks, data.individual_weeks
        if data.kind == HybridPatternKind.ALTERNATING and not group_weeks and not individual_weeks:
            group_weeks, individual_weeks = alternating_weeks(total_weeks)

        group_weeks = sorted(set(group_weeks or []))
        individual_weeks = sorted(set(individual_weeks or []))
        validate_pattern(group_weeks, individual_weeks, total_weeks)
        return group_weeks, individual_weeks

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def create_lesson(self, school_id: int, data: LessonCreateInput, actor_name: str = "Administrator") -> Lesson:
        """
        Create a weekly recurring lesson.

        Raises:
            InvalidRequestError: bad references, times or hybrid pattern
            ConflictError: teacher or room already busy in that window
        """
        term = await self._validate_references(school_id, data.term_id, data.teacher_id, data.room_id)
        start_time = parse_time(data.start_time)
        end_time = parse_time(data.end_time)

        await self._ensure_available(
            school_id, data.teacher_id, data.room_id, data.day_of_week, start_time, end_time
        )

        if data.category == LessonCategory.HYBRID and data.hybrid_pattern is None:
            raise InvalidRequestError("Hybrid lessons require a hybrid pattern configuration.")
        if data.category != LessonCategory.HYBRID and data.hybrid_pattern is not None:
            raise InvalidRequestError("Only hybrid lessons can have a hybrid pattern.")
        if data.max_students < 1:
            raise InvalidRequestError("Max students must be at least 1.")

        pattern_weeks = None
        if data.hybrid_pattern is not None:
            pattern_weeks = self._resolve_pattern_weeks(data.hybrid_pattern, term)

        lesson = Lesson(
            school_id=school_id,
            term_id=data.term_id,
            teacher_id=data.teacher_id,
            room_id=data.room_id,
            name=data.name,
            description=data.description,
            category=data.category,
            day_of_week=data.day_of_week,
            start_time=start_time,
            end_time=end_time,
            duration_mins=data.duration_mins or duration_minutes(start_time, end_time),
            max_students=data.max_students,
            active=True,
        )
        self.db.add(lesson)
        await self.db.flush()

        if pattern_weeks is not None:
            group_weeks, individual_weeks = pattern_weeks
            self.db.add(
                HybridPattern(
                    lesson_id=lesson.id,
                    term_id=data.term_id,
                    kind=data.hybrid_pattern.kind,
                    group_weeks=group_weeks,
                    individual_weeks=individual_weeks,
                    individual_slot_duration=data.hybrid_pattern.individual_slot_duration,
                    booking_deadline_hours=data.hybrid_pattern.booking_deadline_hours,
                    bookings_open=data.hybrid_pattern.bookings_open,
                )
            )

        await log_audit(
            db=self.db,
            school_id=school_id,
            action_type="CREATE",
            entity_type="lesson",
            entity_id=lesson.id,
            entity_name=lesson.name,
            description=(
                f"Created lesson {lesson.name}: {WEEKDAY_NAMES[lesson.day_of_week]} "
                f"{format_range(start_time, end_time)}"
            ),
            user_name=actor_name,
        )
        await self.db.commit()

        logger.info(f"✅ Lesson {lesson.id} created: {lesson.name}")
        return await self.get_lesson(school_id, lesson.id)

    async def update_lesson(
        self, school_id: int, lesson_id: int, data: LessonUpdateInput, actor_name: str = "Administrator"
    ) -> Lesson:
        """Update a lesson, re-checking availability when the schedule or resources change."""
        lesson = await self.get_lesson(school_id, lesson_id)
        term = await self._validate_references(
            school_id, data.term_id or lesson.term_id, data.teacher_id, data.room_id
        )

        new_teacher_id = data.teacher_id or lesson.teacher_id
        new_room_id = data.room_id or lesson.room_id
        new_day = data.day_of_week if data.day_of_week is not None else lesson.day_of_week
        new_start = parse_time(data.start_time) if data.start_time is not None else lesson.start_time
        new_end = parse_time(data.end_time) if data.end_time is not None else lesson.end_time

        schedule_changed = (
            data.teacher_id is not None
            or data.room_id is not None
            or data.day_of_week is not None
            or data.start_time is not None
            or data.end_time is not None
        )
        if schedule_changed:
            await self._ensure_available(
                school_id, new_teacher_id, new_room_id, new_day, new_start, new_end, exclude_lesson_id=lesson.id
            )

        new_category = data.category or lesson.category
        if new_category != LessonCategory.HYBRID and data.hybrid_pattern is not None:
            raise InvalidRequestError("Only hybrid lessons can have a hybrid pattern.")
        if new_category == LessonCategory.HYBRID and data.hybrid_pattern is None and lesson.hybrid_pattern is None:
            raise InvalidRequestError("Hybrid lessons require a hybrid pattern configuration.")
        if data.max_students is not None and data.max_students < len(lesson.active_enrollments):
            raise ConflictError("Max students cannot be lower than the number of enrolled students.")

        pattern_weeks = None
        if new_category == LessonCategory.HYBRID and data.hybrid_pattern is not None:
            pattern_weeks = self._resolve_pattern_weeks(data.hybrid_pattern, term)

        before = {
            "day_of_week": lesson.day_of_week,
            "time": format_range(lesson.start_time, lesson.end_time),
            "teacher_id": lesson.teacher_id,
            "room_id": lesson.room_id,
        }

        lesson.term_id = term.id
        lesson.teacher_id = new_teacher_id
        lesson.room_id = new_room_id
        lesson.day_of_week = new_day
        lesson.start_time = new_start
        lesson.end_time = new_end
        lesson.duration_mins = duration_minutes(new_start, new_end)
        lesson.category = new_category
        if data.name is not None:
            lesson.name = data.name
        if data.description is not None:
            lesson.description = data.description
        if data.max_students is not None:
            lesson.max_students = data.max_students

        if new_category != LessonCategory.HYBRID and lesson.hybrid_pattern is not None:
            await self.db.delete(lesson.hybrid_pattern)
        elif pattern_weeks is not None:
            group_weeks, individual_weeks = pattern_weeks
            pattern = lesson.hybrid_pattern
            if pattern is None:
                pattern = HybridPattern(lesson_id=lesson.id)
                self.db.add(pattern)
            pattern.term_id = term.id
            pattern.kind = data.hybrid_pattern.kind
            pattern.group_weeks = group_weeks
            pattern.individual_weeks = individual_weeks
            pattern.individual_slot_duration = data.hybrid_pattern.individual_slot_duration
            pattern.booking_deadline_hours = data.hybrid_pattern.booking_deadline_hours
            pattern.bookings_open = data.hybrid_pattern.bookings_open

        await log_audit(
            db=self.db,
            school_id=school_id,
            action_type="UPDATE",
            entity_type="lesson",
            entity_id=lesson.id,
            entity_name=lesson.name,
            description=f"Updated lesson {lesson.name}",
            user_name=actor_name,
            changes=diff_changes(
                before,
                {
                    "day_of_week": new_day,
                    "time": format_range(new_start, new_end),
                    "teacher_id": new_teacher_id,
                    "room_id": new_room_id,
                },
            ),
        )
        await self.db.commit()
        return await self.get_lesson(school_id, lesson_id)

    async def deactivate_lesson(self, school_id: int, lesson_id: int, actor_name: str = "Administrator") -> Lesson:
        """Soft delete: the lesson stops occupying its teacher and room."""
        lesson = await self.get_lesson(school_id, lesson_id)
        lesson.active = False

        await log_audit(
            db=self.db,
            school_id=school_id,
            action_type="DELETE",
            entity_type="lesson",
            entity_id=lesson.id,
            entity_name=lesson.name,
            description=f"Deactivated lesson {lesson.name}",
            user_name=actor_name,
        )
        await self.db.commit()
        logger.info(f"Lesson {lesson.id} deactivated")
        return await self.get_lesson(school_id, lesson_id)

    # ------------------------------------------------------------------
    # Enrollments
    # ------------------------------------------------------------------

    async def enroll_student(
        self, school_id: int, lesson_id: int, student_id: int, actor_name: str = "Administrator"
    ) -> LessonEnrollment:
        lesson = await self.get_lesson(school_id, lesson_id)

        student = await self.db.scalar(
            select(Student).where(Student.id == student_id, Student.school_id == school_id)
        )
        if not student:
            raise NotFoundError("Student not found.")

        existing = next((e for e in lesson.enrollments if e.student_id == student_id), None)
        if existing is not None and existing.active:
            raise ConflictError("Student is already enrolled in this lesson.")
        if len(lesson.active_enrollments) >= lesson.max_students:
            raise ConflictError("This lesson is at full capacity.")

        if existing is not None:
            existing.active = True
            enrollment = existing
        else:
            enrollment = LessonEnrollment(lesson_id=lesson.id, student_id=student_id, active=True)
            self.db.add(enrollment)
        await self.db.flush()

        await log_audit(
            db=self.db,
            school_id=school_id,
            action_type="ENROLL",
            entity_type="enrollment",
            entity_id=enrollment.id,
            entity_name=f"{student.full_name} → {lesson.name}",
            description=f"Enrolled {student.full_name} in {lesson.name}",
            user_name=actor_name,
        )
        await self.db.commit()

        result = await self.db.execute(
            select(LessonEnrollment)
            .options(selectinload(LessonEnrollment.student))
            .where(LessonEnrollment.id == enrollment.id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def unenroll_student(
        self, school_id: int, lesson_id: int, student_id: int, actor_name: str = "Administrator"
    ) -> None:
        lesson = await self.get_lesson(school_id, lesson_id)

        enrollment = next(
            (e for e in lesson.enrollments if e.student_id == student_id and e.active), None
        )
        if enrollment is None:
            raise NotFoundError("Student is not enrolled in this lesson.")

        enrollment.active = False
        await log_audit(
            db=self.db,
            school_id=school_id,
            action_type="UNENROLL",
            entity_type="enrollment",
            entity_id=enrollment.id,
            entity_name=f"{enrollment.student.full_name} → {lesson.name}",
            description=f"Removed {enrollment.student.full_name} from {lesson.name}",
            user_name=actor_name,
        )
        await self.db.commit()

    # ------------------------------------------------------------------
    # Rescheduling
    # ------------------------------------------------------------------

    async def _students_with_other_lessons(self, lesson_id: int, student_ids: List[int]) -> set:
        if not student_ids:
            return set()
        result = await self.db.execute(
            select(LessonEnrollment.student_id)
            .join(Lesson, Lesson.id == LessonEnrollment.lesson_id)
            .where(
                LessonEnrollment.student_id.in_(student_ids),
                LessonEnrollment.lesson_id != lesson_id,
                LessonEnrollment.active == True,  # noqa: E712
                Lesson.active == True,  # noqa: E712
            )
        )
        return set(result.scalars().all())

    async def check_reschedule_conflicts(
        self,
        school_id: int,
        lesson_id: int,
        new_day_of_week: int,
        new_start_time,
        new_end_time,
    ) -> RescheduleCheck:
        """Preview a move: teacher/room conflicts and the students it affects. Read only."""
        lesson = await self.get_lesson(school_id, lesson_id)

        teacher_check = await check_teacher_availability(
            self.db, school_id, lesson.teacher_id, new_day_of_week, new_start_time, new_end_time, lesson.id
        )
        room_check = await check_room_availability(
            self.db, school_id, lesson.room_id, new_day_of_week, new_start_time, new_end_time, lesson.id
        )

        enrollments = lesson.active_enrollments
        busy_elsewhere = await self._students_with_other_lessons(
            lesson.id, [e.student_id for e in enrollments]
        )
        affected = [
            AffectedEnrollment(
                student_id=e.student_id,
                student_name=e.student.full_name,
                has_other_lessons=e.student_id in busy_elsewhere,
            )
            for e in enrollments
        ]

        return RescheduleCheck(
            has_conflicts=not teacher_check.available or not room_check.available,
            teacher_conflict=_conflict_info(teacher_check.conflicting_lesson),
            room_conflict=_conflict_info(room_check.conflicting_lesson),
            affected_students=len(affected),
            affected_enrollments=affected,
        )

    async def reschedule_lesson(
        self,
        school_id: int,
        lesson_id: int,
        data: RescheduleInput,
        actor_id: Optional[int] = None,
        actor_name: str = "Administrator",
    ) -> Lesson:
        """
        Move a lesson to a new weekly day/time.

        Raises:
            NotFoundError: lesson missing or in another school
            ConflictError: teacher (checked first) or room busy at the new time
        """
        new_start = parse_time(data.new_start_time)
        new_end = parse_time(data.new_end_time)

        lesson = await self.get_lesson(school_id, lesson_id)
        old_day = lesson.day_of_week
        old_start = lesson.start_time
        old_end = lesson.end_time

        check = await self.check_reschedule_conflicts(
            school_id, lesson_id, data.new_day_of_week, new_start, new_end
        )
        if check.teacher_conflict:
            raise ConflictError(
                f"Teacher is not available at this time. Conflicts with: {check.teacher_conflict.lesson_name}"
            )
        if check.room_conflict:
            raise ConflictError(
                f"Room is not available at this time. Conflicts with: {check.room_conflict.lesson_name}"
            )

        lesson.day_of_week = data.new_day_of_week
        lesson.start_time = new_start
        lesson.end_time = new_end
        lesson.duration_mins = duration_minutes(new_start, new_end)

        await log_audit(
            db=self.db,
            school_id=school_id,
            action_type="RESCHEDULE",
            entity_type="lesson",
            entity_id=lesson.id,
            entity_name=lesson.name,
            description=(
                f"Rescheduled {lesson.name} from {WEEKDAY_NAMES[old_day]} {format_range(old_start, old_end)} "
                f"to {WEEKDAY_NAMES[data.new_day_of_week]} {format_range(new_start, new_end)}"
                + (f": {data.reason}" if data.reason else "")
            ),
            user_name=actor_name,
            user_id=actor_id,
            changes={
                "before": {"day_of_week": old_day, "time": format_range(old_start, old_end)},
                "after": {"day_of_week": data.new_day_of_week, "time": format_range(new_start, new_end)},
            },
        )
        await self.db.commit()
        logger.info(
            f"🔄 Lesson {lesson.id} rescheduled to {WEEKDAY_NAMES[data.new_day_of_week]} {format_time(new_start)}"
        )

        if data.notify_parents:
            await self.notifications.lesson_rescheduled(
                school_id,
                lesson.id,
                old_day,
                format_time(old_start),
                format_time(old_end),
                data.reason,
            )

        return await self.get_lesson(school_id, lesson_id)
