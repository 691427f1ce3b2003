"""Lessons API endpoints."""

import logging
from datetime import datetime, time
from typing import List, Optional

from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from app.api.dependencies import AdminUser, DbSession, Notifications, StaffUser
from app.models import HybridPatternKind, Lesson, LessonCategory
from app.services.lesson_service import (
    HybridPatternInput,
    LessonCreateInput,
    LessonService,
    LessonUpdateInput,
    RescheduleInput,
)
from app.utils.time_ranges import format_time

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/lessons", tags=["lessons"])


class HybridPatternData(BaseModel):
    """Hybrid pattern configuration."""

    kind: HybridPatternKind = HybridPatternKind.CUSTOM
    group_weeks: Optional[List[int]] = None
    individual_weeks: Optional[List[int]] = None
    individual_slot_duration: int = Field(default=30, ge=15, le=60)
    booking_deadline_hours: int = Field(default=24, ge=0, le=168)
    bookings_open: bool = False


class LessonCreate(BaseModel):
    """Lesson creation model."""

    term_id: int
    teacher_id: int
    room_id: int
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    category: LessonCategory = LessonCategory.GROUP
    day_of_week: int = Field(..., ge=0, le=6)
    start_time: time
    end_time: time
    duration_mins: Optional[int] = Field(default=None, ge=1)
    max_students: int = Field(default=1, ge=1)
    hybrid_pattern: Optional[HybridPatternData] = None


class LessonUpdate(BaseModel):
    """Lesson update model."""

    term_id: Optional[int] = None
    teacher_id: Optional[int] = None
    room_id: Optional[int] = None
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[LessonCategory] = None
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    max_students: Optional[int] = Field(default=None, ge=1)
    hybrid_pattern: Optional[HybridPatternData] = None


class EnrollmentCreate(BaseModel):
    student_id: int


class LessonReschedule(BaseModel):
    new_day_of_week: int = Field(..., ge=0, le=6)
    new_start_time: time
    new_end_time: time
    notify_parents: bool = True
    reason: Optional[str] = Field(default=None, max_length=500)


class HybridPatternResponse(BaseModel):
    kind: HybridPatternKind
    group_weeks: List[int]
    individual_weeks: List[int]
    individual_slot_duration: int
    booking_deadline_hours: int
    bookings_open: bool


class EnrollmentResponse(BaseModel):
    student_id: int
    student_name: Optional[str] = None
    active: bool
    enrolled_at: Optional[datetime] = None


class LessonResponse(BaseModel):
    """Lesson response model."""

    id: int
    term_id: int
    teacher_id: int
    teacher_name: Optional[str] = None
    room_id: int
    room_name: Optional[str] = None
    name: str
    description: Optional[str] = None
    category: LessonCategory
    day_of_week: int
    start_time: str
    end_time: str
    duration_mins: int
    max_students: int
    active: bool
    enrolled_count: int
    hybrid_pattern: Optional[HybridPatternResponse] = None
    enrollments: Optional[List[EnrollmentResponse]] = None


class ConflictResponse(BaseModel):
    lesson_id: int
    lesson_name: str
    time: str


class AffectedEnrollmentResponse(BaseModel):
    student_id: int
    student_name: str
    has_other_lessons: bool


class ReschedulePreviewResponse(BaseModel):
    has_conflicts: bool
    teacher_conflict: Optional[ConflictResponse] = None
    room_conflict: Optional[ConflictResponse] = None
    affected_students: int
    affected_enrollments: List[AffectedEnrollmentResponse]


def _pattern_input(data: Optional[HybridPatternData]) -> Optional[HybridPatternInput]:
    if data is None:
        return None
    return HybridPatternInput(**data.model_dump())


def _lesson_response(lesson: Lesson, with_enrollments: bool = False) -> LessonResponse:
    pattern = lesson.hybrid_pattern
    return LessonResponse(
        id=lesson.id,
        term_id=lesson.term_id,
        teacher_id=lesson.teacher_id,
        teacher_name=lesson.teacher.full_name if lesson.teacher else None,
        room_id=lesson.room_id,
        room_name=lesson.room.name if lesson.room else None,
        name=lesson.name,
        description=lesson.description,
        category=lesson.category,
        day_of_week=lesson.day_of_week,
        start_time=format_time(lesson.start_time),
        end_time=format_time(lesson.end_time),
        duration_mins=lesson.duration_mins,
        max_students=lesson.max_students,
        active=lesson.active,
        enrolled_count=len(lesson.active_enrollments),
        hybrid_pattern=HybridPatternResponse(
            kind=pattern.kind,
            group_weeks=pattern.group_weeks,
            individual_weeks=pattern.individual_weeks,
            individual_slot_duration=pattern.individual_slot_duration,
            booking_deadline_hours=pattern.booking_deadline_hours,
            bookings_open=pattern.bookings_open,
        ) if pattern else None,
        enrollments=[
            EnrollmentResponse(
                student_id=e.student_id,
                student_name=e.student.full_name if e.student else None,
                active=e.active,
                enrolled_at=e.enrolled_at,
            )
            for e in lesson.active_enrollments
        ] if with_enrollments else None,
    )


@router.get("", response_model=List[LessonResponse])
async def get_lessons(
    db: DbSession,
    user: StaffUser,
    term_id: Optional[int] = None,
    teacher_id: Optional[int] = None,
    day_of_week: Optional[int] = None,
    include_inactive: bool = False,
) -> List[LessonResponse]:
    """Get lessons of the caller's school."""
    lessons = await LessonService(db).list_lessons(
        user.school_id,
        term_id=term_id,
        teacher_id=teacher_id,
        day_of_week=day_of_week,
        include_inactive=include_inactive,
    )
    return [_lesson_response(lesson) for lesson in lessons]


@router.post("", response_model=LessonResponse, status_code=status.HTTP_201_CREATED)
async def create_lesson(lesson_data: LessonCreate, db: DbSession, user: AdminUser) -> LessonResponse:
    """Create a new weekly lesson."""
    data = lesson_data.model_dump(exclude={"hybrid_pattern"})
    lesson = await LessonService(db).create_lesson(
        user.school_id,
        LessonCreateInput(**data, hybrid_pattern=_pattern_input(lesson_data.hybrid_pattern)),
        actor_name=user.username,
    )
    return _lesson_response(lesson, with_enrollments=True)


@router.get("/{lesson_id}", response_model=LessonResponse)
async def get_lesson(lesson_id: int, db: DbSession, user: StaffUser) -> LessonResponse:
    lesson = await LessonService(db).get_lesson(user.school_id, lesson_id)
    return _lesson_response(lesson, with_enrollments=True)


@router.patch("/{lesson_id}", response_model=LessonResponse)
async def update_lesson(
    lesson_id: int, lesson_data: LessonUpdate, db: DbSession, user: AdminUser
) -> LessonResponse:
    data = lesson_data.model_dump(exclude={"hybrid_pattern"})
    lesson = await LessonService(db).update_lesson(
        user.school_id,
        lesson_id,
        LessonUpdateInput(**data, hybrid_pattern=_pattern_input(lesson_data.hybrid_pattern)),
        actor_name=user.username,
    )
    return _lesson_response(lesson, with_enrollments=True)


@router.post("/{lesson_id}/deactivate", response_model=LessonResponse)
async def deactivate_lesson(lesson_id: int, db: DbSession, user: AdminUser) -> LessonResponse:
    lesson = await LessonService(db).deactivate_lesson(user.school_id, lesson_id, actor_name=user.username)
    return _lesson_response(lesson)


@router.post(
    "/{lesson_id}/enrollments",
    response_model=EnrollmentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def enroll_student(
    lesson_id: int, enrollment_data: EnrollmentCreate, db: DbSession, user: AdminUser
) -> EnrollmentResponse:
    enrollment = await LessonService(db).enroll_student(
        user.school_id, lesson_id, enrollment_data.student_id, actor_name=user.username
    )
    return EnrollmentResponse(
        student_id=enrollment.student_id,
        student_name=enrollment.student.full_name,
        active=enrollment.active,
        enrolled_at=enrollment.enrolled_at,
    )


@router.delete("/{lesson_id}/enrollments/{student_id}", status_code=status.HTTP_204_NO_CONTENT)
async def unenroll_student(lesson_id: int, student_id: int, db: DbSession, user: AdminUser) -> None:
    await LessonService(db).unenroll_student(user.school_id, lesson_id, student_id, actor_name=user.username)


@router.get("/{lesson_id}/reschedule-preview", response_model=ReschedulePreviewResponse)
async def reschedule_preview(
    lesson_id: int,
    db: DbSession,
    user: StaffUser,
    new_day_of_week: int,
    new_start_time: time,
    new_end_time: time,
) -> ReschedulePreviewResponse:
    """Conflicts and affected students for a drag-and-drop move, without saving it."""
    check = await LessonService(db).check_reschedule_conflicts(
        user.school_id, lesson_id, new_day_of_week, new_start_time, new_end_time
    )
    return ReschedulePreviewResponse(
        has_conflicts=check.has_conflicts,
        teacher_conflict=ConflictResponse(**check.teacher_conflict.__dict__) if check.teacher_conflict else None,
        room_conflict=ConflictResponse(**check.room_conflict.__dict__) if check.room_conflict else None,
        affected_students=check.affected_students,
        affected_enrollments=[AffectedEnrollmentResponse(**e.__dict__) for e in check.affected_enrollments],
    )


@router.post("/{lesson_id}/reschedule", response_model=LessonResponse)
async def reschedule_lesson(
    lesson_id: int,
    data: LessonReschedule,
    db: DbSession,
    user: AdminUser,
    notifications: Notifications,
) -> LessonResponse:
    lesson = await LessonService(db, notifications=notifications).reschedule_lesson(
        user.school_id,
        lesson_id,
        RescheduleInput(**data.model_dump()),
        actor_id=user.user_id,
        actor_name=user.username,
    )
    return _lesson_response(lesson, with_enrollments=True)
