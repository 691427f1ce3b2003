"""
Tests for lesson creation, enrollment and rescheduling.
"""

from datetime import time

import pytest
from sqlalchemy import select

from app.core.errors import ConflictError, InvalidRequestError, NotFoundError
from app.models import AuditLog, HybridPatternKind, LessonCategory, NotificationOutbox, NotificationType
from app.services.availability_service import check_teacher_availability
from app.services.lesson_service import (
    HybridPatternInput,
    LessonCreateInput,
    LessonService,
    LessonUpdateInput,
    RescheduleInput,
)


@pytest.fixture
def lesson_service(db, notifications):
    return LessonService(db, notifications=notifications)


@pytest.fixture
def lesson_input(seed):
    def _build(**overrides):
        values = dict(
            term_id=seed.term.id,
            teacher_id=seed.teacher.id,
            room_id=seed.room.id,
            name="Violin Basics",
            day_of_week=2,
            start_time=time(9, 0),
            end_time=time(10, 0),
            category=LessonCategory.GROUP,
            max_students=4,
        )
        values.update(overrides)
        return LessonCreateInput(**values)

    return _build


class TestCreateLesson:
    async def test_create_in_free_window(self, seed, lesson_service, lesson_input):
        lesson = await lesson_service.create_lesson(seed.school.id, lesson_input())

        assert lesson.id is not None
        assert lesson.active is True
        assert lesson.duration_mins == 60
        assert lesson.teacher.full_name == "Jane Keys"
        assert lesson.room.name == "Studio A"
        assert lesson.hybrid_pattern is None

    async def test_back_to_back_is_allowed(self, seed, lesson_service, lesson_input):
        lesson = await lesson_service.create_lesson(
            seed.school.id, lesson_input(day_of_week=1, start_time=time(11, 0), end_time=time(12, 0))
        )
        assert lesson.start_time == time(11, 0)

    async def test_room_conflict_checked_first(self, seed, lesson_service, lesson_input):
        with pytest.raises(ConflictError, match="Room is not available.*Piano Hybrid"):
            await lesson_service.create_lesson(
                seed.school.id, lesson_input(day_of_week=1, start_time=time(9, 30), end_time=time(10, 30))
            )

    async def test_teacher_conflict(self, seed, lesson_service, lesson_input):
        with pytest.raises(ConflictError, match="Teacher is not available"):
            await lesson_service.create_lesson(
                seed.school.id,
                lesson_input(room_id=seed.other_room.id, day_of_week=1, start_time=time(9, 30), end_time=time(10, 30)),
            )

    async def test_invalid_references(self, seed, lesson_service, lesson_input):
        with pytest.raises(InvalidRequestError, match="Invalid teacher"):
            await lesson_service.create_lesson(seed.school.id, lesson_input(teacher_id=9999))

    async def test_references_must_belong_to_school(self, seed, lesson_service, lesson_input):
        with pytest.raises(InvalidRequestError, match="Invalid term"):
            await lesson_service.create_lesson(seed.other_school.id, lesson_input())

    async def test_end_before_start(self, seed, lesson_service, lesson_input):
        with pytest.raises(InvalidRequestError):
            await lesson_service.create_lesson(
                seed.school.id, lesson_input(start_time=time(10, 0), end_time=time(9, 0))
            )

    async def test_create_writes_audit(self, db, seed, lesson_service, lesson_input):
        lesson = await lesson_service.create_lesson(seed.school.id, lesson_input(), actor_name="Office")

        result = await db.execute(select(AuditLog).where(AuditLog.entity_type == "lesson"))
        audit = result.scalar_one()
        assert audit.entity_id == lesson.id
        assert audit.user_name == "Office"


class TestHybridLessons:
    async def test_alternating_pattern_generates_weeks(self, seed, lesson_service, lesson_input):
        lesson = await lesson_service.create_lesson(
            seed.school.id,
            lesson_input(
                category=LessonCategory.HYBRID,
                hybrid_pattern=HybridPatternInput(kind=HybridPatternKind.ALTERNATING),
            ),
        )

        assert lesson.hybrid_pattern.group_weeks == [1, 2, 3, 5, 6, 7, 9, 10]
        assert lesson.hybrid_pattern.individual_weeks == [4, 8]
        assert lesson.hybrid_pattern.bookings_open is False

    async def test_custom_pattern(self, seed, lesson_service, lesson_input):
        lesson = await lesson_service.create_lesson(
            seed.school.id,
            lesson_input(
                category=LessonCategory.HYBRID,
                hybrid_pattern=HybridPatternInput(
                    group_weeks=[1, 3, 5], individual_weeks=[2, 4], individual_slot_duration=20
                ),
            ),
        )

        assert lesson.hybrid_pattern.individual_weeks == [2, 4]
        assert lesson.hybrid_pattern.individual_slot_duration == 20

    async def test_hybrid_requires_pattern(self, seed, lesson_service, lesson_input):
        with pytest.raises(InvalidRequestError, match="require a hybrid pattern"):
            await lesson_service.create_lesson(seed.school.id, lesson_input(category=LessonCategory.HYBRID))

    async def test_group_lesson_rejects_pattern(self, seed, lesson_service, lesson_input):
        with pytest.raises(InvalidRequestError, match="Only hybrid lessons"):
            await lesson_service.create_lesson(
                seed.school.id,
                lesson_input(hybrid_pattern=HybridPatternInput(group_weeks=[1], individual_weeks=[2])),
            )

    async def test_overlapping_weeks_rejected(self, seed, lesson_service, lesson_input):
        with pytest.raises(InvalidRequestError, match="cannot overlap"):
            await lesson_service.create_lesson(
                seed.school.id,
                lesson_input(
                    category=LessonCategory.HYBRID,
                    hybrid_pattern=HybridPatternInput(group_weeks=[1, 2, 4], individual_weeks=[4]),
                ),
            )

    async def test_weeks_beyond_term_rejected(self, seed, lesson_service, lesson_input):
        with pytest.raises(InvalidRequestError, match="between 1 and 10"):
            await lesson_service.create_lesson(
                seed.school.id,
                lesson_input(
                    category=LessonCategory.HYBRID,
                    hybrid_pattern=HybridPatternInput(group_weeks=[1, 2], individual_weeks=[12]),
                ),
            )

    @pytest.mark.parametrize("duration", [10, 90])
    async def test_slot_duration_bounds(self, seed, lesson_service, lesson_input, duration):
        with pytest.raises(InvalidRequestError, match="slot duration"):
            await lesson_service.create_lesson(
                seed.school.id,
                lesson_input(
                    category=LessonCategory.HYBRID,
                    hybrid_pattern=HybridPatternInput(
                        kind=HybridPatternKind.ALTERNATING, individual_slot_duration=duration
                    ),
                ),
            )


class TestUpdateLesson:
    async def test_rename_only(self, seed, lesson_service):
        lesson = await lesson_service.update_lesson(
            seed.school.id, seed.group_lesson.id, LessonUpdateInput(name="Guitar Ensemble")
        )
        assert lesson.name == "Guitar Ensemble"
        assert lesson.start_time == time(10, 0)

    async def test_audit_records_only_changed_fields(self, db, seed, lesson_service):
        await lesson_service.update_lesson(
            seed.school.id, seed.group_lesson.id, LessonUpdateInput(end_time=time(11, 30))
        )

        entry = await db.scalar(select(AuditLog).where(AuditLog.action_type == "UPDATE"))
        assert entry.changes_json == {
            "before": {"time": "10:00 - 11:00"},
            "after": {"time": "10:00 - 11:30"},
        }

    async def test_move_into_conflict(self, seed, lesson_service):
        with pytest.raises(ConflictError):
            await lesson_service.update_lesson(
                seed.school.id, seed.group_lesson.id, LessonUpdateInput(start_time=time(9, 30))
            )

    async def test_capacity_below_enrollment(self, seed, lesson_service):
        with pytest.raises(ConflictError):
            await lesson_service.update_lesson(
                seed.school.id, seed.hybrid_lesson.id, LessonUpdateInput(max_students=2)
            )

    async def test_switching_to_group_drops_pattern(self, seed, lesson_service):
        lesson = await lesson_service.update_lesson(
            seed.school.id, seed.hybrid_lesson.id, LessonUpdateInput(category=LessonCategory.GROUP)
        )
        assert lesson.category == LessonCategory.GROUP
        assert lesson.hybrid_pattern is None

    async def test_deactivate_frees_teacher(self, db, seed, lesson_service):
        lesson = await lesson_service.deactivate_lesson(seed.school.id, seed.hybrid_lesson.id)
        assert lesson.active is False

        check = await check_teacher_availability(db, seed.school.id, seed.teacher.id, 1, "09:00", "10:00")
        assert check.available is True

    async def test_missing_lesson(self, seed, lesson_service):
        with pytest.raises(NotFoundError):
            await lesson_service.update_lesson(seed.school.id, 9999, LessonUpdateInput(name="x"))

    async def test_list_lessons(self, seed, lesson_service):
        lessons = await lesson_service.list_lessons(seed.school.id)
        assert [lesson.name for lesson in lessons] == ["Piano Hybrid", "Guitar Group"]

        assert await lesson_service.list_lessons(seed.school.id, teacher_id=seed.other_teacher.id) == []


class TestEnrollments:
    async def test_enroll(self, seed, lesson_service):
        enrollment = await lesson_service.enroll_student(seed.school.id, seed.group_lesson.id, seed.bob.id)

        assert enrollment.active is True
        assert enrollment.student.first_name == "Bob"

    async def test_duplicate_enrollment(self, seed, lesson_service):
        with pytest.raises(ConflictError, match="already enrolled"):
            await lesson_service.enroll_student(seed.school.id, seed.group_lesson.id, seed.alice.id)

    async def test_full_capacity(self, seed, lesson_service, lesson_input):
        lesson = await lesson_service.create_lesson(seed.school.id, lesson_input(max_students=1))
        await lesson_service.enroll_student(seed.school.id, lesson.id, seed.alice.id)

        with pytest.raises(ConflictError, match="full capacity"):
            await lesson_service.enroll_student(seed.school.id, lesson.id, seed.bob.id)

    async def test_reenroll_reactivates_row(self, seed, lesson_service):
        first = await lesson_service.enroll_student(seed.school.id, seed.group_lesson.id, seed.bob.id)
        await lesson_service.unenroll_student(seed.school.id, seed.group_lesson.id, seed.bob.id)

        again = await lesson_service.enroll_student(seed.school.id, seed.group_lesson.id, seed.bob.id)

        assert again.id == first.id
        assert again.active is True

    async def test_unenroll_unknown(self, seed, lesson_service):
        with pytest.raises(NotFoundError):
            await lesson_service.unenroll_student(seed.school.id, seed.group_lesson.id, seed.carol.id)

    async def test_unknown_student(self, seed, lesson_service):
        with pytest.raises(NotFoundError, match="Student not found"):
            await lesson_service.enroll_student(seed.school.id, seed.group_lesson.id, 9999)


class TestRescheduleLesson:
    """Piano Hybrid (Mon 09:00) is dragged around the calendar."""

    async def test_preview_reports_teacher_conflict(self, seed, lesson_service):
        check = await lesson_service.check_reschedule_conflicts(
            seed.school.id, seed.hybrid_lesson.id, 1, time(10, 30), time(11, 30)
        )

        assert check.has_conflicts is True
        assert check.teacher_conflict.lesson_name == "Guitar Group"
        assert check.teacher_conflict.time == "10:00 - 11:00"
        assert check.room_conflict.lesson_id == seed.group_lesson.id
        assert check.affected_students == 3

    async def test_preview_flags_students_with_other_lessons(self, seed, lesson_service):
        check = await lesson_service.check_reschedule_conflicts(
            seed.school.id, seed.hybrid_lesson.id, 3, time(15, 0), time(16, 0)
        )

        assert check.has_conflicts is False
        assert check.teacher_conflict is None
        flags = {e.student_name: e.has_other_lessons for e in check.affected_enrollments}
        assert flags == {"Alice Smith": True, "Bob Smith": False, "Carol Jones": False}

    async def test_preview_ignores_the_lesson_itself(self, seed, lesson_service):
        check = await lesson_service.check_reschedule_conflicts(
            seed.school.id, seed.hybrid_lesson.id, 1, time(8, 30), time(9, 30)
        )
        assert check.has_conflicts is False

    async def test_conflicting_move_rejected(self, db, seed, lesson_service):
        with pytest.raises(ConflictError, match="Teacher is not available.*Guitar Group"):
            await lesson_service.reschedule_lesson(
                seed.school.id,
                seed.hybrid_lesson.id,
                RescheduleInput(new_day_of_week=1, new_start_time=time(10, 30), new_end_time=time(11, 30)),
            )

        lesson = await lesson_service.get_lesson(seed.school.id, seed.hybrid_lesson.id)
        assert lesson.start_time == time(9, 0)

    async def test_move_and_notify(self, db, seed, lesson_service):
        lesson = await lesson_service.reschedule_lesson(
            seed.school.id,
            seed.hybrid_lesson.id,
            RescheduleInput(
                new_day_of_week=2, new_start_time=time(16, 0), new_end_time=time(17, 0), reason="Hall booked"
            ),
        )

        assert lesson.day_of_week == 2
        assert lesson.start_time == time(16, 0)

        result = await db.execute(select(NotificationOutbox))
        row = result.scalar_one()
        assert row.notification_type == NotificationType.LESSON_RESCHEDULED
        assert row.payload["old_day_of_week"] == 1
        assert row.payload["old_start_time"] == "09:00"
        assert row.payload["reason"] == "Hall booked"

    async def test_move_without_notification(self, db, seed, lesson_service):
        await lesson_service.reschedule_lesson(
            seed.school.id,
            seed.hybrid_lesson.id,
            RescheduleInput(
                new_day_of_week=2, new_start_time=time(16, 0), new_end_time=time(17, 0), notify_parents=False
            ),
        )

        result = await db.execute(select(NotificationOutbox))
        assert result.scalars().all() == []

    async def test_other_school(self, seed, lesson_service):
        with pytest.raises(NotFoundError):
            await lesson_service.check_reschedule_conflicts(
                seed.other_school.id, seed.hybrid_lesson.id, 2, time(9, 0), time(10, 0)
            )
