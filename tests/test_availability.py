"""
Tests for teacher/room availability against weekly lessons.
"""

from datetime import time

import pytest

from app.core.errors import InvalidRequestError
from app.services.availability_service import (
    ResourceKind,
    check_availability,
    check_room_availability,
    check_teacher_availability,
)


class TestTeacherAvailability:
    """Teacher teaches Piano Hybrid 09:00-10:00 and Guitar Group 10:00-11:00 on Mondays."""

    async def test_overlap_reports_conflicting_lesson(self, db, seed):
        result = await check_teacher_availability(db, seed.school.id, seed.teacher.id, 1, "09:30", "10:30")

        assert result.available is False
        assert result.conflicting_lesson.id == seed.hybrid_lesson.id

    async def test_contained_window_conflicts(self, db, seed):
        result = await check_teacher_availability(db, seed.school.id, seed.teacher.id, 1, "10:15", "10:45")

        assert result.available is False
        assert result.conflicting_lesson.name == "Guitar Group"

    async def test_back_to_back_is_free(self, db, seed):
        before = await check_teacher_availability(db, seed.school.id, seed.teacher.id, 1, "08:00", "09:00")
        after = await check_teacher_availability(db, seed.school.id, seed.teacher.id, 1, "11:00", "12:00")

        assert before.available is True
        assert after.available is True
        assert before.conflicting_lesson is None

    async def test_other_day_is_free(self, db, seed):
        result = await check_teacher_availability(db, seed.school.id, seed.teacher.id, 2, "09:00", "10:00")
        assert result.available is True

    async def test_excluded_lesson_does_not_conflict_with_itself(self, db, seed):
        result = await check_teacher_availability(
            db, seed.school.id, seed.teacher.id, 1, time(9, 0), time(10, 0),
            exclude_lesson_id=seed.hybrid_lesson.id,
        )
        assert result.available is True

    async def test_inactive_lessons_are_ignored(self, db, seed):
        seed.hybrid_lesson.active = False
        await db.commit()

        result = await check_teacher_availability(db, seed.school.id, seed.teacher.id, 1, "09:00", "10:00")
        assert result.available is True

    async def test_other_school_is_isolated(self, db, seed):
        result = await check_teacher_availability(db, seed.other_school.id, seed.teacher.id, 1, "09:00", "10:00")
        assert result.available is True

    async def test_other_teacher_is_free(self, db, seed):
        result = await check_teacher_availability(db, seed.school.id, seed.other_teacher.id, 1, "09:00", "10:00")
        assert result.available is True


class TestRoomAvailability:
    async def test_room_conflict(self, db, seed):
        result = await check_room_availability(db, seed.school.id, seed.room.id, 1, "09:45", "10:15")

        assert result.available is False
        assert result.conflicting_lesson.id == seed.hybrid_lesson.id

    async def test_other_room_is_free(self, db, seed):
        result = await check_room_availability(db, seed.school.id, seed.other_room.id, 1, "09:00", "11:00")
        assert result.available is True


class TestValidation:
    async def test_end_before_start(self, db, seed):
        with pytest.raises(InvalidRequestError):
            await check_availability(db, seed.school.id, ResourceKind.ROOM, seed.room.id, 1, "10:00", "09:00")

    async def test_empty_window(self, db, seed):
        with pytest.raises(InvalidRequestError):
            await check_availability(db, seed.school.id, ResourceKind.ROOM, seed.room.id, 1, "10:00", "10:00")

    async def test_bad_day(self, db, seed):
        with pytest.raises(InvalidRequestError):
            await check_availability(db, seed.school.id, ResourceKind.TEACHER, seed.teacher.id, 7, "09:00", "10:00")
