"""
Tests for projecting lessons and bookings onto the calendar.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from app.core.errors import InvalidRequestError
from app.models import HybridBookingStatus
from app.services.calendar_service import CalendarProjector, lesson_dates, validate_range
from tests.conftest import TERM_START, WEEK_4_MONDAY

TERM_END = date(2025, 4, 13)
WEEK_1 = (TERM_START, TERM_START + timedelta(days=6))
WEEK_4 = (WEEK_4_MONDAY, WEEK_4_MONDAY + timedelta(days=6))


@pytest.fixture
def projector(db):
    return CalendarProjector(db)


class TestLessonDates:
    def test_whole_term(self):
        dates = list(lesson_dates(TERM_START, TERM_END, 1, TERM_START, TERM_END))

        assert len(dates) == 10
        assert dates[0] == (1, TERM_START)
        assert dates[-1] == (10, date(2025, 4, 7))

    def test_range_clips_weeks(self):
        dates = list(lesson_dates(TERM_START, TERM_END, 1, date(2025, 2, 20), date(2025, 3, 5)))
        assert dates == [(4, date(2025, 2, 24)), (5, date(2025, 3, 3))]

    def test_range_outside_term(self):
        assert list(lesson_dates(TERM_START, TERM_END, 1, date(2025, 6, 1), date(2025, 6, 30))) == []


class TestValidateRange:
    def test_reversed_range(self):
        with pytest.raises(InvalidRequestError):
            validate_range(date(2025, 3, 1), date(2025, 2, 1))

    def test_range_too_long(self):
        with pytest.raises(InvalidRequestError, match="366"):
            validate_range(date(2025, 1, 1), date(2026, 1, 3))

    def test_single_day(self):
        validate_range(WEEK_4_MONDAY, WEEK_4_MONDAY)


class TestAdminCalendar:
    async def test_group_week(self, seed, projector):
        page = await projector.project_events(seed.school.id, *WEEK_1)

        by_id = {e.id: e for e in page.events}
        hybrid = by_id[f"{seed.hybrid_lesson.id}-week-1"]
        group = by_id[f"{seed.group_lesson.id}-week-1"]

        assert hybrid.kind == "GROUP"
        assert hybrid.session_type == "HYBRID_GROUP"
        assert group.session_type == "GROUP"
        assert hybrid.teacher_name == "Jane Keys"
        assert hybrid.room_name == "Studio A"
        assert len(page.events) == 2

    async def test_individual_week_placeholder(self, seed, projector):
        page = await projector.project_events(seed.school.id, *WEEK_4)

        placeholder = next(e for e in page.events if e.kind == "PLACEHOLDER")
        assert placeholder.id == f"{seed.hybrid_lesson.id}-week-4-placeholder"
        assert placeholder.bookings_open is True
        assert placeholder.week_number == 4

    async def test_events_are_localized(self, seed, projector):
        page = await projector.project_events(seed.school.id, *WEEK_4)

        event = page.events[0]
        assert event.start.date() == WEEK_4_MONDAY
        assert event.start.hour == 9
        assert event.start.utcoffset() == timedelta(hours=11)

    async def test_bookings_included(self, seed, projector, booking_service, booking_input):
        booking = await booking_service.create_booking(seed.school.id, seed.parent.id, booking_input())

        page = await projector.project_events(seed.school.id, *WEEK_4)

        kinds = sorted(e.kind for e in page.events)
        assert kinds == ["BOOKING", "GROUP", "PLACEHOLDER"]
        event = next(e for e in page.events if e.kind == "BOOKING")
        assert event.id == f"booking-{booking.id}"
        assert event.student_name == "Alice Smith"

    async def test_capacity_on_sessions(self, seed, projector, booking_service, booking_input):
        await booking_service.create_booking(seed.school.id, seed.parent.id, booking_input())

        page = await projector.project_events(seed.school.id, *WEEK_4)

        by_kind = {e.kind: e for e in page.events}
        assert (by_kind["GROUP"].enrolled_count, by_kind["GROUP"].max_students) == (1, 8)
        assert (by_kind["PLACEHOLDER"].enrolled_count, by_kind["PLACEHOLDER"].max_students) == (3, 5)
        assert by_kind["BOOKING"].enrolled_count is None

    async def test_cancelled_bookings_hidden(self, seed, projector, booking_service, booking_input):
        booking = await booking_service.create_booking(seed.school.id, seed.parent.id, booking_input())
        await booking_service.cancel_booking(seed.school.id, seed.parent.id, booking.id)

        page = await projector.project_events(seed.school.id, *WEEK_4)
        assert all(e.kind != "BOOKING" for e in page.events)

    async def test_sorted_and_paginated(self, seed, projector):
        first = await projector.project_events(seed.school.id, TERM_START, TERM_END, limit=5)
        last = await projector.project_events(seed.school.id, TERM_START, TERM_END, page=4, limit=5)

        assert first.pagination.total == 20
        assert first.pagination.total_pages == 4
        assert first.pagination.has_more is True
        assert last.pagination.has_more is False
        assert len(last.events) == 5

        starts = [e.start for e in first.events]
        assert starts == sorted(starts)

    async def test_teacher_filter(self, seed, projector):
        page = await projector.project_events(seed.school.id, *WEEK_1, teacher_id=seed.other_teacher.id)
        assert page.events == []
        assert page.pagination.total == 0

    async def test_inactive_lessons_skipped(self, db, seed, projector):
        seed.group_lesson.active = False
        await db.commit()

        page = await projector.project_events(seed.school.id, *WEEK_1)
        assert [e.lesson_id for e in page.events] == [seed.hybrid_lesson.id]

    async def test_invalid_page(self, seed, projector):
        with pytest.raises(InvalidRequestError):
            await projector.project_events(seed.school.id, *WEEK_1, page=0)


class TestParentCalendar:
    async def test_one_entry_per_child(self, seed, projector):
        page = await projector.project_parent_events(seed.school.id, seed.parent.id, *WEEK_4)

        ids = {e.id for e in page.events}
        assert ids == {
            f"{seed.hybrid_lesson.id}-week-4-{seed.alice.id}-placeholder",
            f"{seed.hybrid_lesson.id}-week-4-{seed.bob.id}-placeholder",
            f"{seed.group_lesson.id}-week-4-{seed.alice.id}",
        }

    async def test_booking_replaces_placeholder(self, seed, projector, booking_service, booking_input):
        booking = await booking_service.create_booking(seed.school.id, seed.parent.id, booking_input())

        page = await projector.project_parent_events(seed.school.id, seed.parent.id, *WEEK_4)

        alice_hybrid = [
            e for e in page.events if e.student_id == seed.alice.id and e.lesson_id == seed.hybrid_lesson.id
        ]
        assert len(alice_hybrid) == 1
        assert alice_hybrid[0].kind == "BOOKING"
        assert alice_hybrid[0].booking_id == booking.id
        assert len(page.events) == 3

    async def test_completed_booking_keeps_week_booked(self, seed, projector, booking_service, booking_input):
        booking = await booking_service.create_booking(seed.school.id, seed.parent.id, booking_input())
        await booking_service.complete_booking(seed.school.id, booking.id)

        page = await projector.project_parent_events(seed.school.id, seed.parent.id, *WEEK_4)

        alice_hybrid = [
            e for e in page.events if e.student_id == seed.alice.id and e.lesson_id == seed.hybrid_lesson.id
        ]
        assert [(e.kind, e.status) for e in alice_hybrid] == [("BOOKING", HybridBookingStatus.COMPLETED)]

    async def test_pending_booking_keeps_week_booked(self, db, seed, projector, booking_service, booking_input):
        booking = await booking_service.create_booking(seed.school.id, seed.parent.id, booking_input())
        booking.status = HybridBookingStatus.PENDING
        await db.commit()

        page = await projector.project_parent_events(seed.school.id, seed.parent.id, *WEEK_4)

        placeholders = [e for e in page.events if e.kind == "PLACEHOLDER"]
        assert [e.student_id for e in placeholders] == [seed.bob.id]

    async def test_guardian_sees_family_bookings(self, seed, projector, booking_service, booking_input):
        await booking_service.create_booking(seed.school.id, seed.parent.id, booking_input())

        page = await projector.project_parent_events(seed.school.id, seed.guardian.id, *WEEK_4)
        assert sum(1 for e in page.events if e.kind == "BOOKING") == 1

    async def test_other_family_is_separate(self, seed, projector, booking_service, booking_input):
        await booking_service.create_booking(seed.school.id, seed.parent.id, booking_input())

        page = await projector.project_parent_events(seed.school.id, seed.other_parent.id, *WEEK_4)

        assert [e.kind for e in page.events] == ["PLACEHOLDER"]
        assert page.events[0].student_name == "Carol Jones"

    async def test_group_weeks_for_child(self, seed, projector):
        page = await projector.project_parent_events(seed.school.id, seed.other_parent.id, *WEEK_1)

        assert len(page.events) == 1
        assert page.events[0].session_type == "HYBRID_GROUP"
        assert page.events[0].title == "Piano Hybrid (Group) - Carol"

    async def test_unknown_parent(self, seed, projector):
        page = await projector.project_parent_events(seed.school.id, 9999, *WEEK_4)
        assert page.events == []


class TestSchoolToday:
    # 14:00 UTC is already Tuesday in Sydney but still Monday morning in Honolulu
    NOW = datetime(2025, 2, 3, 14, 0, tzinfo=timezone.utc)

    async def test_uses_school_zone(self, db, seed, projector):
        seed.school.timezone = "Pacific/Honolulu"
        await db.commit()

        assert await projector.school_today(seed.school.id, self.NOW) == date(2025, 2, 3)

    async def test_falls_back_to_default_zone(self, db, seed, projector):
        seed.school.timezone = None
        await db.commit()

        assert await projector.school_today(seed.school.id, self.NOW) == date(2025, 2, 4)
