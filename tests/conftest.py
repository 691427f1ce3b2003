"""Shared fixtures: an isolated SQLite database seeded with one school."""

import os

os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["ENV"] = "test"
os.environ["SCHOOL_TIMEZONE"] = "Australia/Sydney"

from dataclasses import dataclass  # noqa: E402
from datetime import date, datetime, time, timezone  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from app.core.database import Base  # noqa: E402
from app.models import (  # noqa: E402
    Family,
    HybridPattern,
    HybridPatternKind,
    Lesson,
    LessonCategory,
    LessonEnrollment,
    Parent,
    Room,
    School,
    Student,
    Teacher,
    Term,
)
from app.services.hybrid_booking_service import CreateBookingInput, HybridBookingService  # noqa: E402
from app.services.notification_service import NotificationService  # noqa: E402

# Well before term 1 starts, so deadlines never interfere unless a test moves the clock
FIXED_NOW = datetime(2025, 1, 15, 0, 0, tzinfo=timezone.utc)

TERM_START = date(2025, 2, 3)  # a Monday
WEEK_4_MONDAY = date(2025, 2, 24)
WEEK_8_MONDAY = date(2025, 3, 24)


@dataclass
class Seed:
    school: School
    other_school: School
    term: Term
    teacher: Teacher
    other_teacher: Teacher
    room: Room
    other_room: Room
    family: Family
    parent: Parent
    guardian: Parent
    other_parent: Parent
    alice: Student
    bob: Student
    carol: Student
    hybrid_lesson: Lesson
    pattern: HybridPattern
    group_lesson: Lesson


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def notifications(session_factory):
    return NotificationService(session_factory=session_factory)


@pytest.fixture
def booking_service(db, notifications, clock):
    return HybridBookingService(db, notifications=notifications, clock=clock)


@pytest_asyncio.fixture
async def seed(db) -> Seed:
    school = School(name="Harmony Music School", timezone="Australia/Sydney")
    other_school = School(name="Elsewhere Academy", timezone="Australia/Sydney")
    db.add_all([school, other_school])
    await db.flush()

    term = Term(school_id=school.id, name="Term 1 2025", start_date=TERM_START, end_date=date(2025, 4, 13))
    teacher = Teacher(school_id=school.id, full_name="Jane Keys")
    other_teacher = Teacher(school_id=school.id, full_name="Tom Strings")
    room = Room(school_id=school.id, name="Studio A", location_name="Main Campus")
    other_room = Room(school_id=school.id, name="Studio B", location_name="Main Campus")
    family = Family(school_id=school.id, name="Smith")
    other_family = Family(school_id=school.id, name="Jones")
    db.add_all([term, teacher, other_teacher, room, other_room, family, other_family])
    await db.flush()

    parent = Parent(school_id=school.id, family_id=family.id, full_name="Pat Smith", email="pat@example.com")
    guardian = Parent(school_id=school.id, family_id=family.id, full_name="Sam Smith")
    other_parent = Parent(school_id=school.id, family_id=other_family.id, full_name="Chris Jones")
    alice = Student(school_id=school.id, family_id=family.id, first_name="Alice", last_name="Smith")
    bob = Student(school_id=school.id, family_id=family.id, first_name="Bob", last_name="Smith")
    carol = Student(school_id=school.id, family_id=other_family.id, first_name="Carol", last_name="Jones")
    db.add_all([parent, guardian, other_parent, alice, bob, carol])
    await db.flush()

    hybrid_lesson = Lesson(
        school_id=school.id,
        term_id=term.id,
        teacher_id=teacher.id,
        room_id=room.id,
        name="Piano Hybrid",
        category=LessonCategory.HYBRID,
        day_of_week=1,
        start_time=time(9, 0),
        end_time=time(10, 0),
        duration_mins=60,
        max_students=5,
    )
    group_lesson = Lesson(
        school_id=school.id,
        term_id=term.id,
        teacher_id=teacher.id,
        room_id=room.id,
        name="Guitar Group",
        category=LessonCategory.GROUP,
        day_of_week=1,
        start_time=time(10, 0),
        end_time=time(11, 0),
        duration_mins=60,
        max_students=8,
    )
    db.add_all([hybrid_lesson, group_lesson])
    await db.flush()

    pattern = HybridPattern(
        lesson_id=hybrid_lesson.id,
        term_id=term.id,
        kind=HybridPatternKind.CUSTOM,
        group_weeks=[1, 2, 3, 5, 6, 7, 9, 10],
        individual_weeks=[4, 8],
        individual_slot_duration=30,
        booking_deadline_hours=24,
        bookings_open=True,
    )
    db.add(pattern)
    db.add_all([
        LessonEnrollment(lesson_id=hybrid_lesson.id, student_id=alice.id),
        LessonEnrollment(lesson_id=hybrid_lesson.id, student_id=bob.id),
        LessonEnrollment(lesson_id=hybrid_lesson.id, student_id=carol.id),
        LessonEnrollment(lesson_id=group_lesson.id, student_id=alice.id),
    ])
    await db.commit()

    return Seed(
        school=school,
        other_school=other_school,
        term=term,
        teacher=teacher,
        other_teacher=other_teacher,
        room=room,
        other_room=other_room,
        family=family,
        parent=parent,
        guardian=guardian,
        other_parent=other_parent,
        alice=alice,
        bob=bob,
        carol=carol,
        hybrid_lesson=hybrid_lesson,
        pattern=pattern,
        group_lesson=group_lesson,
    )


@pytest.fixture
def booking_input(seed):
    """Build a week-4 booking request for the hybrid lesson."""

    def _build(student=None, start=time(9, 0), end=time(9, 30), week=4, scheduled=WEEK_4_MONDAY):
        return CreateBookingInput(
            lesson_id=seed.hybrid_lesson.id,
            student_id=(student or seed.alice).id,
            week_number=week,
            scheduled_date=scheduled,
            start_time=start,
            end_time=end,
        )

    return _build
