"""Seed database with sample data."""

import asyncio
import logging
import sys
from datetime import date, time

sys.path.append(".")

from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from app.core.database import AsyncSessionLocal, init_db  # noqa: E402
from app.models import (  # noqa: E402
    Family,
    HybridPatternKind,
    LessonCategory,
    Parent,
    Room,
    School,
    Student,
    Teacher,
    Term,
)
from app.services.lesson_service import HybridPatternInput, LessonCreateInput, LessonService  # noqa: E402

logger = logging.getLogger(__name__)


async def seed_data(db: AsyncSession) -> School:
    """Create one demo school with a term, staff, two families and a week of lessons."""
    school = School(name="Riverside Music School", timezone="Australia/Sydney")
    db.add(school)
    await db.flush()

    term = Term(school_id=school.id, name="Term 1", start_date=date(2025, 2, 3), end_date=date(2025, 4, 13))
    teachers = [
        Teacher(school_id=school.id, full_name="Olivia Hart"),
        Teacher(school_id=school.id, full_name="Marcus Lee"),
    ]
    rooms = [
        Room(school_id=school.id, name="Piano Room", location_name="Main Building"),
        Room(school_id=school.id, name="Band Hall", location_name="Main Building"),
    ]
    families = [
        Family(school_id=school.id, name="Nguyen"),
        Family(school_id=school.id, name="Taylor"),
    ]
    db.add_all([term, *teachers, *rooms, *families])
    await db.flush()

    parents = [
        Parent(school_id=school.id, family_id=families[0].id, full_name="Linh Nguyen", email="linh@example.com"),
        Parent(school_id=school.id, family_id=families[1].id, full_name="Jo Taylor", email="jo@example.com"),
    ]
    students = [
        Student(school_id=school.id, family_id=families[0].id, first_name="Minh", last_name="Nguyen"),
        Student(school_id=school.id, family_id=families[0].id, first_name="An", last_name="Nguyen"),
        Student(school_id=school.id, family_id=families[1].id, first_name="Ruby", last_name="Taylor"),
    ]
    db.add_all([*parents, *students])
    await db.commit()

    service = LessonService(db)
    lessons = [
        LessonCreateInput(
            term_id=term.id,
            teacher_id=teachers[0].id,
            room_id=rooms[0].id,
            name="Piano Hybrid",
            category=LessonCategory.HYBRID,
            day_of_week=1,
            start_time=time(15, 0),
            end_time=time(16, 0),
            max_students=4,
            hybrid_pattern=HybridPatternInput(kind=HybridPatternKind.ALTERNATING, bookings_open=True),
        ),
        LessonCreateInput(
            term_id=term.id,
            teacher_id=teachers[0].id,
            room_id=rooms[0].id,
            name="Junior Piano Group",
            category=LessonCategory.GROUP,
            day_of_week=1,
            start_time=time(16, 0),
            end_time=time(17, 0),
            max_students=6,
        ),
        LessonCreateInput(
            term_id=term.id,
            teacher_id=teachers[1].id,
            room_id=rooms[1].id,
            name="Rock Band",
            category=LessonCategory.BAND,
            day_of_week=3,
            start_time=time(17, 0),
            end_time=time(18, 30),
            max_students=5,
        ),
    ]

    created = []
    for data in lessons:
        created.append(await service.create_lesson(school.id, data, actor_name="Seed script"))

    enrollments = {
        "Piano Hybrid": students,
        "Junior Piano Group": students[:2],
        "Rock Band": students[2:],
    }
    for lesson in created:
        for student in enrollments[lesson.name]:
            await service.enroll_student(school.id, lesson.id, student.id, actor_name="Seed script")

    logger.info(f"✅ Seeded school {school.id} with {len(created)} lessons and {len(students)} students")
    return school


async def main():
    await init_db()
    async with AsyncSessionLocal() as db:
        await seed_data(db)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
