"""
The demo seed builds a consistent school through the lesson service.
"""

from sqlalchemy import func, select

from app.models import LessonEnrollment
from app.services.lesson_service import LessonService
from app.services.slot_service import available_slots
from scripts.seed_data import seed_data


async def test_seed_creates_bookable_school(db):
    school = await seed_data(db)

    lessons = await LessonService(db).list_lessons(school.id)
    assert [lesson.name for lesson in lessons] == ["Piano Hybrid", "Junior Piano Group", "Rock Band"]

    enrolled = await db.scalar(select(func.count()).select_from(LessonEnrollment))
    assert enrolled == 6

    hybrid = lessons[0]
    slots = await available_slots(db, school.id, hybrid.id, 4)
    assert len(slots) == 2
