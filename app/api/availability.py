"""Teacher and room availability API."""

from datetime import time
from typing import Optional

from fastapi import APIRouter, Query
from pydantic import BaseModel

from app.api.dependencies import DbSession, StaffUser
from app.services.availability_service import ResourceKind, check_availability
from app.utils.time_ranges import format_range

router = APIRouter(prefix="/availability", tags=["availability"])


class ConflictingLesson(BaseModel):
    lesson_id: int
    lesson_name: str
    day_of_week: int
    time: str


class AvailabilityResponse(BaseModel):
    available: bool
    conflicting_lesson: Optional[ConflictingLesson] = None


@router.get("", response_model=AvailabilityResponse)
async def get_availability(
    db: DbSession,
    user: StaffUser,
    resource_kind: ResourceKind,
    resource_id: int,
    day_of_week: int = Query(..., ge=0, le=6),
    start_time: time = Query(...),
    end_time: time = Query(...),
    exclude_lesson_id: Optional[int] = None,
) -> AvailabilityResponse:
    """Check whether a teacher or room is free for a weekly window."""
    result = await check_availability(
        db,
        user.school_id,
        resource_kind,
        resource_id,
        day_of_week,
        start_time,
        end_time,
        exclude_lesson_id,
    )
    conflict = result.conflicting_lesson
    return AvailabilityResponse(
        available=result.available,
        conflicting_lesson=ConflictingLesson(
            lesson_id=conflict.id,
            lesson_name=conflict.name,
            day_of_week=conflict.day_of_week,
            time=format_range(conflict.start_time, conflict.end_time),
        ) if conflict else None,
    )
