"""Calendar API endpoints."""

from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, Query

from app.api.dependencies import Clock, DbSession, ParentUser, StaffUser
from app.core.security import Role
from app.core.settings import settings
from app.services.calendar_service import CalendarPage, CalendarProjector

router = APIRouter(prefix="/calendar", tags=["calendar"])


async def _default_range(
    projector: CalendarProjector, school_id: int, clock, start_date: Optional[date], end_date: Optional[date]
):
    start = start_date or await projector.school_today(school_id, clock())
    end = end_date or start + timedelta(days=settings.calendar_default_days)
    return start, end


@router.get("/events", response_model=CalendarPage)
async def get_calendar_events(
    db: DbSession,
    user: StaffUser,
    clock: Clock,
    term_id: Optional[int] = None,
    teacher_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=settings.calendar_default_page_size, ge=1, le=settings.calendar_max_page_size),
) -> CalendarPage:
    """Sessions, hybrid placeholders and bookings for admins and teachers.

    Teachers only ever see their own lessons.
    """
    if user.role == Role.TEACHER:
        teacher_id = user.teacher_id
    projector = CalendarProjector(db)
    start, end = await _default_range(projector, user.school_id, clock, start_date, end_date)
    return await projector.project_events(
        user.school_id,
        start,
        end,
        term_id=term_id,
        teacher_id=teacher_id,
        page=page,
        limit=limit,
    )


@router.get("/my-events", response_model=CalendarPage)
async def get_my_calendar_events(
    db: DbSession,
    user: ParentUser,
    clock: Clock,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=settings.calendar_default_page_size, ge=1, le=settings.calendar_max_page_size),
) -> CalendarPage:
    """Calendar of the parent's children."""
    projector = CalendarProjector(db)
    start, end = await _default_range(projector, user.school_id, clock, start_date, end_date)
    return await projector.project_parent_events(
        user.school_id, user.parent_id, start, end, page=page, limit=limit
    )
