"""Hybrid lesson individual booking API endpoints."""

import io
import logging
from datetime import date, datetime, time
from typing import List, Optional

import pandas as pd
from fastapi import APIRouter, Query, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from app.api.dependencies import AdminUser, Clock, CurrentUser, DbSession, Notifications, ParentUser, StaffUser
from app.core.errors import ForbiddenError
from app.core.security import Role
from app.models import HybridBooking, HybridBookingStatus
from app.services.hybrid_booking_service import (
    CreateBookingInput,
    HybridBookingService,
    RescheduleBookingInput,
)
from app.services.hybrid_pattern import MAX_TERM_WEEKS
from app.services.slot_service import available_slots
from app.utils.time_ranges import format_time

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/hybrid-bookings", tags=["hybrid-bookings"])


class BookingCreate(BaseModel):
    """Booking creation model."""

    lesson_id: int
    student_id: int
    week_number: int = Field(..., ge=1, le=MAX_TERM_WEEKS)
    scheduled_date: date
    start_time: time
    end_time: time


class BookingReschedule(BaseModel):
    scheduled_date: date
    start_time: time
    end_time: time


class BookingCancel(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class BookingStatusUpdate(BaseModel):
    status: HybridBookingStatus


class BookingsOpenUpdate(BaseModel):
    bookings_open: bool


class BookingResponse(BaseModel):
    """Booking response model."""

    id: int
    lesson_id: int
    lesson_name: Optional[str] = None
    student_id: int
    student_name: Optional[str] = None
    parent_id: int
    week_number: int
    scheduled_date: date
    start_time: str
    end_time: str
    status: HybridBookingStatus
    cancellation_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class SlotResponse(BaseModel):
    date: date
    start_time: str
    end_time: str
    week_number: int
    is_available: bool


class BookingStatsResponse(BaseModel):
    total_students: int
    booked_count: int
    unbooked_count: int
    completion_rate: float
    pending_bookings: int
    confirmed_bookings: int


class UnbookedStudentResponse(BaseModel):
    student_id: int
    student_name: str
    parent_id: Optional[int] = None
    parent_name: Optional[str] = None
    parent_email: Optional[str] = None


class PatternResponse(BaseModel):
    lesson_id: int
    bookings_open: bool
    group_weeks: List[int]
    individual_weeks: List[int]


def _booking_response(booking: HybridBooking) -> BookingResponse:
    return BookingResponse(
        id=booking.id,
        lesson_id=booking.lesson_id,
        lesson_name=booking.lesson.name if booking.lesson else None,
        student_id=booking.student_id,
        student_name=booking.student.full_name if booking.student else None,
        parent_id=booking.parent_id,
        week_number=booking.week_number,
        scheduled_date=booking.scheduled_date,
        start_time=format_time(booking.start_time),
        end_time=format_time(booking.end_time),
        status=booking.status,
        cancellation_reason=booking.cancellation_reason,
        created_at=booking.created_at,
        confirmed_at=booking.confirmed_at,
        cancelled_at=booking.cancelled_at,
        completed_at=booking.completed_at,
    )


def _service(db, notifications, clock) -> HybridBookingService:
    return HybridBookingService(db, notifications=notifications, clock=clock)


# ----------------------------------------------------------------------
# Slots and parent bookings
# ----------------------------------------------------------------------


@router.get("/slots", response_model=List[SlotResponse])
async def get_available_slots(
    db: DbSession,
    user: CurrentUser,
    lesson_id: int,
    week_number: int = Query(..., ge=1, le=MAX_TERM_WEEKS),
) -> List[SlotResponse]:
    """Individual slots of a hybrid lesson week."""
    slots = await available_slots(db, user.school_id, lesson_id, week_number)
    return [
        SlotResponse(
            date=slot.date,
            start_time=format_time(slot.start_time),
            end_time=format_time(slot.end_time),
            week_number=slot.week_number,
            is_available=slot.is_available,
        )
        for slot in slots
    ]


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    db: DbSession,
    user: ParentUser,
    notifications: Notifications,
    clock: Clock,
) -> BookingResponse:
    """Book an individual session for one of the parent's children."""
    booking = await _service(db, notifications, clock).create_booking(
        user.school_id,
        user.parent_id,
        CreateBookingInput(**booking_data.model_dump()),
    )
    return _booking_response(booking)


@router.get("/my", response_model=List[BookingResponse])
async def get_my_bookings(
    db: DbSession,
    user: ParentUser,
    notifications: Notifications,
    clock: Clock,
    lesson_id: Optional[int] = None,
    booking_status: Optional[HybridBookingStatus] = Query(default=None, alias="status"),
    week_number: Optional[int] = None,
) -> List[BookingResponse]:
    bookings = await _service(db, notifications, clock).get_parent_bookings(
        user.school_id, user.parent_id, lesson_id=lesson_id, status=booking_status, week_number=week_number
    )
    return [_booking_response(b) for b in bookings]


# ----------------------------------------------------------------------
# Lesson-level views (staff)
# ----------------------------------------------------------------------


@router.get("/lessons/{lesson_id}", response_model=List[BookingResponse])
async def get_lesson_bookings(
    lesson_id: int,
    db: DbSession,
    user: StaffUser,
    notifications: Notifications,
    clock: Clock,
    week_number: Optional[int] = None,
    booking_status: Optional[HybridBookingStatus] = Query(default=None, alias="status"),
) -> List[BookingResponse]:
    bookings = await _service(db, notifications, clock).get_lesson_bookings(
        user.school_id, lesson_id, week_number=week_number, status=booking_status
    )
    return [_booking_response(b) for b in bookings]


@router.get("/lessons/{lesson_id}/stats", response_model=BookingStatsResponse)
async def get_lesson_booking_stats(
    lesson_id: int,
    db: DbSession,
    user: StaffUser,
    notifications: Notifications,
    clock: Clock,
    week_number: Optional[int] = None,
) -> BookingStatsResponse:
    stats = await _service(db, notifications, clock).get_booking_stats(user.school_id, lesson_id, week_number)
    return BookingStatsResponse(**stats.__dict__)


@router.get("/lessons/{lesson_id}/unbooked", response_model=List[UnbookedStudentResponse])
async def get_unbooked_students(
    lesson_id: int,
    db: DbSession,
    user: StaffUser,
    notifications: Notifications,
    clock: Clock,
    week_number: int = Query(..., ge=1, le=MAX_TERM_WEEKS),
) -> List[UnbookedStudentResponse]:
    """Enrolled students that still need to book for the week."""
    rows = await _service(db, notifications, clock).get_students_without_bookings(
        user.school_id, lesson_id, week_number
    )
    return [
        UnbookedStudentResponse(
            student_id=row.student.id,
            student_name=row.student.full_name,
            parent_id=row.parent.id if row.parent else None,
            parent_name=row.parent.full_name if row.parent else None,
            parent_email=row.parent.email if row.parent else None,
        )
        for row in rows
    ]


@router.get("/lessons/{lesson_id}/export/excel")
async def export_lesson_bookings_excel(
    lesson_id: int,
    db: DbSession,
    user: AdminUser,
    notifications: Notifications,
    clock: Clock,
) -> StreamingResponse:
    """Export all bookings of a lesson to Excel."""
    service = _service(db, notifications, clock)
    bookings = await service.get_lesson_bookings(user.school_id, lesson_id)
    stats = await service.get_booking_stats(user.school_id, lesson_id)

    df = pd.DataFrame(
        [
            {
                "Week": b.week_number,
                "Date": b.scheduled_date.isoformat(),
                "Start": format_time(b.start_time),
                "End": format_time(b.end_time),
                "Student": b.student.full_name if b.student else b.student_id,
                "Parent": b.parent.full_name if b.parent else b.parent_id,
                "Status": b.status.value,
                "Cancellation reason": b.cancellation_reason or "",
            }
            for b in bookings
        ],
        columns=["Week", "Date", "Start", "End", "Student", "Parent", "Status", "Cancellation reason"],
    )

    output = io.BytesIO()
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name="Bookings", index=False)

        worksheet = writer.sheets["Bookings"]
        for column in worksheet.columns:
            max_length = max(len(str(cell.value)) if cell.value is not None else 0 for cell in column)
            worksheet.column_dimensions[column[0].column_letter].width = min(max_length + 2, 50)

        summary_df = pd.DataFrame(
            {
                "Statistic": [
                    "Enrolled students",
                    "Booked",
                    "Not booked",
                    "Completion rate (%)",
                    "Pending",
                    "Confirmed",
                ],
                "Value": [
                    stats.total_students,
                    stats.booked_count,
                    stats.unbooked_count,
                    stats.completion_rate,
                    stats.pending_bookings,
                    stats.confirmed_bookings,
                ],
            }
        )
        summary_df.to_excel(writer, sheet_name="Summary", index=False)

    output.seek(0)
    filename = f"lesson_{lesson_id}_bookings_{datetime.now().strftime('%Y-%m-%d')}.xlsx"
    logger.info(f"📊 Exported {len(bookings)} bookings for lesson {lesson_id}")

    return StreamingResponse(
        io.BytesIO(output.read()),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.patch("/lessons/{lesson_id}/bookings-open", response_model=PatternResponse)
async def set_bookings_open(
    lesson_id: int,
    data: BookingsOpenUpdate,
    db: DbSession,
    user: AdminUser,
    notifications: Notifications,
    clock: Clock,
) -> PatternResponse:
    pattern = await _service(db, notifications, clock).set_bookings_open(
        user.school_id, lesson_id, data.bookings_open, actor_name=user.username
    )
    return PatternResponse(
        lesson_id=pattern.lesson_id,
        bookings_open=pattern.bookings_open,
        group_weeks=pattern.group_weeks,
        individual_weeks=pattern.individual_weeks,
    )


# ----------------------------------------------------------------------
# Single booking
# ----------------------------------------------------------------------


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: int,
    db: DbSession,
    user: CurrentUser,
    notifications: Notifications,
    clock: Clock,
) -> BookingResponse:
    if user.role == Role.PARENT and user.parent_id is None:
        raise ForbiddenError("Parent access required.")
    parent_id = user.parent_id if user.role == Role.PARENT else None
    booking = await _service(db, notifications, clock).get_booking(user.school_id, booking_id, parent_id)
    return _booking_response(booking)


@router.patch("/{booking_id}", response_model=BookingResponse)
async def reschedule_booking(
    booking_id: int,
    data: BookingReschedule,
    db: DbSession,
    user: ParentUser,
    notifications: Notifications,
    clock: Clock,
) -> BookingResponse:
    """Move a booking to another free slot of the same week."""
    booking = await _service(db, notifications, clock).reschedule_booking(
        user.school_id,
        user.parent_id,
        booking_id,
        RescheduleBookingInput(**data.model_dump()),
    )
    return _booking_response(booking)


@router.delete("/{booking_id}", response_model=BookingResponse)
async def cancel_booking(
    booking_id: int,
    db: DbSession,
    user: ParentUser,
    notifications: Notifications,
    clock: Clock,
    data: Optional[BookingCancel] = None,
) -> BookingResponse:
    booking = await _service(db, notifications, clock).cancel_booking(
        user.school_id, user.parent_id, booking_id, reason=data.reason if data else None
    )
    return _booking_response(booking)


@router.patch("/{booking_id}/status", response_model=BookingResponse)
async def update_booking_status(
    booking_id: int,
    data: BookingStatusUpdate,
    db: DbSession,
    user: StaffUser,
    notifications: Notifications,
    clock: Clock,
) -> BookingResponse:
    """Confirm a pending booking or record its outcome (completed / no-show)."""
    booking = await _service(db, notifications, clock).update_status(
        user.school_id,
        booking_id,
        data.status,
        actor_name=user.username,
        teacher_id=user.teacher_id if user.role == Role.TEACHER else None,
    )
    return _booking_response(booking)
