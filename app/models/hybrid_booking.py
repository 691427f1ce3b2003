"""Hybrid lesson individual booking model."""

from datetime import date, datetime, time
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Time,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


class HybridBookingStatus(str, Enum):
    """Booking status enum."""

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    NO_SHOW = "NO_SHOW"


# Statuses that still hold a slot
ACTIVE_BOOKING_STATUSES = (HybridBookingStatus.PENDING, HybridBookingStatus.CONFIRMED)

_NOT_CANCELLED = text("status != 'CANCELLED'")


class HybridBooking(Base):
    """A parent's reservation of an individual slot in a hybrid lesson week."""

    __tablename__ = "hybrid_bookings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    lesson_id: Mapped[int] = mapped_column(ForeignKey("lessons.id"), nullable=False, index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey("students.id"), nullable=False)
    parent_id: Mapped[int] = mapped_column(ForeignKey("parents.id"), nullable=False, index=True)
    week_number: Mapped[int] = mapped_column(Integer, nullable=False)
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    status: Mapped[HybridBookingStatus] = mapped_column(
        SQLEnum(HybridBookingStatus), default=HybridBookingStatus.CONFIRMED, nullable=False
    )
    cancellation_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Timestamp fields (all UTC)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    lesson: Mapped["Lesson"] = relationship("Lesson", back_populates="bookings")
    student: Mapped["Student"] = relationship("Student")
    parent: Mapped["Parent"] = relationship("Parent")

    # One live booking per student per week, one live booking per slot
    __table_args__ = (
        Index(
            "uq_hybrid_bookings_student_week",
            "lesson_id",
            "student_id",
            "week_number",
            unique=True,
            postgresql_where=_NOT_CANCELLED,
            sqlite_where=_NOT_CANCELLED,
        ),
        Index(
            "uq_hybrid_bookings_slot",
            "lesson_id",
            "week_number",
            "scheduled_date",
            "start_time",
            unique=True,
            postgresql_where=_NOT_CANCELLED,
            sqlite_where=_NOT_CANCELLED,
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_BOOKING_STATUSES

    def __repr__(self) -> str:
        return (
            f"<HybridBooking(id={self.id}, lesson_id={self.lesson_id}, "
            f"student_id={self.student_id}, week={self.week_number}, "
            f"date={self.scheduled_date}, time={self.start_time}-{self.end_time}, "
            f"status={self.status})>"
        )
