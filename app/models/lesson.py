"""Recurring lesson model."""

from datetime import datetime, time
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


class LessonCategory(str, Enum):
    """Lesson category enum."""

    INDIVIDUAL = "INDIVIDUAL"
    GROUP = "GROUP"
    BAND = "BAND"
    HYBRID = "HYBRID"


WEEKDAY_NAMES = {
    0: "Sunday",
    1: "Monday",
    2: "Tuesday",
    3: "Wednesday",
    4: "Thursday",
    5: "Friday",
    6: "Saturday",
}


class Lesson(Base):
    """Weekly recurring lesson bounded by a term."""

    __tablename__ = "lessons"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    school_id: Mapped[int] = mapped_column(ForeignKey("schools.id"), nullable=False, index=True)
    term_id: Mapped[int] = mapped_column(ForeignKey("terms.id"), nullable=False)
    teacher_id: Mapped[int] = mapped_column(ForeignKey("teachers.id"), nullable=False)
    room_id: Mapped[int] = mapped_column(ForeignKey("rooms.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[LessonCategory] = mapped_column(
        SQLEnum(LessonCategory), default=LessonCategory.GROUP, nullable=False
    )
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)  # 0=Sunday ... 6=Saturday
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    duration_mins: Mapped[int] = mapped_column(Integer, nullable=False)
    max_students: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    term: Mapped["Term"] = relationship("Term")
    teacher: Mapped["Teacher"] = relationship("Teacher", back_populates="lessons")
    room: Mapped["Room"] = relationship("Room", back_populates="lessons")
    enrollments: Mapped[list["LessonEnrollment"]] = relationship(
        "LessonEnrollment", back_populates="lesson", order_by="LessonEnrollment.enrolled_at"
    )
    hybrid_pattern: Mapped[Optional["HybridPattern"]] = relationship(
        "HybridPattern", back_populates="lesson", uselist=False
    )
    bookings: Mapped[list["HybridBooking"]] = relationship(
        "HybridBooking", back_populates="lesson"
    )

    __table_args__ = (
        CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="day_of_week"),
        CheckConstraint("start_time < end_time", name="time_order"),
        Index("idx_lessons_teacher_day", "school_id", "teacher_id", "day_of_week"),
        Index("idx_lessons_room_day", "school_id", "room_id", "day_of_week"),
    )

    @property
    def is_hybrid(self) -> bool:
        return self.category == LessonCategory.HYBRID

    @property
    def active_enrollments(self) -> list["LessonEnrollment"]:
        return [e for e in self.enrollments if e.active]

    def __repr__(self) -> str:
        return (
            f"<Lesson(id={self.id}, name='{self.name}', "
            f"day='{WEEKDAY_NAMES.get(self.day_of_week, self.day_of_week)}', "
            f"time={self.start_time}-{self.end_time}, active={self.active})>"
        )
