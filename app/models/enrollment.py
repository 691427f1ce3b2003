"""Lesson enrollment model."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


class LessonEnrollment(Base):
    """Links a student to a recurring lesson.

    Enrollments are soft-removed (``active=False``) and reactivated on
    re-enrollment, so there is one row per (lesson, student) pair.
    """

    __tablename__ = "lesson_enrollments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    lesson_id: Mapped[int] = mapped_column(ForeignKey("lessons.id"), nullable=False, index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey("students.id"), nullable=False, index=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    enrolled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    lesson: Mapped["Lesson"] = relationship("Lesson", back_populates="enrollments")
    student: Mapped["Student"] = relationship("Student", back_populates="enrollments")

    __table_args__ = (
        UniqueConstraint("lesson_id", "student_id", name="uq_lesson_enrollments_lesson_student"),
    )

    def __repr__(self) -> str:
        return (
            f"<LessonEnrollment(id={self.id}, lesson_id={self.lesson_id}, "
            f"student_id={self.student_id}, active={self.active})>"
        )
