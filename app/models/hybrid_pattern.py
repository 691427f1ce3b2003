"""Hybrid lesson pattern model."""

from enum import Enum

from sqlalchemy import Boolean, Enum as SQLEnum, ForeignKey, Integer, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


class HybridPatternKind(str, Enum):
    """How the group/individual weeks were chosen."""

    ALTERNATING = "ALTERNATING"
    CUSTOM = "CUSTOM"


class HybridPattern(Base):
    """Splits the weeks of a HYBRID lesson into group and individual weeks."""

    __tablename__ = "hybrid_patterns"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    lesson_id: Mapped[int] = mapped_column(
        ForeignKey("lessons.id"), nullable=False, unique=True
    )
    term_id: Mapped[int] = mapped_column(ForeignKey("terms.id"), nullable=False)
    kind: Mapped[HybridPatternKind] = mapped_column(
        SQLEnum(HybridPatternKind), default=HybridPatternKind.CUSTOM, nullable=False
    )
    group_weeks: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)
    individual_weeks: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)
    individual_slot_duration: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    booking_deadline_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=24)
    bookings_open: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Relationships
    lesson: Mapped["Lesson"] = relationship("Lesson", back_populates="hybrid_pattern")

    def __repr__(self) -> str:
        return (
            f"<HybridPattern(id={self.id}, lesson_id={self.lesson_id}, kind={self.kind}, "
            f"group={self.group_weeks}, individual={self.individual_weeks})>"
        )
