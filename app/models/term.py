"""Term model."""

from datetime import date

from sqlalchemy import Date, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class Term(Base):
    """A bounded date range within which recurring lessons run."""

    __tablename__ = "terms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    school_id: Mapped[int] = mapped_column(ForeignKey("schools.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    @property
    def total_weeks(self) -> int:
        """Number of (possibly partial) 7-day weeks covered by the term."""
        days = (self.end_date - self.start_date).days + 1
        return max(0, -(-days // 7))

    def __repr__(self) -> str:
        return (
            f"<Term(id={self.id}, name='{self.name}', "
            f"start={self.start_date}, end={self.end_date})>"
        )
