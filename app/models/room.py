"""Room model."""

from typing import Optional

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


class Room(Base):
    """Room where lessons take place."""

    __tablename__ = "rooms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    school_id: Mapped[int] = mapped_column(ForeignKey("schools.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    location_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    # Relationships
    lessons: Mapped[list["Lesson"]] = relationship("Lesson", back_populates="room")

    def __repr__(self) -> str:
        return f"<Room(id={self.id}, name='{self.name}', location='{self.location_name}')>"
