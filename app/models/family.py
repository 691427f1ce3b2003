"""Family and parent models."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


class Family(Base):
    """Family groups parents (guardians) with their children."""

    __tablename__ = "families"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    school_id: Mapped[int] = mapped_column(ForeignKey("schools.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Relationships
    parents: Mapped[list["Parent"]] = relationship(
        "Parent", back_populates="family", order_by="Parent.id"
    )
    students: Mapped[list["Student"]] = relationship("Student", back_populates="family")

    def __repr__(self) -> str:
        return f"<Family(id={self.id}, name='{self.name}')>"


class Parent(Base):
    """Parent (guardian) account within a family."""

    __tablename__ = "parents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    school_id: Mapped[int] = mapped_column(ForeignKey("schools.id"), nullable=False, index=True)
    family_id: Mapped[Optional[int]] = mapped_column(ForeignKey("families.id"), nullable=True)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    family: Mapped[Optional["Family"]] = relationship("Family", back_populates="parents")

    def __repr__(self) -> str:
        return f"<Parent(id={self.id}, name='{self.full_name}', family_id={self.family_id})>"
