"""Audit log model."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class AuditLog(Base):
    """One recorded change to a lesson, enrollment, booking or hybrid pattern."""

    __tablename__ = "audit_log"
    __table_args__ = (
        Index("idx_audit_school_entity", "school_id", "entity_type", "entity_id"),
        Index("idx_audit_school_time", "school_id", "timestamp"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    school_id: Mapped[int] = mapped_column(Integer, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    # Actor: admin, teacher, parent or system
    user_type: Mapped[str] = mapped_column(String(20), nullable=False, default="admin")
    user_id: Mapped[Optional[int]] = mapped_column(Integer)
    user_name: Mapped[str] = mapped_column(String(200), nullable=False)

    action_type: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    entity_type: Mapped[str] = mapped_column(String(30), nullable=False)
    entity_id: Mapped[Optional[int]] = mapped_column(Integer)
    entity_name: Mapped[Optional[str]] = mapped_column(String(300))
    description: Mapped[str] = mapped_column(Text, nullable=False)
    # {"before": {...}, "after": {...}}
    changes_json: Mapped[Optional[dict]] = mapped_column(JSON)

    def __repr__(self) -> str:
        return (
            f"<AuditLog(id={self.id}, school={self.school_id}, {self.action_type} "
            f"{self.entity_type}#{self.entity_id} by {self.user_type}:{self.user_name})>"
        )
