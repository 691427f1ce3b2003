"""Outbound notification outbox model."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Enum as SQLEnum, Index, Integer, JSON, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class NotificationStatus(str, Enum):
    """Outbox row status enum."""

    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class NotificationType(str, Enum):
    """Kinds of notifications produced by the scheduling core."""

    LESSON_RESCHEDULED = "LESSON_RESCHEDULED"
    INDIVIDUAL_SESSION_BOOKED = "INDIVIDUAL_SESSION_BOOKED"
    INDIVIDUAL_SESSION_RESCHEDULED = "INDIVIDUAL_SESSION_RESCHEDULED"
    INDIVIDUAL_SESSION_CANCELLED = "INDIVIDUAL_SESSION_CANCELLED"
    HYBRID_BOOKINGS_OPENED = "HYBRID_BOOKINGS_OPENED"


class NotificationOutbox(Base):
    """Notification waiting for delivery by the notification worker."""

    __tablename__ = "notification_outbox"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    school_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    notification_type: Mapped[NotificationType] = mapped_column(
        SQLEnum(NotificationType), nullable=False
    )
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[NotificationStatus] = mapped_column(
        SQLEnum(NotificationStatus), default=NotificationStatus.PENDING, nullable=False
    )

    # Reliability fields
    send_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    idempotency_key: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_notification_outbox_status_created", "status", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<NotificationOutbox(id={self.id}, type={self.notification_type}, "
            f"status={self.status}, attempts={self.send_attempts})>"
        )
