"""Fire-and-forget notification queue backed by the notification outbox table."""

import logging
from typing import Any, Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import AsyncSessionLocal
from app.models import NotificationOutbox, NotificationStatus, NotificationType

logger = logging.getLogger(__name__)


class NotificationService:
    """Writes outbound notifications for the notification worker to deliver.

    Each enqueue runs in its own session, so it never joins (or breaks) the
    caller's transaction, and a failed enqueue is only logged.
    """

    def __init__(self, session_factory: Callable[[], AsyncSession] = AsyncSessionLocal):
        self.session_factory = session_factory

    async def enqueue(
        self,
        school_id: int,
        notification_type: NotificationType,
        payload: Dict[str, Any],
        idempotency_key: Optional[str] = None,
    ) -> Optional[int]:
        """Queue a notification; returns the outbox row id or None on failure."""
        try:
            async with self.session_factory() as session:
                row = NotificationOutbox(
                    school_id=school_id,
                    notification_type=notification_type,
                    payload=payload,
                    status=NotificationStatus.PENDING,
                    send_attempts=0,
                    idempotency_key=idempotency_key,
                )
                session.add(row)
                await session.commit()
                logger.info(f"📨 Queued {notification_type.value} notification {row.id} for school {school_id}")
                return row.id
        except Exception as e:
            logger.error(f"❌ Failed to queue {notification_type.value} notification: {e}")
            logger.exception(e)
            return None

    async def lesson_rescheduled(
        self,
        school_id: int,
        lesson_id: int,
        old_day_of_week: int,
        old_start_time: str,
        old_end_time: str,
        reason: Optional[str] = None,
    ) -> Optional[int]:
        return await self.enqueue(
            school_id,
            NotificationType.LESSON_RESCHEDULED,
            {
                "lesson_id": lesson_id,
                "old_day_of_week": old_day_of_week,
                "old_start_time": old_start_time,
                "old_end_time": old_end_time,
                "reason": reason,
            },
        )

    async def individual_session_booked(self, school_id: int, booking_id: int) -> Optional[int]:
        return await self.enqueue(
            school_id,
            NotificationType.INDIVIDUAL_SESSION_BOOKED,
            {"booking_id": booking_id},
            idempotency_key=f"booking_{booking_id}_booked",
        )

    async def individual_session_rescheduled(
        self, school_id: int, booking_id: int, old_date: str, old_time: str
    ) -> Optional[int]:
        return await self.enqueue(
            school_id,
            NotificationType.INDIVIDUAL_SESSION_RESCHEDULED,
            {"booking_id": booking_id, "old_date": old_date, "old_time": old_time},
        )

    async def individual_session_cancelled(
        self, school_id: int, booking_id: int, reason: Optional[str] = None
    ) -> Optional[int]:
        return await self.enqueue(
            school_id,
            NotificationType.INDIVIDUAL_SESSION_CANCELLED,
            {"booking_id": booking_id, "reason": reason},
            idempotency_key=f"booking_{booking_id}_cancelled",
        )

    async def hybrid_bookings_opened(self, school_id: int, lesson_id: int) -> Optional[int]:
        return await self.enqueue(
            school_id,
            NotificationType.HYBRID_BOOKINGS_OPENED,
            {"lesson_id": lesson_id},
        )
