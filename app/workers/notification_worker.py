"""
Worker that delivers queued notifications from the outbox.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import AsyncSessionLocal
from app.core.settings import settings
from app.models import NotificationOutbox, NotificationStatus

logger = logging.getLogger(__name__)


class NotificationWorker:
    """Polls PENDING outbox rows and posts them to the notification webhook.

    Without a webhook URL the notification is only logged and marked SENT.
    A row that keeps failing is marked FAILED after ``max_attempts`` tries.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        webhook_url: Optional[str] = None,
        max_attempts: Optional[int] = None,
        batch_size: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.session_factory = session_factory
        self.webhook_url = webhook_url if webhook_url is not None else settings.notification_webhook_url
        self.max_attempts = max_attempts or settings.notification_max_attempts
        self.batch_size = batch_size or settings.notification_batch_size
        self.transport = transport
        self.scheduler = AsyncIOScheduler(timezone=settings.timezone)
        self.is_running = False

    async def _deliver(self, client: Optional[httpx.AsyncClient], row: NotificationOutbox) -> None:
        body = {
            "id": row.id,
            "school_id": row.school_id,
            "type": row.notification_type.value,
            "payload": row.payload,
            "idempotency_key": row.idempotency_key,
        }
        if client is None:
            logger.info(f"📨 [no webhook] {row.notification_type.value} for school {row.school_id}: {row.payload}")
            return

        response = await client.post(self.webhook_url, json=body, timeout=10.0)
        response.raise_for_status()

    async def process_batch(self) -> int:
        """Deliver one batch; returns the number of rows sent."""
        sent = 0
        async with self.session_factory() as db:
            result = await db.execute(
                select(NotificationOutbox)
                .where(
                    NotificationOutbox.status == NotificationStatus.PENDING,
                    NotificationOutbox.send_attempts < self.max_attempts,
                )
                .order_by(NotificationOutbox.created_at.asc(), NotificationOutbox.id.asc())
                .with_for_update(skip_locked=True)
                .limit(self.batch_size)
            )
            rows = result.scalars().all()
            if not rows:
                return 0

            client = httpx.AsyncClient(transport=self.transport) if self.webhook_url else None
            try:
                for row in rows:
                    row.send_attempts += 1
                    try:
                        await self._deliver(client, row)
                    except httpx.HTTPError as e:
                        row.last_error = str(e)[:1000]
                        if row.send_attempts >= self.max_attempts:
                            row.status = NotificationStatus.FAILED
                            logger.error(f"❌ Notification {row.id} failed permanently: {e}")
                        else:
                            logger.warning(
                                f"Notification {row.id} delivery failed "
                                f"(attempt {row.send_attempts}/{self.max_attempts}): {e}"
                            )
                        continue

                    row.status = NotificationStatus.SENT
                    row.sent_at = datetime.now(timezone.utc)
                    row.last_error = None
                    sent += 1
            finally:
                if client is not None:
                    await client.aclose()

            await db.commit()

        if sent:
            logger.info(f"✅ Delivered {sent}/{len(rows)} notifications")
        return sent

    async def _tick(self) -> None:
        try:
            await self.process_batch()
        except Exception as e:
            logger.error(f"Error in notification polling: {e}")
            logger.exception(e)

    def start(self) -> None:
        if self.is_running:
            logger.warning("Notification worker is already running")
            return

        self.scheduler.add_job(
            self._tick,
            IntervalTrigger(seconds=settings.notification_poll_seconds),
            id="deliver_notifications",
            name="Deliver queued notifications",
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(timezone.utc),
        )
        self.scheduler.start()
        self.is_running = True
        logger.info(
            f"🚀 Notification worker started (every {settings.notification_poll_seconds}s, "
            f"webhook={'on' if self.webhook_url else 'off'})"
        )

    def stop(self) -> None:
        if not self.is_running:
            return
        self.scheduler.shutdown(wait=False)
        self.is_running = False
        logger.info("🛑 Notification worker stopped")


async def main():
    """Run the worker until interrupted."""
    worker = NotificationWorker()
    worker.start()
    try:
        await asyncio.Event().wait()
    finally:
        worker.stop()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    asyncio.run(main())
