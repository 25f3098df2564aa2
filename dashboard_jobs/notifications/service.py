import logging
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dashboard_jobs.jobs.schemas import NotificationPayload
from dashboard_jobs.notifications.models import Notification

logger = logging.getLogger(__name__)


class NotificationStore(Protocol):
    async def create(self, payload: NotificationPayload) -> Notification: ...


class SqlNotificationStore:
    """Persists notifications in the dashboard database."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create(self, payload: NotificationPayload) -> Notification:
        async with self.session_factory() as session:
            notification = Notification(
                title=payload.title,
                message=payload.message,
                link=payload.link,
                type=payload.type,
                is_read=False,
            )
            session.add(notification)
            await session.commit()
            await session.refresh(notification)

        logger.info(
            "Notification created",
            extra={"notification_id": notification.id, "type": notification.type},
        )
        return notification
