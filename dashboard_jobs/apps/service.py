import logging
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dashboard_jobs.apps.models import Application

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WatchedApplication:
    id: int
    code: str
    name: str


class ApplicationRegistry(Protocol):
    async def get_watching_applications(self) -> list[WatchedApplication]: ...


class SqlApplicationRegistry:
    """Reads watching applications from the dashboard database."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_watching_applications(self) -> list[WatchedApplication]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Application)
                .where(Application.watching.is_(True))
                .order_by(Application.id)
            )
            apps = result.scalars().all()

        logger.debug("Loaded watching applications", extra={"count": len(apps)})
        return [WatchedApplication(id=app.id, code=app.code, name=app.name) for app in apps]
