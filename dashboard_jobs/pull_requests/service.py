import logging
from datetime import UTC, datetime
from typing import Protocol

from sqlalchemy import and_, delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dashboard_jobs.integrations.github import PullRequestDetails
from dashboard_jobs.pull_requests.models import PullRequest

logger = logging.getLogger(__name__)


class PullRequestStore(Protocol):
    async def upsert_state(
        self, repository: str, details: PullRequestDetails
    ) -> PullRequest: ...

    async def delete(self, repository: str, pull_request_number: int) -> bool: ...


class SqlPullRequestStore:
    """Cached pull request rows keyed by (repository, number)."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get(self, repository: str, pull_request_number: int) -> PullRequest | None:
        async with self.session_factory() as session:
            return await self._find(session, repository, pull_request_number)

    async def upsert_state(
        self, repository: str, details: PullRequestDetails
    ) -> PullRequest:
        """Insert or refresh the cached state of one pull request."""
        fields = {
            "title": details.title,
            "state": details.state,
            "is_draft": details.is_draft,
            "merged": details.merged,
            "merged_at": details.merged_at,
            "synced_at": datetime.now(UTC),
        }

        for attempt in range(2):
            async with self.session_factory() as session:
                pull_request = await self._find(session, repository, details.number)
                if pull_request is None:
                    pull_request = PullRequest(
                        repository=repository,
                        pull_request_number=details.number,
                        **fields,
                    )
                    session.add(pull_request)
                else:
                    for name, value in fields.items():
                        setattr(pull_request, name, value)

                try:
                    await session.commit()
                except IntegrityError:
                    await session.rollback()
                    if attempt:
                        raise
                    continue

                await session.refresh(pull_request)
                logger.info(
                    "Pull request state synced",
                    extra={
                        "repository": repository,
                        "number": details.number,
                        "state": details.state,
                    },
                )
                return pull_request

        raise RuntimeError("unreachable")

    async def delete(self, repository: str, pull_request_number: int) -> bool:
        """Delete the cached row. Returns False when nothing was cached."""
        async with self.session_factory() as session:
            result = await session.execute(
                delete(PullRequest).where(
                    and_(
                        PullRequest.repository == repository,
                        PullRequest.pull_request_number == pull_request_number,
                    )
                )
            )
            await session.commit()

        deleted = (result.rowcount or 0) > 0
        logger.info(
            "Pull request removed from cache" if deleted else "Pull request not cached",
            extra={"repository": repository, "number": pull_request_number},
        )
        return deleted

    async def _find(
        self, session: AsyncSession, repository: str, pull_request_number: int
    ) -> PullRequest | None:
        result = await session.execute(
            select(PullRequest).where(
                and_(
                    PullRequest.repository == repository,
                    PullRequest.pull_request_number == pull_request_number,
                )
            )
        )
        return result.scalar_one_or_none()
