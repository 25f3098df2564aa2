"""
Job registry construction.

Handlers are wired to their stores and clients here and registered under
their job type. The lifecycle manager builds one registry per process.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dashboard_jobs.apps.service import SqlApplicationRegistry
from dashboard_jobs.config.settings import Settings
from dashboard_jobs.core.registries import JobRegistry
from dashboard_jobs.jobs.handlers import (
    CIDashboardClient,
    E2EReportHandler,
    NotificationHandler,
    PullRequestSource,
    PullRequestSyncHandler,
)
from dashboard_jobs.jobs.schemas import JobType
from dashboard_jobs.notifications.service import SqlNotificationStore
from dashboard_jobs.pull_requests.service import SqlPullRequestStore
from dashboard_jobs.reports.service import SqlReportStore

logger = logging.getLogger(__name__)


def build_job_registry(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    ci_client: CIDashboardClient,
    github: PullRequestSource,
) -> JobRegistry:
    """Register a handler for every job type and freeze the registry."""

    logger.info("Registering job handlers")
    registry = JobRegistry()

    registry.register(
        JobType.E2E_REPORT,
        E2EReportHandler(
            applications=SqlApplicationRegistry(session_factory),
            reports=SqlReportStore(session_factory),
            ci_client=ci_client,
            lookback_days=settings.report_lookback_days,
        ),
    )

    registry.register(
        JobType.NOTIFICATION,
        NotificationHandler(SqlNotificationStore(session_factory)),
    )

    registry.register(
        JobType.PULL_REQUEST_SYNC,
        PullRequestSyncHandler(
            github=github, pull_requests=SqlPullRequestStore(session_factory)
        ),
    )

    registry.freeze()
    logger.info(
        "Job handlers registered",
        extra={"registered_handlers": [JobType(name).value for name in registry.list()]},
    )
    return registry
