"""
Job handlers registered in the job registry.

Handlers receive a validated payload model and raise on failure; retry and
dead-letter decisions belong to the job processor.
"""

import logging
from collections.abc import Mapping
from datetime import date
from typing import Protocol

from dashboard_jobs.apps.service import ApplicationRegistry
from dashboard_jobs.integrations.github import PullRequestDetails
from dashboard_jobs.jobs.schemas import (
    E2EReportPayload,
    NotificationPayload,
    PullRequestSyncPayload,
)
from dashboard_jobs.notifications.service import NotificationStore
from dashboard_jobs.pull_requests.service import PullRequestStore
from dashboard_jobs.reports.aggregation import AppRunStats, RunRecord, aggregate_runs, summarize
from dashboard_jobs.reports.models import ReportStatus
from dashboard_jobs.reports.service import ReportStore

logger = logging.getLogger(__name__)


class CIDashboardClient(Protocol):
    async def get_daily_runs_per_application(
        self,
        report_date: date,
        projects: Mapping[str, str],
        lookback_days: int = 14,
    ) -> dict[str, list[RunRecord]]: ...


class PullRequestSource(Protocol):
    async def get_pull_request(self, repository: str, number: int) -> PullRequestDetails: ...


class E2EReportHandler:
    """
    Builds the daily E2E report for one date.

    Payload expected:
    {
        "date": "2024-01-15",
        "requestId": "optional-correlation-id",
        "forceRecompute": false
    }

    The summary row is created as ``pending`` and only switched to ``ready``
    after every watched application's detail row has been written. Any
    failure leaves it ``pending`` so a retry (or the next run) finishes it.
    """

    payload_model = E2EReportPayload

    def __init__(
        self,
        applications: ApplicationRegistry,
        reports: ReportStore,
        ci_client: CIDashboardClient,
        lookback_days: int = 14,
    ):
        self.applications = applications
        self.reports = reports
        self.ci_client = ci_client
        self.lookback_days = lookback_days

    async def handle(self, payload: E2EReportPayload) -> None:
        report_date = payload.report_date
        log_extra = {"date": report_date.isoformat(), "request_id": payload.request_id}

        apps = await self.applications.get_watching_applications()
        if not apps:
            logger.warning("No watching applications, skipping report", extra=log_extra)
            return

        summary = await self.reports.get_or_create_summary(report_date)
        if summary.status == ReportStatus.READY.value and not payload.force_recompute:
            logger.info(
                "Report already generated, skipping",
                extra={**log_extra, "summary_id": summary.id},
            )
            return

        if summary.status != ReportStatus.PENDING.value:
            await self.reports.update_summary(summary.id, status=ReportStatus.PENDING.value)

        runs = await self.ci_client.get_daily_runs_per_application(
            report_date,
            {app.code: app.name for app in apps},
            lookback_days=self.lookback_days,
        )

        stats: list[AppRunStats] = []
        for app in apps:
            app_stats = aggregate_runs(runs.get(app.code, []))
            await self.reports.create_or_update_detail(summary.id, app.id, app_stats)
            stats.append(app_stats)

        await self.reports.delete_details_except(summary.id, [app.id for app in apps])

        totals = summarize(stats)
        await self.reports.update_summary(
            summary.id,
            status=ReportStatus.READY.value,
            total_runs=totals.total_runs,
            passed_runs=totals.passed_runs,
            failed_runs=totals.failed_runs,
            success_rate=totals.success_rate,
        )

        logger.info(
            "E2E report generated",
            extra={
                **log_extra,
                "summary_id": summary.id,
                "applications": len(apps),
                "total_runs": totals.total_runs,
                "success_rate": totals.success_rate,
            },
        )


class NotificationHandler:
    """Creates one notification record per job."""

    payload_model = NotificationPayload

    def __init__(self, notifications: NotificationStore):
        self.notifications = notifications

    async def handle(self, payload: NotificationPayload) -> None:
        await self.notifications.create(payload)


class PullRequestSyncHandler:
    """
    Refreshes the cached state of one pull request from GitHub.

    Merged pull requests are removed from the cache when ``deleteIfMerged``
    is set, otherwise their latest state is stored.
    """

    payload_model = PullRequestSyncPayload

    def __init__(self, github: PullRequestSource, pull_requests: PullRequestStore):
        self.github = github
        self.pull_requests = pull_requests

    async def handle(self, payload: PullRequestSyncPayload) -> None:
        details = await self.github.get_pull_request(
            payload.repository, payload.pull_request_number
        )

        if details.merged and payload.delete_if_merged:
            await self.pull_requests.delete(payload.repository, payload.pull_request_number)
            return

        await self.pull_requests.upsert_state(payload.repository, details)
