"""Enqueue Commands - Push jobs onto the ready queues"""

import asyncio
from datetime import UTC, date, datetime
from typing import Any

import typer

from dashboard_jobs.config.settings import get_settings
from dashboard_jobs.core.exceptions import DashboardJobsError
from dashboard_jobs.jobs.producer import JobProducer
from dashboard_jobs.jobs.schemas import JobType

from ..utils.connections import queue_store_session
from ..utils.formatting import print_error, print_success

app = typer.Typer(name="enqueue", help="Enqueue background jobs")


async def _enqueue(job_type: JobType, payload: dict[str, Any]) -> str:
    async with queue_store_session(get_settings()) as store:
        envelope = await JobProducer(store).enqueue(job_type, payload)
    return envelope.id


def _run(job_type: JobType, payload: dict[str, Any]) -> None:
    try:
        envelope_id = asyncio.run(_enqueue(job_type, payload))
    except DashboardJobsError as e:
        print_error(f"Failed to enqueue {job_type.value}: {e.message}")
        raise typer.Exit(1) from None

    print_success(f"Enqueued {job_type.value} job {envelope_id}")


@app.command("e2e-report")
def enqueue_e2e_report(
    report_date: datetime | None = typer.Argument(
        None, formats=["%Y-%m-%d"], help="Report date (default: today, UTC)"
    ),
    request_id: str | None = typer.Option(None, "--request-id", help="Correlation ID"),
    force: bool = typer.Option(False, "--force", help="Recompute a ready report"),
):
    """📊 Generate the E2E report for a date"""
    day: date = report_date.date() if report_date else datetime.now(UTC).date()
    payload: dict[str, Any] = {"date": day.isoformat(), "forceRecompute": force}
    if request_id:
        payload["requestId"] = request_id
    _run(JobType.E2E_REPORT, payload)


@app.command("notification")
def enqueue_notification(
    title: str = typer.Option(..., "--title", "-t", help="Notification title"),
    message: str = typer.Option(..., "--message", "-m", help="Notification body"),
    link: str | None = typer.Option(None, "--link", help="Optional link"),
    type: str = typer.Option("info", "--type", help="success|error|info|warning"),
):
    """🔔 Create a dashboard notification"""
    payload: dict[str, Any] = {"title": title, "message": message, "type": type}
    if link:
        payload["link"] = link
    _run(JobType.NOTIFICATION, payload)


@app.command("pr-sync")
def enqueue_pull_request_sync(
    repository: str = typer.Argument(..., help="Repository as owner/repo"),
    number: int = typer.Argument(..., help="Pull request number"),
    keep_merged: bool = typer.Option(
        False, "--keep-merged", help="Keep merged pull requests in the cache"
    ),
):
    """🔀 Refresh a cached pull request from GitHub"""
    _run(
        JobType.PULL_REQUEST_SYNC,
        {
            "repository": repository,
            "pullRequestNumber": number,
            "deleteIfMerged": not keep_merged,
        },
    )
