"""Dead-letter Commands - Inspect failed jobs"""

import asyncio

import typer
from rich.console import Console
from rich.panel import Panel

from dashboard_jobs.config.settings import get_settings
from dashboard_jobs.core.exceptions import DashboardJobsError
from dashboard_jobs.jobs.dead_letters import DeadLetterService, ReconciliationResult
from dashboard_jobs.jobs.schemas import DeadLetterEntry, JobType, QueueDepths
from dashboard_jobs.reports.service import SqlReportStore

from ..utils.connections import database_session, queue_store_session
from ..utils.formatting import (
    create_dead_letter_table,
    create_depths_table,
    print_error,
    print_info,
    print_success,
)

console = Console()
app = typer.Typer(name="dlq", help="Dead-letter queue inspection")


async def _list(job_type: JobType, start: int, count: int) -> list[DeadLetterEntry]:
    async with queue_store_session(get_settings()) as store:
        return await DeadLetterService(store).list(job_type, start, count)


async def _depths() -> list[QueueDepths]:
    async with queue_store_session(get_settings()) as store:
        return [await store.queue_depths(job_type) for job_type in JobType]


async def _reconcile() -> ReconciliationResult:
    settings = get_settings()
    async with queue_store_session(settings) as store, database_session(settings) as db:
        service = DeadLetterService(store, SqlReportStore(db.SessionLocal))
        return await service.reconcile_e2e_reports()


@app.command("list")
def list_dead_letters(
    job_type: JobType = typer.Argument(..., help="Job type"),
    start: int = typer.Option(0, "--start", "-s", min=0, help="Offset"),
    count: int = typer.Option(20, "--count", "-c", min=1, help="Entries to show"),
):
    """📋 List dead-lettered jobs (read-only)"""
    try:
        entries = asyncio.run(_list(job_type, start, count))
    except DashboardJobsError as e:
        print_error(f"Failed to read dead letters: {e.message}")
        raise typer.Exit(1) from None

    if not entries:
        console.print(Panel(
            f"📭 [green]No dead-lettered {job_type.value} jobs[/green]",
            title="Empty",
            border_style="green",
        ))
        return

    console.print(create_dead_letter_table(job_type.value, entries, start))
    print_info(f"Showing {len(entries)} entries from offset {start}")


@app.command("depths")
def show_depths():
    """📊 Show ready/delayed/dead sizes for every job type"""
    try:
        depths = asyncio.run(_depths())
    except DashboardJobsError as e:
        print_error(f"Failed to read queue depths: {e.message}")
        raise typer.Exit(1) from None

    console.print(create_depths_table(depths))


@app.command("reconcile")
def reconcile():
    """🧹 Mark pending E2E reports failed when their job was dead-lettered"""
    try:
        result = asyncio.run(_reconcile())
    except DashboardJobsError as e:
        print_error(f"Reconciliation failed: {e.message}")
        raise typer.Exit(1) from None

    print_info(f"Scanned {result.scanned} dead-lettered report jobs")
    if result.marked_failed:
        dates = ", ".join(d.isoformat() for d in result.marked_failed)
        print_success(f"Marked failed: {dates}")
    else:
        print_success("No pending reports needed updating")
