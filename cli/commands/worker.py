"""Worker Commands - Run job processors and retry schedulers"""

import asyncio

import typer

from dashboard_jobs.config.logging import setup_logging
from dashboard_jobs.config.settings import get_settings
from dashboard_jobs.core.exceptions import DashboardJobsError
from dashboard_jobs.jobs.lifecycle import LifecycleManager
from dashboard_jobs.jobs.schemas import JobType

from ..utils.formatting import print_error, print_info

app = typer.Typer(name="worker", help="Job worker process commands")


@app.command("run")
def run_worker(
    job_types: list[JobType] | None = typer.Option(
        None, "--job-type", "-j", help="Job type to consume (repeatable, default: all)"
    ),
    workers: int | None = typer.Option(
        None, "--workers", "-w", min=1, help="Processors per job type"
    ),
):
    """⚙️ Run processors and retry schedulers until interrupted"""
    settings = get_settings()
    if workers is not None:
        settings = settings.model_copy(update={"workers_per_job_type": workers})

    setup_logging(settings)
    selected = job_types or list(JobType)
    print_info(
        f"Starting workers for: {', '.join(t.value for t in selected)} "
        f"({settings.workers_per_job_type} per type)"
    )

    manager = LifecycleManager.from_settings(settings, job_types=selected)
    try:
        asyncio.run(manager.run_forever())
    except DashboardJobsError as e:
        print_error(f"Worker failed to start: {e.message}")
        raise typer.Exit(1) from None
