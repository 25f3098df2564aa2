"""Dashboard Jobs CLI - Main Entry Point"""

import asyncio

import typer
from rich.console import Console
from rich.panel import Panel

from dashboard_jobs.config.settings import get_settings
from dashboard_jobs.infra.redis import check_redis_connection, close_redis_client, create_redis_client

# Import command modules
from .commands import dlq, enqueue, worker
from .utils.formatting import print_error, print_info

console = Console()

# Create main Typer app
app = typer.Typer(
    name="dashboard-jobs",
    help="⚙️ Dashboard Jobs - background job worker and queue tools",
    rich_markup_mode="rich",
)

# Add command subapps
app.add_typer(worker.app, name="worker")
app.add_typer(enqueue.app, name="enqueue")
app.add_typer(dlq.app, name="dlq")


async def _ping_redis() -> bool:
    client = create_redis_client(get_settings())
    try:
        return await check_redis_connection(client)
    finally:
        await close_redis_client(client)


@app.command()
def status():
    """📊 Check queue store connectivity"""
    settings = get_settings()
    print_info(f"Checking Redis at: {settings.redis_url}")

    if not asyncio.run(_ping_redis()):
        print_error("Redis is not reachable")
        console.print(Panel(
            f"🚫 [red]Connection Failed[/red]\n\n"
            f"Make sure Redis is running at:\n"
            f"[blue]{settings.redis_url}[/blue]\n\n"
            f"Set [cyan]REDIS_URL[/cyan] to point at another instance.",
            title="Connection Error",
            border_style="red"
        ))
        raise typer.Exit(1)

    console.print(Panel(
        f"🚀 [green]Connected Successfully![/green]\n\n"
        f"• Version: [cyan]{settings.version}[/cyan]\n"
        f"• Environment: [yellow]{settings.environment}[/yellow]\n"
        f"• Key prefix: [blue]{settings.queue_key_prefix}[/blue]",
        title="System Status",
        border_style="green"
    ))


def _version_callback(value: bool) -> None:
    if value:
        from . import __version__
        console.print(f"Dashboard Jobs CLI v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: bool | None = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    ),
):
    """
    ⚙️ Dashboard Jobs CLI

    Run job workers, enqueue jobs and inspect dead-lettered work.
    """


if __name__ == "__main__":
    app()
