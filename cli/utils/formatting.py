"""Rich Formatting Utilities for CLI Output"""

from rich import box
from rich.console import Console
from rich.table import Table

from dashboard_jobs.jobs.schemas import DeadLetterEntry, QueueDepths

console = Console()


def print_success(message: str):
    """Print success message with green styling"""
    console.print(f"[green]✓ {message}[/green]")


def print_error(message: str):
    """Print error message with red styling"""
    console.print(f"[red]✗ {message}[/red]")


def print_warning(message: str):
    """Print warning message with yellow styling"""
    console.print(f"[yellow]⚠ {message}[/yellow]")


def print_info(message: str):
    """Print info message with blue styling"""
    console.print(f"[blue]ℹ {message}[/blue]")


def _truncate(text: str, length: int = 60) -> str:
    return text if len(text) <= length else text[: length - 3] + "..."


def create_dead_letter_table(job_type: str, entries: list[DeadLetterEntry], start: int = 0) -> Table:
    """Create a formatted table of dead-letter entries"""
    table = Table(title=f"Dead letters: {job_type}", box=box.ROUNDED)

    table.add_column("#", justify="right", style="dim")
    table.add_column("Envelope", justify="left", style="cyan", no_wrap=True)
    table.add_column("Retries", justify="center", style="magenta")
    table.add_column("Moved At", justify="left", style="yellow")
    table.add_column("Last Error", justify="left", style="red")
    table.add_column("Payload", justify="left", style="white")

    for offset, entry in enumerate(entries):
        payload = ", ".join(f"{k}={v}" for k, v in entry.envelope.payload.items())
        table.add_row(
            str(start + offset),
            entry.envelope.id[:12],
            str(entry.envelope.retry_count),
            entry.moved_at,
            _truncate(entry.last_error),
            _truncate(payload or "-", 40),
        )

    return table


def create_depths_table(depths: list[QueueDepths]) -> Table:
    table = Table(title="Queue depths", box=box.ROUNDED)

    table.add_column("Job Type", justify="left", style="cyan")
    table.add_column("Ready", justify="right", style="green")
    table.add_column("Delayed", justify="right", style="yellow")
    table.add_column("Dead", justify="right", style="red")

    for row in depths:
        table.add_row(row.job_type.value, str(row.ready), str(row.delayed), str(row.dead))

    return table
