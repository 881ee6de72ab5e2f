"""Rich output formatting for the batchpilot CLI.

Holds the shared console, status colours, duration/ETA formatters, the
live progress observer and the final batch report.
"""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from batchpilot.core.models import BatchReport, BatchStats, TaskStatus, describe_outcome
from batchpilot.execution.limiter import HostResources

# =============================================================================
# Shared console instance
# =============================================================================

console = Console()

MAX_FAILURES_SHOWN = 5


class StatusColors:
    """Colour per task status and per report grade."""

    TASK_STATUS: dict[TaskStatus, str] = {
        TaskStatus.PENDING: "yellow",
        TaskStatus.DISPATCHED: "blue",
        TaskStatus.RUNNING: "blue",
        TaskStatus.RETRYING: "yellow",
        TaskStatus.SUCCEEDED: "green",
        TaskStatus.FAILED: "red",
        TaskStatus.CANCELLED: "magenta",
        TaskStatus.SKIPPED: "dim",
    }

    GRADE: dict[str, str] = {
        "excellent": "green",
        "good": "cyan",
        "fair": "yellow",
        "poor": "red",
    }

    @classmethod
    def for_status(cls, status: TaskStatus) -> str:
        return cls.TASK_STATUS.get(status, "white")


# =============================================================================
# Formatters
# =============================================================================


def format_duration(seconds: float | None) -> str:
    """Format a duration as "5.2s", "3m 12s" or "1h 30m"."""
    if seconds is None:
        return "N/A"

    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = int(seconds // 60)
        secs = int(seconds % 60)
        return f"{minutes}m {secs}s"
    else:
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        return f"{hours}h {minutes}m"


def format_throughput(per_second: float) -> str:
    """Tasks per minute, which reads better for multi-second attempts."""
    return f"{per_second * 60:.1f}/min"


# =============================================================================
# Live progress
# =============================================================================


def create_batch_progress(console_instance: Console | None = None) -> Progress:
    """Progress bar for a running batch (not yet started)."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(bar_width=30),
        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
        TextColumn("•"),
        TextColumn("{task.completed}/{task.total} tasks"),
        TextColumn("•"),
        TextColumn("[green]{task.fields[succeeded]} ok[/green]"),
        TextColumn("[red]{task.fields[failed]} failed[/red]"),
        TextColumn("[blue]{task.fields[in_progress]} running[/blue]"),
        TextColumn("•"),
        TimeElapsedColumn(),
        TextColumn("•"),
        TextColumn("{task.fields[throughput]}"),
        TextColumn("ETA: {task.fields[eta]}"),
        console=console_instance or console,
        transient=False,
    )


class RichProgressObserver:
    """ProgressObserver that drives a rich progress bar from snapshots.

    Use as a context manager around the batch run so the bar is started
    and stopped with it.
    """

    def __init__(self, total: int, console_instance: Console | None = None) -> None:
        self.progress = create_batch_progress(console_instance)
        self._task_id = self.progress.add_task(
            "Processing",
            total=total,
            succeeded=0,
            failed=0,
            in_progress=0,
            throughput=format_throughput(0.0),
            eta="N/A",
        )
        self.updates = 0

    def __enter__(self) -> RichProgressObserver:
        self.progress.start()
        return self

    def __exit__(self, *exc: object) -> None:
        self.progress.stop()

    def on_snapshot(self, stats: BatchStats) -> None:
        self.updates += 1
        self.progress.update(
            self._task_id,
            completed=stats.completed,
            succeeded=stats.succeeded,
            failed=stats.failed,
            in_progress=stats.in_progress,
            throughput=format_throughput(stats.throughput),
            eta=format_duration(stats.eta_seconds),
        )


# =============================================================================
# Reports
# =============================================================================


def create_summary_table(report: BatchReport) -> Table:
    stats = report.stats
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Metric", style="bold")
    table.add_column("Value")

    average = stats.elapsed_seconds / stats.completed if stats.completed else None
    grade_color = StatusColors.GRADE[report.grade]

    table.add_row("Total tasks", str(stats.total))
    table.add_row("Succeeded", f"[green]{stats.succeeded}[/green]")
    table.add_row("Failed", f"[red]{stats.failed}[/red]")
    skipped = f"{stats.skipped}"
    if stats.cancelled:
        skipped += f" ({stats.cancelled} cancelled in flight)"
    table.add_row("Skipped", skipped)
    table.add_row("Attempts", f"{stats.attempts} ({stats.retries} retries)")
    table.add_row("Duration", format_duration(stats.elapsed_seconds))
    table.add_row("Avg per task", format_duration(average))
    table.add_row("Throughput", format_throughput(stats.throughput))
    table.add_row("Concurrency", str(report.max_concurrency))
    table.add_row(
        "Success rate",
        f"{report.success_rate:.1f}% [{grade_color}]({report.grade})[/{grade_color}]",
    )
    return table


def create_failures_table(report: BatchReport, limit: int = MAX_FAILURES_SHOWN) -> Table | None:
    failures = report.by_status(TaskStatus.FAILED)
    if not failures:
        return None
    title = "Failures" if len(failures) <= limit else f"Failures (first {limit} of {len(failures)})"
    table = Table(title=title, show_header=True, header_style="bold red")
    table.add_column("Task", style="cyan")
    table.add_column("Attempts", justify="right")
    table.add_column("Strategy")
    table.add_column("Error")
    for result in failures[:limit]:
        table.add_row(
            result.task.task_id,
            str(result.attempts),
            result.strategy or "-",
            describe_outcome(result.outcome),
        )
    return table


def render_report(report: BatchReport, console_instance: Console | None = None) -> None:
    """Print the final batch summary and the first few failures."""
    out = console_instance or console
    if report.cancelled:
        title, border = "Batch Cancelled", "yellow"
    elif report.ok:
        title, border = "Batch Complete", "green"
    else:
        title, border = "Batch Failed", "red"
    out.print(Panel(create_summary_table(report), title=title, border_style=border))

    failures = create_failures_table(report)
    if failures is not None:
        out.print(failures)


def render_concurrency(
    resources: HostResources,
    memory_bound: int,
    cpu_bound: int,
    service_cap: int,
    limit: int,
    console_instance: Console | None = None,
) -> None:
    """Print how the concurrency limit was derived."""
    out = console_instance or console
    table = Table(title="Concurrency", show_header=True, header_style="bold")
    table.add_column("Bound")
    table.add_column("Input")
    table.add_column("Slots", justify="right")
    table.add_row("Memory", f"{resources.available_memory_gb:.1f} GB available", str(memory_bound))
    table.add_row("CPU", f"{resources.cpu_count} logical cores", str(cpu_bound))
    table.add_row("Service cap", "browser farm limit", str(service_cap))
    table.add_row("[bold]Limit[/bold]", "", f"[bold]{limit}[/bold]")
    out.print(table)


__all__ = [
    "RichProgressObserver",
    "StatusColors",
    "console",
    "create_batch_progress",
    "format_duration",
    "format_throughput",
    "render_concurrency",
    "render_report",
]
