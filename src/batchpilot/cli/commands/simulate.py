"""Simulate command: run a synthetic batch end to end.

Drives ``BatchOrchestrator`` with ``SimulatedExecutor`` so the limiter,
retries, strategy selection and operator controls can be exercised
without a browser farm. Ctrl-C cancels the batch; SIGUSR1 toggles pause.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer

from batchpilot.core.config import BatchConfig, ExecutionMode
from batchpilot.core.models import BatchReport
from batchpilot.execution.control import ControlChannel, install_signal_handlers
from batchpilot.execution.orchestrator import BatchOrchestrator
from batchpilot.simulation import SimulatedExecutor, make_tasks

from ..helpers import load_batch_config
from ..output import RichProgressObserver, console, render_report


def simulate(
    tasks: int = typer.Option(20, "--tasks", "-n", min=0, help="Number of synthetic tasks"),
    failure_rate: float = typer.Option(
        0.1,
        "--failure-rate",
        "-f",
        min=0.0,
        max=1.0,
        help="Probability that an attempt fails transiently",
    ),
    config_file: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Batch configuration YAML",
        exists=True,
        dir_okay=False,
    ),
    mode: ExecutionMode | None = typer.Option(
        None,
        "--mode",
        "-m",
        help="Override the execution mode",
    ),
    concurrency: int | None = typer.Option(
        None,
        "--concurrency",
        min=1,
        help="Override the concurrency limit",
    ),
    seed: int | None = typer.Option(None, "--seed", help="Random seed for a reproducible run"),
    min_duration: float = typer.Option(0.05, "--min-duration", min=0.0, help="Seconds"),
    max_duration: float = typer.Option(0.2, "--max-duration", min=0.0, help="Seconds"),
    no_progress: bool = typer.Option(False, "--no-progress", help="Disable the progress bar"),
) -> None:
    """Run a synthetic batch and print the report. Exits 1 when the batch fails."""
    config = load_batch_config(config_file, console)
    overrides: dict[str, object] = {}
    if mode is not None and mode is not config.mode:
        overrides["mode"] = mode
        if mode is not ExecutionMode.WORKER_POOL:
            overrides["worker_count"] = None
    if concurrency is not None:
        overrides["max_concurrency"] = concurrency
    if overrides:
        config = BatchConfig.from_mapping({**config.model_dump(), **overrides})

    if max_duration < min_duration:
        console.print("[red]--max-duration must be >= --min-duration[/red]")
        raise typer.Exit(2)

    executor = SimulatedExecutor(
        min_duration=min_duration,
        max_duration=max_duration,
        failure_rate=failure_rate,
        seed=seed,
    )
    report = asyncio.run(_run_simulation(executor, config, tasks, show_progress=not no_progress))
    render_report(report)
    raise typer.Exit(report.exit_code)


async def _run_simulation(
    executor: SimulatedExecutor,
    config: BatchConfig,
    count: int,
    *,
    show_progress: bool,
) -> BatchReport:
    control = ControlChannel()
    remove_handlers = install_signal_handlers(control)
    task_list = make_tasks(count)
    try:
        if show_progress:
            with RichProgressObserver(len(task_list), console) as observer:
                orchestrator = BatchOrchestrator(
                    executor, config, observers=[observer], control=control
                )
                return await orchestrator.run(task_list, batch_id="simulation")
        orchestrator = BatchOrchestrator(executor, config, control=control)
        return await orchestrator.run(task_list, batch_id="simulation")
    finally:
        remove_handlers()
