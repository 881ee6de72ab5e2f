"""Concurrency command: show how the limit is derived on this host."""

from __future__ import annotations

import json
from pathlib import Path

import typer

from batchpilot.execution.limiter import (
    HostResources,
    compute_max_concurrency,
    concurrency_bounds,
)

from ..helpers import load_batch_config
from ..output import console, render_concurrency


def concurrency(
    config_file: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Batch configuration YAML",
        exists=True,
        dir_okay=False,
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output as JSON",
    ),
) -> None:
    """Probe host resources and print the resulting concurrency limit."""
    config = load_batch_config(config_file, console)
    resources = HostResources.probe()
    memory_bound, cpu_bound, service_cap = concurrency_bounds(
        resources.available_memory_gb,
        resources.cpu_count,
        config.per_task_memory_gb,
        config.external_service_cap,
    )
    computed = compute_max_concurrency(
        resources.available_memory_gb,
        resources.cpu_count,
        config.per_task_memory_gb,
        config.external_service_cap,
    )
    limit = config.max_concurrency if config.max_concurrency is not None else computed

    if json_output:
        console.print(
            json.dumps(
                {
                    "available_memory_gb": round(resources.available_memory_gb, 2),
                    "cpu_count": resources.cpu_count,
                    "memory_bound": memory_bound,
                    "cpu_bound": cpu_bound,
                    "service_cap": service_cap,
                    "computed": computed,
                    "max_concurrency": limit,
                    "overridden": config.max_concurrency is not None,
                }
            ),
            soft_wrap=True,
        )
        return

    render_concurrency(resources, memory_bound, cpu_bound, service_cap, computed)
    if config.max_concurrency is not None:
        console.print(f"[yellow]Overridden by config:[/yellow] max_concurrency={limit}")
