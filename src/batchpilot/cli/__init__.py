"""batchpilot CLI.

Built with Typer. Global options (``--version``, ``--log-level``,
``--log-format``, ``--log-file``) are handled by the app callback, which
configures logging once before any command runs.

Package structure:
    cli/
    ├── __init__.py      # app assembly
    ├── helpers.py       # logging state, config loading
    ├── output.py        # rich console, progress, reports
    └── commands/
        ├── concurrency.py
        └── simulate.py
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from batchpilot import __version__

from .commands import concurrency, simulate
from .helpers import (
    configure_global_logging,
    set_log_file,
    set_log_format,
    set_log_level,
)
from .output import console

# =============================================================================
# Typer app definition
# =============================================================================

app = typer.Typer(
    name="batchpilot",
    help="Batch orchestrator for long-running browser profile tasks",
    add_completion=False,
)


# =============================================================================
# Global option callbacks
# =============================================================================


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"batchpilot v{__version__}")
        raise typer.Exit()


def log_level_callback(value: str | None) -> str | None:
    if value:
        set_log_level(value)
    return value


def log_file_callback(value: Path | None) -> Path | None:
    if value:
        set_log_file(value)
    return value


def log_format_callback(value: str | None) -> str | None:
    if value:
        set_log_format(value)
    return value


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log-level",
            "-L",
            callback=log_level_callback,
            help="Logging level (DEBUG, INFO, WARNING, ERROR)",
            envvar="BATCHPILOT_LOG_LEVEL",
        ),
    ] = None,
    log_file: Annotated[
        Path | None,
        typer.Option(
            "--log-file",
            callback=log_file_callback,
            help="Path for log file output",
            envvar="BATCHPILOT_LOG_FILE",
        ),
    ] = None,
    log_format: Annotated[
        str | None,
        typer.Option(
            "--log-format",
            callback=log_format_callback,
            help="Log format: json, console, or both",
            envvar="BATCHPILOT_LOG_FORMAT",
        ),
    ] = None,
) -> None:
    """batchpilot - run large batches of profile tasks under bounded concurrency."""
    configure_global_logging(console)


# =============================================================================
# Command registration
# =============================================================================

app.command()(concurrency)
app.command()(simulate)


__all__ = ["app", "main", "console"]
