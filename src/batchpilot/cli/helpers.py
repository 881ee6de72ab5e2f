"""Shared CLI state and helpers.

Global options are captured by typer callbacks into ``CliLoggingConfig``
and applied once, before any command runs.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

import typer
from rich.console import Console

from batchpilot.core.config import BatchConfig
from batchpilot.core.errors import ConfigurationError
from batchpilot.core.logging import configure_logging

# =============================================================================
# Logging configuration
# =============================================================================


@dataclass
class CliLoggingConfig:
    """Logging options collected from the global CLI flags."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"
    file: Path | None = None
    format: Literal["json", "console", "both"] = "console"
    configured: bool = False


_log_config = CliLoggingConfig()

_VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
_VALID_FORMATS = ("json", "console", "both")


def get_log_config() -> CliLoggingConfig:
    return _log_config


def set_log_level(level: str) -> None:
    level = level.upper()
    if level not in _VALID_LEVELS:
        raise typer.BadParameter(f"log level must be one of {', '.join(_VALID_LEVELS)}")
    _log_config.level = level  # type: ignore[assignment]


def set_log_file(path: Path | None) -> None:
    _log_config.file = path


def set_log_format(fmt: str) -> None:
    if fmt not in _VALID_FORMATS:
        raise typer.BadParameter(f"log format must be one of {', '.join(_VALID_FORMATS)}")
    _log_config.format = fmt  # type: ignore[assignment]


def configure_global_logging(console: Console) -> None:
    """Apply the collected logging options. Only configures once per session.

    Raises:
        typer.Exit: If logging configuration fails.
    """
    if _log_config.configured:
        return

    try:
        configure_logging(
            level=_log_config.level,
            format=_log_config.format,
            file_path=_log_config.file,
        )
        _log_config.configured = True
    except ValueError as e:
        console.print(f"[red]Logging configuration error:[/red] {e}")
        raise typer.Exit(1) from None


def reset_logging_state() -> None:
    """Reset logging state so tests can reconfigure."""
    _log_config.level = "WARNING"
    _log_config.file = None
    _log_config.format = "console"
    _log_config.configured = False


# =============================================================================
# Config loading
# =============================================================================


def load_batch_config(path: Path | None, console: Console) -> BatchConfig:
    """Load a batch config file (or defaults), exiting with code 2 when invalid."""
    if path is None:
        return BatchConfig()
    try:
        return BatchConfig.from_yaml(path)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(2) from None


__all__ = [
    "CliLoggingConfig",
    "configure_global_logging",
    "get_log_config",
    "load_batch_config",
    "reset_logging_state",
    "set_log_file",
    "set_log_format",
    "set_log_level",
]
