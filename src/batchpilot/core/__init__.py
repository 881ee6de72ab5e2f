"""Core domain models, errors and configuration."""

from batchpilot.core.config import BatchConfig, ExecutionMode, LogConfig, StrategySpec
from batchpilot.core.errors import (
    AttemptCancelledError,
    BatchCancelledError,
    BatchPilotError,
    ConfigurationError,
    ErrorKind,
    TaskExecutionError,
)
from batchpilot.core.models import (
    BatchReport,
    BatchStats,
    Cancelled,
    ControlState,
    Failure,
    Outcome,
    Skipped,
    Success,
    Task,
    TaskResult,
    TaskStatus,
)

__all__ = [
    "AttemptCancelledError",
    "BatchCancelledError",
    "BatchConfig",
    "BatchPilotError",
    "BatchReport",
    "BatchStats",
    "Cancelled",
    "ConfigurationError",
    "ControlState",
    "ErrorKind",
    "ExecutionMode",
    "Failure",
    "LogConfig",
    "Outcome",
    "Skipped",
    "StrategySpec",
    "Success",
    "Task",
    "TaskExecutionError",
    "TaskResult",
    "TaskStatus",
]
