"""Batch configuration models.

Pydantic v2 models for everything the orchestrator recognises: concurrency
sizing, retry and timeout behaviour, execution mode, progress cadence and
the closed set of execution strategies. Configs load from YAML:

    max_retries: 3
    retry_base_delay_ms: 1000
    attempt_timeout_ms: 60000
    mode: worker-pool
    worker_count: 4
    strategies:
      - name: real-session
        prior: 0.95
      - name: minimal
        prior: 0.85
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from batchpilot.core.errors import ConfigurationError


class ExecutionMode(str, Enum):
    """How attempts are scheduled."""

    IN_PROCESS = "in-process"
    """Every attempt is a coroutine in one event loop, gated by the limiter."""

    WORKER_POOL = "worker-pool"
    """A fixed pool of workers pulls tasks from a bounded queue."""


class StrategySpec(BaseModel):
    """One named way of accomplishing a task.

    ``prior`` is the score an untested strategy receives, so strategies
    with no history are still eligible and ranked by preference.
    """

    model_config = {"frozen": True}

    name: str = Field(min_length=1, description="Unique strategy name")
    prior: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Score used before any attempt has been recorded",
    )


DEFAULT_STRATEGIES: tuple[StrategySpec, ...] = (
    StrategySpec(name="real-session", prior=0.95),
    StrategySpec(name="minimal", prior=0.85),
    StrategySpec(name="cdp-direct", prior=0.80),
)


class BatchConfig(BaseModel):
    """Configuration for one batch run."""

    max_concurrency: int | None = Field(
        default=None,
        ge=1,
        description="Override the auto-computed concurrency limit",
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        description="A failure is retried while attempt number < max_retries",
    )
    retry_base_delay_ms: int = Field(
        default=1000,
        ge=0,
        description="Base of the exponential backoff: delay = base * 2^attempt",
    )
    attempt_timeout_ms: int = Field(
        default=60_000,
        gt=0,
        description="Wall-clock limit for a single attempt",
    )
    mode: ExecutionMode = Field(
        default=ExecutionMode.IN_PROCESS,
        description="in-process or worker-pool scheduling",
    )
    worker_count: int | None = Field(
        default=None,
        ge=1,
        description="Number of workers (worker-pool mode only; defaults to the limit)",
    )
    per_task_memory_gb: float = Field(
        default=0.5,
        gt=0,
        description="Memory one browser session is assumed to need",
    )
    external_service_cap: int = Field(
        default=10,
        ge=1,
        description="Vendor-imposed cap on simultaneously open browser sessions",
    )
    progress_interval_seconds: float = Field(
        default=1.5,
        ge=0.01,
        description="Interval between progress snapshots sent to observers",
    )
    cancel_grace_seconds: float = Field(
        default=10.0,
        ge=0,
        description="How long in-flight attempts get to observe a cancel before "
        "they are reported as ignoring it",
    )
    escalation_threshold: int = Field(
        default=2,
        ge=1,
        description="Distinct exhausted strategies before an identity needs manual handling",
    )
    strategies: list[StrategySpec] = Field(
        default_factory=lambda: list(DEFAULT_STRATEGIES),
        min_length=1,
        description="Closed, ordered set of strategies; order breaks score ties",
    )

    @field_validator("strategies")
    @classmethod
    def _unique_strategy_names(cls, value: list[StrategySpec]) -> list[StrategySpec]:
        names = [s.name for s in value]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"duplicate strategy names: {', '.join(duplicates)}")
        return value

    @model_validator(mode="after")
    def _worker_count_requires_pool(self) -> BatchConfig:
        if self.worker_count is not None and self.mode is not ExecutionMode.WORKER_POOL:
            raise ValueError("worker_count is only valid with mode='worker-pool'")
        return self

    @property
    def retry_base_delay_seconds(self) -> float:
        return self.retry_base_delay_ms / 1000.0

    @property
    def attempt_timeout_seconds(self) -> float:
        return self.attempt_timeout_ms / 1000.0

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> BatchConfig:
        """Validate a plain mapping, raising ConfigurationError on bad input."""
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f"invalid batch configuration: {e}") from e

    @classmethod
    def from_yaml(cls, path: Path) -> BatchConfig:
        """Load configuration from a YAML file.

        Raises:
            ConfigurationError: If the file is missing, unparseable, or invalid.
        """
        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise ConfigurationError(f"cannot read config {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"cannot parse config {path}: {e}") from e
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ConfigurationError(f"config {path} must be a mapping, got {type(raw).__name__}")
        return cls.from_mapping(raw)


class LogConfig(BaseModel):
    """Logging options exposed on the command line."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"
    format: Literal["json", "console", "both"] = "console"
    file: Path | None = None

    @model_validator(mode="after")
    def _both_needs_file(self) -> LogConfig:
        if self.format == "both" and self.file is None:
            raise ValueError("log format 'both' requires a log file")
        return self


__all__ = [
    "BatchConfig",
    "DEFAULT_STRATEGIES",
    "ExecutionMode",
    "LogConfig",
    "StrategySpec",
]
