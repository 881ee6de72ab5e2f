"""Pytest fixtures for batchpilot tests."""

import logging
from collections.abc import Generator

import pytest
import structlog

from batchpilot.core.config import BatchConfig, StrategySpec
from batchpilot.core.models import Task
from tests.helpers import make_task_list


@pytest.fixture(autouse=True)
def reset_logging_state() -> Generator[None, None, None]:
    """Reset logging state before and after each test.

    This ensures test isolation for logging configuration.
    """
    from batchpilot.cli import helpers as cli_helpers

    cli_helpers.reset_logging_state()

    # Reset structlog to default state
    structlog.reset_defaults()

    # Clear all handlers from root logger
    root_logger = logging.getLogger()
    original_handlers = root_logger.handlers[:]
    original_level = root_logger.level
    for handler in original_handlers:
        root_logger.removeHandler(handler)

    yield

    cli_helpers.reset_logging_state()
    structlog.reset_defaults()

    # Restore original handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in original_handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(original_level)


@pytest.fixture
def strategies() -> list[StrategySpec]:
    """The default strategy set: real-session, minimal, cdp-direct."""
    return [
        StrategySpec(name="real-session", prior=0.95),
        StrategySpec(name="minimal", prior=0.85),
        StrategySpec(name="cdp-direct", prior=0.80),
    ]


@pytest.fixture
def fast_config() -> BatchConfig:
    """Config with millisecond delays so orchestrator tests run quickly."""
    return BatchConfig(
        max_concurrency=3,
        max_retries=3,
        retry_base_delay_ms=1,
        attempt_timeout_ms=2_000,
        progress_interval_seconds=0.01,
        cancel_grace_seconds=1.0,
    )


@pytest.fixture
def tasks() -> list[Task]:
    """Ten tasks named task-1 .. task-10."""
    return make_task_list(10)
