"""Tests for batchpilot.core.logging."""

import json
import logging
from pathlib import Path

import pytest

from batchpilot.core.logging import (
    ExecutionContext,
    _add_context,
    _sanitize_event_dict,
    clear_context,
    configure_logging,
    get_current_context,
    get_logger,
    with_context,
)


class TestExecutionContext:
    """Tests for ExecutionContext."""

    def test_with_task_returns_copy(self):
        ctx = ExecutionContext(batch_id="nightly")
        scoped = ctx.with_task("profile-3", attempt=2)
        assert scoped.task_id == "profile-3"
        assert scoped.attempt == 2
        assert ctx.task_id is None
        assert scoped.run_id == ctx.run_id

    def test_to_dict_omits_unset_fields(self):
        data = ExecutionContext(batch_id="nightly", run_id="r1").to_dict()
        assert data["batch_id"] == "nightly"
        assert "task_id" not in data

    def test_with_context_restores_previous(self):
        clear_context()
        outer = ExecutionContext(batch_id="outer")
        with with_context(outer):
            with with_context(outer.with_task("t1")):
                assert get_current_context().task_id == "t1"
            assert get_current_context() is outer
        assert get_current_context() is None


class TestProcessors:
    """Tests for the structlog processors."""

    def test_sensitive_keys_redacted(self):
        event = {"event": "login", "password": "hunter2", "auth_token": "abc", "user": "u"}
        result = _sanitize_event_dict(None, "info", event)
        assert result["password"] == "[REDACTED]"
        assert result["auth_token"] == "[REDACTED]"
        assert result["user"] == "u"

    def test_nested_dict_redacted(self):
        event = {"event": "payload", "payload": {"cookie": "c", "profile": "p"}}
        result = _sanitize_event_dict(None, "info", event)
        assert result["payload"] == {"cookie": "[REDACTED]", "profile": "p"}

    def test_context_merged_without_overriding(self):
        with with_context(ExecutionContext(batch_id="b1", task_id="t1")):
            result = _add_context(None, "info", {"event": "x", "task_id": "explicit"})
        assert result["batch_id"] == "b1"
        assert result["task_id"] == "explicit"


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_both_requires_file(self):
        with pytest.raises(ValueError, match="file_path"):
            configure_logging(format="both")

    def test_json_file_output(self, tmp_path: Path):
        log_file = tmp_path / "logs" / "batch.log"
        configure_logging(level="INFO", format="json", file_path=log_file)

        logger = get_logger("orchestrator")
        with with_context(ExecutionContext(batch_id="nightly")):
            logger.info("orchestrator.batch_started", tasks=3, password="secret")

        for handler in logging.getLogger().handlers:
            handler.flush()
        lines = log_file.read_text().strip().splitlines()
        entry = json.loads(lines[-1])
        assert entry["event"] == "orchestrator.batch_started"
        assert entry["component"] == "orchestrator"
        assert entry["batch_id"] == "nightly"
        assert entry["tasks"] == 3
        assert entry["password"] == "[REDACTED]"
        assert "timestamp" in entry

    def test_level_filters_entries(self, tmp_path: Path):
        log_file = tmp_path / "batch.log"
        configure_logging(level="WARNING", format="json", file_path=log_file)
        logger = get_logger("limiter")
        logger.info("limiter.hidden")
        logger.warning("limiter.shown")
        for handler in logging.getLogger().handlers:
            handler.flush()
        content = log_file.read_text()
        assert "limiter.shown" in content
        assert "limiter.hidden" not in content


class TestPilotLogger:
    """Tests for the logger wrapper."""

    def test_bind_and_unbind(self):
        logger = get_logger("workers", worker_id=1)
        bound = logger.bind(task_id="t1")
        assert bound._context == {"component": "workers", "worker_id": 1, "task_id": "t1"}
        assert "worker_id" not in bound.unbind("worker_id")._context
        assert logger._context == {"component": "workers", "worker_id": 1}
