"""Tests for batchpilot.core.config."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from batchpilot.core.config import (
    DEFAULT_STRATEGIES,
    BatchConfig,
    ExecutionMode,
    LogConfig,
    StrategySpec,
)
from batchpilot.core.errors import ConfigurationError


class TestBatchConfigDefaults:
    """Tests for BatchConfig defaults."""

    def test_defaults(self):
        config = BatchConfig()
        assert config.max_concurrency is None
        assert config.max_retries == 3
        assert config.retry_base_delay_ms == 1000
        assert config.attempt_timeout_ms == 60_000
        assert config.mode is ExecutionMode.IN_PROCESS
        assert config.escalation_threshold == 2
        assert config.cancel_grace_seconds == 10.0

    def test_default_strategies(self):
        names = [s.name for s in BatchConfig().strategies]
        assert names == ["real-session", "minimal", "cdp-direct"]
        assert [s.prior for s in DEFAULT_STRATEGIES] == [0.95, 0.85, 0.80]

    def test_second_properties(self):
        config = BatchConfig(retry_base_delay_ms=250, attempt_timeout_ms=1500)
        assert config.retry_base_delay_seconds == 0.25
        assert config.attempt_timeout_seconds == 1.5


class TestBatchConfigValidation:
    """Tests for BatchConfig validation."""

    def test_rejects_zero_concurrency(self):
        with pytest.raises(ValidationError):
            BatchConfig(max_concurrency=0)

    def test_rejects_negative_retries(self):
        with pytest.raises(ValidationError):
            BatchConfig(max_retries=-1)

    def test_worker_count_requires_worker_pool(self):
        with pytest.raises(ValidationError, match="worker-pool"):
            BatchConfig(worker_count=4)

    def test_worker_count_with_pool(self):
        config = BatchConfig(mode="worker-pool", worker_count=4)
        assert config.mode is ExecutionMode.WORKER_POOL
        assert config.worker_count == 4

    def test_duplicate_strategy_names(self):
        with pytest.raises(ValidationError, match="duplicate"):
            BatchConfig(strategies=[{"name": "a"}, {"name": "a"}])

    def test_empty_strategies(self):
        with pytest.raises(ValidationError):
            BatchConfig(strategies=[])

    def test_prior_bounds(self):
        with pytest.raises(ValidationError):
            StrategySpec(name="x", prior=1.5)

    def test_from_mapping_wraps_errors(self):
        with pytest.raises(ConfigurationError, match="invalid batch configuration"):
            BatchConfig.from_mapping({"max_retries": "many"})


class TestBatchConfigYaml:
    """Tests for YAML loading."""

    def test_load(self, tmp_path: Path):
        path = tmp_path / "batch.yaml"
        path.write_text(
            "max_retries: 5\n"
            "mode: worker-pool\n"
            "worker_count: 2\n"
            "strategies:\n"
            "  - name: minimal\n"
            "    prior: 0.9\n"
        )
        config = BatchConfig.from_yaml(path)
        assert config.max_retries == 5
        assert config.worker_count == 2
        assert [s.name for s in config.strategies] == ["minimal"]

    def test_empty_file_gives_defaults(self, tmp_path: Path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert BatchConfig.from_yaml(path) == BatchConfig()

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigurationError, match="cannot read"):
            BatchConfig.from_yaml(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "bad.yaml"
        path.write_text("max_retries: [1,\n")
        with pytest.raises(ConfigurationError, match="cannot parse"):
            BatchConfig.from_yaml(path)

    def test_non_mapping(self, tmp_path: Path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ConfigurationError, match="must be a mapping"):
            BatchConfig.from_yaml(path)


class TestLogConfig:
    """Tests for LogConfig."""

    def test_both_requires_file(self):
        with pytest.raises(ValidationError):
            LogConfig(format="both")

    def test_both_with_file(self, tmp_path: Path):
        assert LogConfig(format="both", file=tmp_path / "x.log").format == "both"
