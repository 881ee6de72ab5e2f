"""Adaptive strategy selection and its metrics store."""

from batchpilot.strategy.metrics import MetricsStore
from batchpilot.strategy.selector import StrategyScore, StrategySelector

__all__ = ["MetricsStore", "StrategyScore", "StrategySelector"]
