"""CLI command implementations."""

from .concurrency import concurrency
from .simulate import simulate

__all__ = ["concurrency", "simulate"]
