"""Shared utilities for batchpilot."""
