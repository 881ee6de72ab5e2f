"""batchpilot - concurrent batch runner for browser-profile automation tasks."""

__version__ = "0.4.0"

__all__ = ["__version__"]
