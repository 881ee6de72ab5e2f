"""Time utilities for batchpilot.

Provides timezone-aware datetime helpers so that recency math in the
strategy selector never mixes naive and aware timestamps.
"""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime.

    Returns:
        datetime: Current UTC time with tzinfo=UTC
    """
    return datetime.now(UTC)


def days_between(earlier: datetime, later: datetime) -> float:
    """Fractional days elapsed from ``earlier`` to ``later``."""
    return (later - earlier).total_seconds() / 86400.0
