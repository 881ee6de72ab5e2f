"""Pattern-based classification of executor exceptions.

Executors should raise ``TaskExecutionError`` subclasses, but automation
code routinely lets library exceptions escape (driver disconnects, socket
timeouts, selector lookups). ``ErrorClassifier`` turns any exception into a
``Failure`` so a crash never takes the batch down with it.
"""

from __future__ import annotations

import asyncio
import re

from batchpilot.core.errors import ErrorKind, TaskExecutionError
from batchpilot.core.logging import get_logger
from batchpilot.core.models import Failure

_logger = get_logger("classifier")


# =============================================================================
# Default pattern strings, kept at module scope so they are reviewable as data.
# Checked in order: manual intervention wins over transient, which wins over
# strategy failures.
# =============================================================================

_DEFAULT_MANUAL_PATTERNS: list[str] = [
    r"captcha",
    r"recaptcha",
    r"human verification",
    r"2-step verification",
    r"two-factor",
    r"\b2fa\b",
    r"verify it'?s you",
    r"phone verification",
]

_DEFAULT_TRANSIENT_PATTERNS: list[str] = [
    r"timed? ?out",
    r"etimedout",
    r"econnrefused",
    r"econnreset",
    r"enotfound",
    r"network error",
    r"err_network",
    r"err_proxy",
    r"target closed",
    r"browser disconnected",
    r"protocol error",
    r"session (closed|not found)",
    r"too many requests",
    r"\b429\b",
    r"\b50[234]\b",
]

_DEFAULT_STRATEGY_PATTERNS: list[str] = [
    r"login failed",
    r"authentication failed",
    r"element not found",
    r"selector not found",
    r"button not found",
    r"navigation failed",
    r"page load error",
]


def _compile(patterns: list[str]) -> list[re.Pattern[str]]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


class ErrorClassifier:
    """Maps exceptions raised by an executor to ``Failure`` outcomes.

    Resolution order:
    1. ``TaskExecutionError`` keeps its own kind and retryability.
    2. ``TimeoutError`` / ``ConnectionError`` are transient.
    3. Message patterns: manual intervention, transient, strategy failure.
    4. Anything else is a crash and becomes a permanent failure carrying
       ``"<ExceptionType>: <message>"`` as diagnostic.
    """

    def __init__(
        self,
        manual_patterns: list[str] | None = None,
        transient_patterns: list[str] | None = None,
        strategy_patterns: list[str] | None = None,
    ) -> None:
        self._rules: list[tuple[ErrorKind, list[re.Pattern[str]]]] = [
            (
                ErrorKind.REQUIRES_MANUAL_INTERVENTION,
                _compile(manual_patterns or _DEFAULT_MANUAL_PATTERNS),
            ),
            (ErrorKind.TRANSIENT, _compile(transient_patterns or _DEFAULT_TRANSIENT_PATTERNS)),
            (
                ErrorKind.STRATEGY_FAILED,
                _compile(strategy_patterns or _DEFAULT_STRATEGY_PATTERNS),
            ),
        ]

    def classify(self, exc: BaseException) -> Failure:
        """Classify an exception into a Failure.

        Args:
            exc: The exception raised by the executor.

        Returns:
            Failure with kind, diagnostic message and retryability.
        """
        if isinstance(exc, TaskExecutionError):
            return Failure(kind=exc.kind, message=str(exc), retryable=exc.retryable)

        diagnostic = f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__

        if isinstance(exc, (TimeoutError, asyncio.TimeoutError, ConnectionError)):
            return Failure.of(ErrorKind.TRANSIENT, diagnostic)

        kind = self.match_message(str(exc))
        if kind is not None:
            return Failure.of(kind, diagnostic)

        _logger.debug("classifier.unrecognized_exception", error_type=type(exc).__name__)
        return Failure.of(ErrorKind.PERMANENT, diagnostic)

    def match_message(self, message: str) -> ErrorKind | None:
        """Return the first ErrorKind whose patterns match ``message``."""
        for kind, patterns in self._rules:
            if any(p.search(message) for p in patterns):
                return kind
        return None


__all__ = ["ErrorClassifier"]
