"""Operator control of a running batch: pause, resume and cancel.

State machine::

    RUNNING --pause--> PAUSED --resume--> RUNNING
    RUNNING/PAUSED --cancel--> CANCELLED   (terminal)

Cancellation is cooperative. Nothing is interrupted preemptively; the
orchestrator checks the channel before dispatch, while waiting for a
limiter slot and during backoff, and executors observe it through the
``CancelHook`` they are handed with every attempt.
"""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Callable

from batchpilot.core.errors import AttemptCancelledError, BatchCancelledError
from batchpilot.core.logging import get_logger
from batchpilot.core.models import ControlState

_logger = get_logger("control")


class CancelHook:
    """Read-only view of the control channel handed to executors.

    Executors call ``before_step()`` at their own suspension points (between
    page navigations, say) so an in-flight attempt stops promptly once the
    batch is cancelled.
    """

    def __init__(self, control: ControlChannel) -> None:
        self._control = control

    @property
    def is_cancelled(self) -> bool:
        return self._control.is_cancelled

    def before_step(self) -> None:
        """Raise AttemptCancelledError if the batch has been cancelled."""
        if self._control.is_cancelled:
            raise AttemptCancelledError("batch cancelled")

    async def wait_cancelled(self) -> None:
        await self._control.wait_cancelled()


class ControlChannel:
    """Pause/resume/cancel signal shared by the orchestrator and its tasks.

    Must be created and used from a single event loop; signal handlers
    call into it through ``loop.add_signal_handler``.
    """

    def __init__(self) -> None:
        self._state = ControlState.RUNNING
        self._not_paused = asyncio.Event()
        self._not_paused.set()
        self._cancelled = asyncio.Event()

    @property
    def state(self) -> ControlState:
        return self._state

    @property
    def is_cancelled(self) -> bool:
        return self._state is ControlState.CANCELLED

    @property
    def is_paused(self) -> bool:
        return self._state is ControlState.PAUSED

    def pause(self) -> bool:
        """Stop new dispatches. In-flight attempts keep running."""
        if self._state is not ControlState.RUNNING:
            _logger.debug("control.pause_ignored", state=self._state.value)
            return False
        self._state = ControlState.PAUSED
        self._not_paused.clear()
        _logger.info("control.paused")
        return True

    def resume(self) -> bool:
        """Allow dispatch again after a pause."""
        if self._state is not ControlState.PAUSED:
            _logger.debug("control.resume_ignored", state=self._state.value)
            return False
        self._state = ControlState.RUNNING
        self._not_paused.set()
        _logger.info("control.resumed")
        return True

    def cancel(self) -> bool:
        """Cancel the batch. Terminal; repeated calls are no-ops."""
        if self._state is ControlState.CANCELLED:
            return False
        previous = self._state
        self._state = ControlState.CANCELLED
        self._cancelled.set()
        # wake anything parked on a pause so it observes the cancel
        self._not_paused.set()
        _logger.warning("control.cancelled", previous_state=previous.value)
        return True

    def toggle_pause(self) -> bool:
        """Pause when running, resume when paused."""
        if self._state is ControlState.PAUSED:
            return self.resume()
        return self.pause()

    async def wait_until_runnable(self) -> None:
        """Suspend while paused.

        Raises:
            BatchCancelledError: If the batch is (or becomes) cancelled.
        """
        while True:
            if self.is_cancelled:
                raise BatchCancelledError("batch cancelled")
            if self._state is ControlState.RUNNING:
                return
            await self._not_paused.wait()

    async def wait_cancelled(self) -> None:
        await self._cancelled.wait()

    async def sleep(self, delay: float) -> bool:
        """Sleep for ``delay`` seconds unless cancelled first.

        Returns:
            True if the full delay elapsed, False if it was cut short by
            a cancel.
        """
        if self.is_cancelled:
            return False
        if delay <= 0:
            return True
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=delay)
        except TimeoutError:
            return True
        return False

    def hook(self) -> CancelHook:
        return CancelHook(self)


def install_signal_handlers(
    control: ControlChannel,
    loop: asyncio.AbstractEventLoop | None = None,
) -> Callable[[], None]:
    """Route SIGINT/SIGTERM to cancel and SIGUSR1 to pause/resume.

    Only effective on POSIX event loops; elsewhere nothing is installed.

    Returns:
        A callable that removes the installed handlers.
    """
    loop = loop or asyncio.get_running_loop()
    installed: list[signal.Signals] = []

    def _on_cancel(sig: signal.Signals) -> None:
        _logger.info("control.signal_received", signal=sig.name)
        control.cancel()

    def _on_toggle() -> None:
        _logger.info("control.signal_received", signal="SIGUSR1")
        control.toggle_pause()

    handlers: list[tuple[signal.Signals, Callable[..., None], tuple[object, ...]]] = [
        (signal.SIGINT, _on_cancel, (signal.SIGINT,)),
        (signal.SIGTERM, _on_cancel, (signal.SIGTERM,)),
    ]
    sigusr1 = getattr(signal, "SIGUSR1", None)
    if sigusr1 is not None:
        handlers.append((sigusr1, _on_toggle, ()))

    for sig, callback, args in handlers:
        try:
            loop.add_signal_handler(sig, callback, *args)
        except (NotImplementedError, RuntimeError):
            _logger.debug("control.signal_handler_unsupported", signal=sig.name)
            continue
        installed.append(sig)

    def _remove() -> None:
        for sig in installed:
            loop.remove_signal_handler(sig)
        installed.clear()

    return _remove


__all__ = ["CancelHook", "ControlChannel", "install_signal_handlers"]
