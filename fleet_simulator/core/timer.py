"""Cancellable fixed-period tasks used for heartbeat, telemetry and schedule ticks."""

import asyncio
import logging
from typing import Callable, Optional

_LOGGER = logging.getLogger(__name__)


class RecurringTask:
    """Run a synchronous callback every `interval` seconds on the event loop.

    The callback runs to completion between two awaits, so cancelling the
    task guarantees that no further tick is executed. Missed ticks are not
    compensated.
    """

    __slots__ = ("_name", "_interval", "_callback", "_task")

    def __init__(self, name: str, interval: float, callback: Callable[[], None]) -> None:
        """Initialize the recurring task.

        Args:
            name: Label used in log messages
            interval: Period in seconds
            callback: Function invoked on every tick
        """
        self._name = name
        self._interval = interval
        self._callback = callback
        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        """Check if the task is scheduled."""
        return self._task is not None and not self._task.done()

    def start(self) -> "RecurringTask":
        """Start ticking, replacing any previous run of this task."""
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self._name)
        if _LOGGER.isEnabledFor(logging.DEBUG):
            _LOGGER.debug("Started %s (every %ss)", self._name, self._interval)
        return self

    def cancel(self) -> None:
        """Cancel the task if active."""
        if self._task is not None:
            if _LOGGER.isEnabledFor(logging.DEBUG):
                _LOGGER.debug("Cancelling %s", self._name)
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                self._callback()
            except Exception:
                _LOGGER.exception(f"Error in {self._name} tick")
