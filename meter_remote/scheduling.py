"""Cancellable repeating task handle."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class RepeatingTask:
    """Runs an async callback every interval seconds until cancelled.

    The first run happens one interval after start. The owner must call
    cancel() when it deactivates.
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[object]],
        interval: float,
        name: str = "repeating-task",
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._callback = callback
        self._interval = interval
        self._name = name
        self._task: asyncio.Task | None = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> RepeatingTask:
        if self.active:
            return self
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self._name)
        return self

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self._callback()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Error in %s", self._name)

    def cancel(self) -> None:
        """Stop the task. Safe to call more than once."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            logger.debug("%s cancelled", self._name)
        self._task = None


def start_repeating(
    callback: Callable[[], Awaitable[object]],
    interval: float,
    name: str = "repeating-task",
) -> RepeatingTask:
    """Start callback on a fixed interval and return its handle."""
    return RepeatingTask(callback, interval, name).start()
