"""Cancellable one-shot timers backed by asyncio tasks."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class CancellableTimer:
    """
    Run an async callback once after a delay.

    The owner keeps the timer and cancels it on shutdown, so no callback
    fires after the owner has stopped.

    Example:
        timer = CancellableTimer(5.0, reconnect, name="reconnect").start()
        ...
        timer.cancel()
    """

    def __init__(
        self,
        delay: float,
        callback: Callable[[], Awaitable[None]],
        name: str = "timer",
    ):
        self.delay = max(0.0, delay)
        self.name = name
        self._callback = callback
        self._task: Optional[asyncio.Task] = None

    def start(self) -> "CancellableTimer":
        """Schedule the callback. Starting twice is a no-op."""
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name=self.name)
        return self

    @property
    def pending(self) -> bool:
        """True while the delay is running or the callback executes."""
        return self._task is not None and not self._task.done()

    def cancel(self) -> bool:
        """
        Cancel the timer.

        Returns:
            True if a pending timer was cancelled
        """
        if not self.pending:
            return False
        self._task.cancel()
        logger.debug(f"Timer {self.name} cancelled")
        return True

    async def _run(self) -> None:
        await asyncio.sleep(self.delay)
        try:
            await self._callback()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Timer {self.name} callback failed: {e}")
