"""
Periodic tasks for the engine's sampling loop and sleep timer.

Callbacks always run on the event loop that owns the engine, so they can
mutate engine state directly. Tests swap in a manual scheduler instead of
real sleeps.
"""

import asyncio
import logging
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)


class PeriodicTask(Protocol):
    @property
    def active(self) -> bool: ...

    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def every(self, interval: float, callback: Callable[[], None], name: str = "") -> PeriodicTask: ...


class AsyncioPeriodicTask:
    """Calls `callback` every `interval` seconds until cancelled."""

    def __init__(self, interval: float, callback: Callable[[], None], name: str = ""):
        self.interval = interval
        self.callback = callback
        self.name = name or getattr(callback, '__name__', 'periodic')
        self._task: Optional[asyncio.Task] = asyncio.get_running_loop().create_task(self._run())

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self):
        try:
            while True:
                await asyncio.sleep(self.interval)
                try:
                    self.callback()
                except Exception as e:
                    logger.error(f"[TIMER] {self.name} callback failed: {e}", exc_info=True)
        except asyncio.CancelledError:
            pass

    def cancel(self) -> None:
        if self._task:
            self._task.cancel()
            self._task = None


class AsyncioScheduler:
    """Production scheduler backed by asyncio tasks on the running loop."""

    def every(self, interval: float, callback: Callable[[], None], name: str = "") -> AsyncioPeriodicTask:
        return AsyncioPeriodicTask(interval, callback, name)
