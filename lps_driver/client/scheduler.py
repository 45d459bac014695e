"""
MODULE OVERVIEW:
Delayed, cancellable restarts of server acquisition.

WHAT IS HAPPENING HERE:
Unlike the generic reconnect helpers that grow their delay exponentially, the
long-poll driver always waits the same 5 seconds between failed acquisitions,
forever. A scheduled restart fires exactly once; cancelling it before it fires
(e.g. because the user logged off) guarantees the restart callback never runs.
"""
import asyncio
from typing import Awaitable, Callable

from loguru import logger

from lps_driver.shared.config import settings

RestartFn = Callable[[int | None], None]

class RestartHandle:
    def __init__(self, task: asyncio.Task, delay_s: float, seed_ts: int | None):
        self._task = task
        self.delay_s = delay_s
        self.seed_ts = seed_ts

    @property
    def cancelled(self) -> bool:
        return self._task.cancelled()

    @property
    def fired(self) -> bool:
        return self._task.done() and not self._task.cancelled()

    def cancel(self) -> None:
        self._task.cancel()

    async def wait(self) -> bool:
        """Block until the restart fires or is cancelled. True if it fired."""
        await asyncio.wait({self._task})
        return self.fired

class RetryScheduler:
    def __init__(
        self,
        delay_s: float = settings.RESTART_DELAY_S,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.delay_s = delay_s
        self._sleep = sleep

    def schedule_restart(self, restart: RestartFn, seed_ts: int | None = None, delay_s: float | None = None) -> RestartHandle:
        delay = self.delay_s if delay_s is None else delay_s

        async def fire():
            await self._sleep(delay)
            restart(seed_ts)

        logger.info(f"protocol=long_poll event=restart_scheduled delay={delay}s seed_ts={seed_ts}")
        return RestartHandle(asyncio.create_task(fire()), delay, seed_ts)
