"""Wall-clock interval timer driven by the running asyncio event loop."""

import asyncio
import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)


class IntervalTimer:
    """Calls a callback every *interval* seconds until cancelled.

    Only one schedule is active at a time; ``start`` replaces any previous one.
    """

    def __init__(self, interval: float = 1.0) -> None:
        self._interval = interval
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, callback: Callable[[], None]) -> None:
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._run(callback))

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self, callback: Callable[[], None]) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self._interval
        while True:
            # Sleep to an absolute deadline so ticks do not drift
            await asyncio.sleep(max(next_tick - loop.time(), 0))
            next_tick += self._interval
            callback()
