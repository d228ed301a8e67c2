"""Periodic background sweep task for the process-wide in-memory stores."""

import asyncio
import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)


class Sweeper:
    """Calls ``sweep()`` every ``interval`` seconds until stopped."""

    def __init__(self, name: str, interval: float, sweep: Callable[[], int]):
        self.name = name
        self.interval = interval
        self._sweep = sweep
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=f"sweep-{self.name}")
        logger.info("Sweeper started | %s | every %.0fs", self.name, self.interval)

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Sweeper stopped | %s", self.name)

    async def _loop(self):
        while True:
            await asyncio.sleep(self.interval)
            try:
                removed = self._sweep()
                if removed:
                    logger.info("Sweep | %s | removed=%d", self.name, removed)
            except Exception as e:
                logger.error("Sweep failed | %s | %s", self.name, str(e)[:200])
