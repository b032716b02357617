"""
In-process timer for the congestion decay sweep.

The sweep itself is synchronous (Realtime Database I/O), so each run is
pushed to the default executor to keep the event loop free.
"""

import asyncio
import logging
from typing import Callable, Optional

from cityflux.models.traffic import DecaySummary

logger = logging.getLogger(__name__)


class DecayScheduler:
    """
    Runs `sweep` every `interval_seconds` until stopped.

    A failed sweep is logged and the next one still runs on schedule.
    """

    def __init__(self, sweep: Callable[[], DecaySummary], interval_seconds: float):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._sweep = sweep
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if self.is_running:
            return
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run())
        logger.info(f"Decay sweep scheduled every {self.interval_seconds:.0f}s")

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Decay sweep scheduler stopped")

    async def run_once(self) -> DecaySummary:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._sweep)

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.run_once()
            except Exception:
                logger.error("Error in decayCongestion", exc_info=True)
