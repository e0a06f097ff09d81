"""Periodic reclamation of download tokens that were never consumed.

The one-shot timer scheduled by DownloadManager.prepare is the primary
expiry path. The sweeper is the safety net: on a fixed interval it removes
every entry past its deadline, together with its files.
"""

import asyncio
from typing import Optional

from social_downloader.services import logger
from social_downloader.services.lifecycle import DownloadManager


class ExpirySweeper:
    """Runs DownloadManager.sweep on a fixed interval in the background."""

    def __init__(self, manager: DownloadManager, interval_seconds: float = 60):
        self.manager = manager
        self.interval_seconds = interval_seconds
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running and self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start sweeping."""
        if self.running:
            return
        self._running = True
        self._task = asyncio.create_task(self._sweep_loop())
        logger.info(f"Expiry sweeper started (every {self.interval_seconds}s)", "sweeper")

    async def stop(self) -> None:
        """Stop sweeping."""
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    def sweep_once(self) -> int:
        """Run a single pass. Returns how many entries were reclaimed."""
        removed = self.manager.sweep()
        if removed:
            logger.info(f"Sweeper reclaimed {removed} expired tokens", "sweeper")
        return removed

    async def _sweep_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.interval_seconds)
                self.sweep_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Sweep error: {e}", "sweeper", {"error_type": type(e).__name__})
