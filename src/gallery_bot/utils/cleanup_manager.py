"""
Cleanup Manager - Utils

Periodically sweep stale scratch directories and expired download files,
guarding against leaks from crashed jobs.
"""

import asyncio
import logging
from typing import Optional

from .temp_manager import TempSpaceManager

logger = logging.getLogger(__name__)


class CleanupManager:
    """Run scratch ageing and link expiry on a fixed interval."""

    def __init__(self, temp_manager: TempSpaceManager):
        """
        Initialize cleanup manager.

        Args:
            temp_manager: TempSpaceManager instance
        """
        self.temp_manager = temp_manager
        self.running = False
        self.task: Optional[asyncio.Task] = None
        self.last_run = None

    async def run_once(self) -> dict:
        """
        Run one sweep.

        Returns:
            Dictionary with counts of removed entries
        """
        stats = {'temp_dirs': 0, 'downloads': 0}
        try:
            stats['temp_dirs'] = await self.temp_manager.cleanup_old_temp_dirs()
            stats['downloads'] = await self.temp_manager.cleanup_expired_downloads()
        except Exception as e:
            logger.error(f"Cleanup sweep failed: {e}", exc_info=True)

        self.last_run = asyncio.get_running_loop().time()
        if stats['temp_dirs'] or stats['downloads']:
            logger.info(f"Cleanup removed {stats['temp_dirs']} temp dirs, {stats['downloads']} expired files")
        return stats

    async def start(self, interval_minutes: int = 60):
        """
        Run sweeps until stopped.

        Args:
            interval_minutes: Sweep interval in minutes
        """
        if self.running:
            logger.warning("Cleanup manager already running")
            return

        self.running = True
        logger.info(f"Starting cleanup manager (runs every {interval_minutes} minutes)")

        while self.running:
            try:
                await self.run_once()
                await asyncio.sleep(interval_minutes * 60)  # Convert to seconds

            except asyncio.CancelledError:
                logger.info("Cleanup manager stopped")
                break

    def start_background(self, interval_minutes: int = 60) -> asyncio.Task:
        """Schedule start() as a background task."""
        self.task = asyncio.create_task(self.start(interval_minutes))
        return self.task

    def stop(self):
        """Stop cleanup manager."""
        self.running = False
        if self.task:
            self.task.cancel()
            self.task = None
        logger.info("Cleanup manager stopped")

    async def shutdown(self):
        """Stop the loop and wait for the background task to finish."""
        task = self.task
        self.stop()
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    def get_status(self) -> dict:
        return {
            'running': self.running,
            'temp_root': self.temp_manager.temp_root,
            'public_root': self.temp_manager.public_root,
            'last_run': self.last_run
        }
