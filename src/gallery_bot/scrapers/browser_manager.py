"""
Browser Manager - Scrapers

Launches one isolated Playwright browser per scrape and guarantees it is
torn down on every exit path.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from .. import config
from ..shared.errors import NavigationError

logger = logging.getLogger(__name__)


class BrowserManager:
    """
    Browser Manager - Playwright Integration

    A browser is never shared between calls: pages may hang, and a fresh
    process per scrape keeps one bad page from affecting the next.
    """

    LAUNCH_ARGS = [
        '--no-sandbox',  # If running as root
        '--disable-setuid-sandbox',
        '--disable-dev-shm-usage',  # Reduce RAM
        '--disable-gpu',
        '--disable-software-rasterizer',
    ]

    def __init__(self, headless: bool = None, user_agent: str = None):
        """Initialize browser manager."""
        self.headless = config.BROWSER_HEADLESS if headless is None else headless
        self.user_agent = user_agent or config.USER_AGENT

    @asynccontextmanager
    async def open_page(self) -> AsyncIterator:
        """
        Launch a browser and yield a fresh page.

        The browser and the Playwright driver are closed when the block
        exits, whether it returns or raises.

        Raises:
            NavigationError: If the browser cannot be launched
        """
        try:
            playwright = await async_playwright().start()
        except PlaywrightError as e:
            logger.error(f"Failed to start Playwright: {e}")
            raise NavigationError(f"Browser launch failed: {e}") from e

        try:
            try:
                browser = await playwright.chromium.launch(
                    headless=self.headless,
                    args=self.LAUNCH_ARGS
                )
            except PlaywrightError as e:
                logger.error(f"Failed to launch browser: {e}")
                raise NavigationError(f"Browser launch failed: {e}") from e

            logger.debug("Playwright browser launched")
            try:
                page = await browser.new_page(
                    user_agent=self.user_agent,
                    viewport={'width': 1920, 'height': 1080}
                )
                yield page
            finally:
                await self._close_browser(browser)
        finally:
            await self._stop_playwright(playwright)

    async def _close_browser(self, browser) -> None:
        try:
            await browser.close()
            logger.debug("Browser closed")
        except Exception as e:
            logger.warning(f"Error closing browser: {e}")

    async def _stop_playwright(self, playwright) -> None:
        try:
            await playwright.stop()
        except Exception as e:
            logger.warning(f"Error stopping playwright: {e}")
