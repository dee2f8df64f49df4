"""
Dynamic Scraper - Scrapers

Render listing pages in a headless browser, auto-scroll to trigger lazy
loading, then extract gallery links with the strategy's selector.
Slow (tens of seconds) but sees JavaScript-injected content.
"""

import asyncio
import logging
from typing import List

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .. import config
from ..shared.errors import NavigationError
from .browser_manager import BrowserManager
from .link_utils import resolve_links
from .strategy_registry import Strategy

logger = logging.getLogger(__name__)

READ_ATTRIBUTES_JS = """
(elements, attribute) => elements
    .map(el => el.getAttribute(attribute))
    .filter(value => value)
"""


class DynamicScraper:
    """Extract gallery links from lazy-loaded listing pages"""

    SCROLL_PAUSE = 1.0  # seconds between scroll steps
    STABLE_ROUNDS = 3  # unchanged heights before we stop scrolling
    SETTLE_DELAY = 2.0  # final wait for late lazy loads

    def __init__(self, browser_manager: BrowserManager = None,
                 navigation_timeout: int = None, scroll_timeout: float = None):
        """
        Initialize dynamic scraper.

        Args:
            browser_manager: Launches the per-call browser
            navigation_timeout: page.goto timeout in milliseconds
            scroll_timeout: Upper bound for the auto-scroll loop in seconds
        """
        self.browser_manager = browser_manager or BrowserManager()
        self.navigation_timeout = navigation_timeout or config.NAVIGATION_TIMEOUT
        self.scroll_timeout = scroll_timeout or config.SCROLL_TIMEOUT

    async def extract_gallery_links(self, url: str, strategy: Strategy) -> List[str]:
        """
        Extract gallery links from a model/listing page.

        Args:
            url: Listing page URL
            strategy: Site strategy

        Returns:
            Ordered, de-duplicated list of absolute gallery URLs

        Raises:
            NavigationError: On navigation timeout or browser crash
        """
        logger.info(f"Extracting gallery links from: {url}")
        rule = strategy.galleries

        async with self.browser_manager.open_page() as page:
            try:
                logger.debug(f"Navigating to: {url}")
                await page.goto(url, wait_until='domcontentloaded', timeout=self.navigation_timeout)
            except PlaywrightTimeoutError as e:
                raise NavigationError(
                    f"Timed out loading {url} after {self.navigation_timeout // 1000}s"
                ) from e
            except PlaywrightError as e:
                raise NavigationError(f"Browser failed to load {url}: {e}") from e

            try:
                await self.auto_scroll(page)
                logger.debug(f"Extracting links with selector: {rule.selector}")
                values = await page.eval_on_selector_all(rule.selector, READ_ATTRIBUTES_JS, rule.attr)
            except PlaywrightError as e:
                raise NavigationError(f"Browser failed while reading {url}: {e}") from e

        links = resolve_links(values, url)
        logger.info(f"Extracted {len(links)} gallery links")
        return links

    async def auto_scroll(self, page) -> None:
        """
        Scroll to the bottom until the document height stops growing.

        Bounded by scroll_timeout so endlessly growing pages terminate.
        """
        logger.debug("Auto-scrolling page to load lazy content")
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.scroll_timeout

        last_height = await page.evaluate('document.body.scrollHeight')
        stable = 0

        while loop.time() < deadline:
            await page.evaluate('window.scrollTo(0, document.body.scrollHeight)')
            await asyncio.sleep(self.SCROLL_PAUSE)

            height = await page.evaluate('document.body.scrollHeight')
            if height == last_height:
                stable += 1
                if stable >= self.STABLE_ROUNDS:
                    break
            else:
                stable = 0
                last_height = height
        else:
            logger.warning(f"Auto-scroll stopped after {self.scroll_timeout}s, page still growing")

        await asyncio.sleep(self.SETTLE_DELAY)
        logger.debug("Auto-scroll completed")
