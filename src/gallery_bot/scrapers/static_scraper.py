"""
Static Scraper - Scrapers

Fetch raw HTML with aiohttp and pull links out with CSS selectors.
Fast, but blind to JavaScript-injected content.
"""

import asyncio
import logging
import ssl
from typing import List, Optional

import aiohttp
from bs4 import BeautifulSoup

from .. import config
from ..shared.errors import FetchError
from .link_utils import extract_gallery_name, resolve_links
from .strategy_registry import Strategy

logger = logging.getLogger(__name__)


def create_connector(verify_ssl: bool = True) -> aiohttp.TCPConnector:
    """Build a TCP connector, optionally accepting expired/self-signed certs."""
    if verify_ssl:
        return aiohttp.TCPConnector()

    ssl_context = ssl.create_default_context()
    ssl_context.check_hostname = False
    ssl_context.verify_mode = ssl.CERT_NONE
    return aiohttp.TCPConnector(ssl=ssl_context)


def select_attribute_values(html: str, selector: str, attr: str) -> List[str]:
    """
    Parse HTML and read `attr` off every node matching `selector`.

    Runs in an executor; parsing large pages is CPU-bound.
    """
    soup = BeautifulSoup(html, 'html.parser')
    values = []
    for node in soup.select(selector):
        value = node.get(attr)
        if isinstance(value, list):
            value = ' '.join(value)
        if value:
            values.append(value)
    return values


class StaticScraper:
    """Extract image links from server-rendered gallery pages"""

    def __init__(self, session: Optional[aiohttp.ClientSession] = None,
                 timeout: int = None, user_agent: str = None,
                 verify_ssl: bool = None):
        """
        Initialize static scraper.

        Args:
            session: Shared aiohttp session (one is created per call if None)
            timeout: Page fetch timeout in seconds
            user_agent: User-Agent header sent with every request
            verify_ssl: Verify TLS certificates
        """
        self.session = session
        self.timeout = timeout or config.FETCH_TIMEOUT
        self.user_agent = user_agent or config.USER_AGENT
        self.verify_ssl = config.VERIFY_SSL if verify_ssl is None else verify_ssl

    async def fetch_html(self, url: str) -> str:
        """
        GET a page and return its body.

        Raises:
            FetchError: On non-2xx status or network error
        """
        if self.session is not None:
            return await self._get_text(self.session, url)

        async with aiohttp.ClientSession(connector=create_connector(self.verify_ssl)) as session:
            return await self._get_text(session, url)

    async def _get_text(self, session: aiohttp.ClientSession, url: str) -> str:
        headers = {
            'User-Agent': self.user_agent,
            'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
        }
        try:
            async with session.get(url, headers=headers, allow_redirects=True,
                                   timeout=aiohttp.ClientTimeout(total=self.timeout)) as response:
                if response.status < 200 or response.status >= 300:
                    raise FetchError(f"HTTP {response.status} fetching {url}")
                return await response.text(errors='replace')
        except FetchError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Failed to fetch {url}: {e!r}")
            raise FetchError(f"Network error fetching {url}") from e

    async def extract_images(self, url: str, strategy: Strategy) -> List[str]:
        """
        Extract image URLs from a gallery page.

        Args:
            url: Gallery page URL
            strategy: Site strategy

        Returns:
            Ordered, de-duplicated, filtered list of absolute image URLs
            (empty if nothing matched)
        """
        logger.info(f"Extracting images from: {url}")
        html = await self.fetch_html(url)

        rule = strategy.images
        loop = asyncio.get_running_loop()
        values = await loop.run_in_executor(
            None, select_attribute_values, html, rule.selector, rule.attr
        )

        images = resolve_links(values, url, rule.filter_patterns)
        logger.info(f"Extracted {len(images)} images ({len(values)} matched nodes) from {url}")
        return images

    @staticmethod
    def extract_gallery_name(url: str) -> str:
        return extract_gallery_name(url)
