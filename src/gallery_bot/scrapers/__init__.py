"""
Scrapers Package - Link Extraction

Contains:
- StrategyRegistry: per-site rules keyed by domain
- StaticScraper: aiohttp + BeautifulSoup for gallery pages
- DynamicScraper: Playwright for lazy-loaded listing pages
"""

from .strategy_registry import Strategy, SelectorRule, ImageRule, StrategyRegistry, extract_domain
from .link_utils import extract_gallery_name, resolve_links, sanitize_name
from .static_scraper import StaticScraper
from .browser_manager import BrowserManager
from .dynamic_scraper import DynamicScraper

__all__ = [
    'Strategy',
    'SelectorRule',
    'ImageRule',
    'StrategyRegistry',
    'extract_domain',
    'extract_gallery_name',
    'resolve_links',
    'sanitize_name',
    'StaticScraper',
    'BrowserManager',
    'DynamicScraper'
]
