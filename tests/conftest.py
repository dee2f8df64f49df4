"""
Pytest configuration for Gallery Downloader tests.
"""

import asyncio
import os
import sys
import tempfile
from collections import Counter

# Set test environment variables BEFORE any imports
os.environ['TELEGRAM_BOT_TOKEN'] = 'test_token_12345'
os.environ['HEALTH_PORT'] = '0'
os.environ['LOG_LEVEL'] = 'DEBUG'
os.environ.setdefault('TEMP_DIR', os.path.join(tempfile.gettempdir(), 'gallery_bot_tests'))

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from gallery_bot.scrapers.strategy_registry import ImageRule, SelectorRule, Strategy


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )


def fake_image(index: int, size: int = 256) -> bytes:
    """Deterministic non-empty payload standing in for an image."""
    seed = f"image-{index}-".encode()
    return (seed * (size // len(seed) + 1))[:size]


def gallery_html(image_paths, thumbs=()) -> str:
    imgs = '\n'.join(f'<img src="{p}">' for p in list(image_paths) + list(thumbs))
    return f"<html><body><div class='gallery'>{imgs}</div></body></html>"


class FakeSite:
    """
    Local web site for scraper and downloader tests.

    pages/images map a request path to a body; failures maps a path to a
    list of statuses returned (one per request) before the normal answer.
    """

    def __init__(self):
        self.pages = {}
        self.images = {}
        self.failures = {}
        self.hits = Counter()
        self.delay = 0.0
        self.in_flight = 0
        self.max_in_flight = 0
        self.base_url = ''

    def url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def add_gallery(self, path: str, count: int, prefix: str = None, thumbs: int = 0):
        """Register a gallery page with `count` images. Returns the image paths."""
        prefix = prefix or path.rstrip('/')
        image_paths = [f"{prefix}/img_{i:03d}.jpg" for i in range(1, count + 1)]
        thumb_paths = [f"{prefix}/img_{i:03d}_thumb.jpg" for i in range(1, thumbs + 1)]
        for i, image_path in enumerate(image_paths, start=1):
            self.images[image_path] = fake_image(i)
        self.pages[path] = gallery_html(image_paths, thumb_paths)
        return image_paths

    async def handle(self, request: web.Request) -> web.Response:
        path = request.path
        self.hits[path] += 1

        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            return self._respond(path)
        finally:
            self.in_flight -= 1

    def _respond(self, path: str) -> web.Response:
        pending = self.failures.get(path)
        if pending:
            return web.Response(status=pending.pop(0))

        if path in self.pages:
            return web.Response(text=self.pages[path], content_type='text/html')
        if path in self.images:
            return web.Response(body=self.images[path], content_type='image/jpeg')
        return web.Response(status=404)

    def make_app(self) -> web.Application:
        app = web.Application()
        app.router.add_route('GET', '/{tail:.*}', self.handle)
        return app


@pytest_asyncio.fixture
async def fake_site():
    """FakeSite served on a random localhost port."""
    site = FakeSite()
    server = TestServer(site.make_app())
    await server.start_server()
    site.base_url = str(server.make_url('')).rstrip('/')
    yield site
    await server.close()


@pytest.fixture
def local_strategy():
    """Strategy matching FakeSite markup on 127.0.0.1."""
    return Strategy(
        domain='127.0.0.1',
        galleries=SelectorRule(selector='a.gallery-link', attr='href'),
        images=ImageRule(selector='div.gallery img', attr='src', filter_patterns=('_thumb',))
    )

