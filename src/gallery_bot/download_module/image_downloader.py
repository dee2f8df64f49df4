"""
Image Downloader - Download Module

Batch-download images with bounded concurrency, per-file retry and
progress callbacks. Partial success is the normal case: a failed file is
counted, never fatal.
"""

import asyncio
import inspect
import logging
import os
import re
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional
from urllib.parse import unquote, urlparse

import aiohttp

from .. import config
from ..scrapers.link_utils import sanitize_name
from ..scrapers.static_scraper import create_connector
from ..shared.errors import EmptyResultError, FilesystemError
from .retry_handler import HTTPStatusError, RetryHandler

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
DEFAULT_EXTENSION = '.jpg'
EXTENSION_RE = re.compile(r'^\.[A-Za-z0-9]{1,5}$')


class EmptyBodyError(Exception):
    """Server answered 2xx with no content."""
    pass


@dataclass
class Gallery:
    """A named, ordered list of image URLs."""
    name: str
    urls: List[str] = field(default_factory=list)
    url: Optional[str] = None  # page the images came from


@dataclass
class DownloadResult:
    """Aggregate counts for one batch: success + failed == total."""
    total: int = 0
    success: int = 0
    failed: int = 0

    def __add__(self, other: 'DownloadResult') -> 'DownloadResult':
        return DownloadResult(
            total=self.total + other.total,
            success=self.success + other.success,
            failed=self.failed + other.failed
        )

    @classmethod
    def combine(cls, results) -> 'DownloadResult':
        combined = cls()
        for result in results:
            combined = combined + result
        return combined


@dataclass(frozen=True)
class DownloadProgress:
    """Running totals after one finished attempt."""
    current: int
    total: int
    success: int
    failed: int
    url: str
    ok: bool


@dataclass(frozen=True)
class GalleryProgress:
    """Combined progress for multi-gallery downloads."""
    completed_galleries: int
    total_galleries: int
    gallery_name: str
    gallery_progress: Optional[DownloadProgress] = None


def build_filename(index: int, width: int, url: str) -> str:
    """
    Name a downloaded file after its position in the batch.

    "001_name.jpg", "002_name.png", ... sort lexically and never collide
    because the index is unique within a batch.
    """
    basename = os.path.basename(unquote(urlparse(url).path))
    stem, ext = os.path.splitext(basename)
    if not EXTENSION_RE.match(ext):
        stem, ext = basename, ''

    stem = sanitize_name(stem, fallback='image', max_length=100)
    ext = ext.lower() or DEFAULT_EXTENSION
    return f"{index:0{width}d}_{stem}{ext}"


async def report_progress(callback: Optional[Callable], payload) -> None:
    """Invoke a sync or async progress callback; its failures are ignored."""
    if callback is None:
        return
    try:
        result = callback(payload)
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        logger.debug(f"Progress callback failed: {e}")


class ImageDownloader:
    """
    Image Downloader - aiohttp-based batch downloader

    - At most `concurrency` transfers per batch (default 5)
    - File indices fixed at submission, independent of completion order
    - Transient failures retried with capped exponential backoff
    """

    DEFAULT_CONCURRENCY = 5

    def __init__(self, session: Optional[aiohttp.ClientSession] = None,
                 concurrency: int = None, timeout: int = None,
                 retry_handler: RetryHandler = None, user_agent: str = None,
                 verify_ssl: bool = None):
        """
        Initialize image downloader.

        Args:
            session: Shared aiohttp session (one is created per batch if None)
            concurrency: Default parallel transfers per batch
            timeout: Per-file timeout in seconds
            retry_handler: Retry policy
            user_agent: User-Agent header
            verify_ssl: Verify TLS certificates
        """
        self.session = session
        self.concurrency = concurrency or config.DOWNLOAD_CONCURRENCY or self.DEFAULT_CONCURRENCY
        self.timeout = timeout or config.DOWNLOAD_TIMEOUT
        self.retry_handler = retry_handler or RetryHandler(max_attempts=config.DOWNLOAD_MAX_ATTEMPTS)
        self.user_agent = user_agent or config.USER_AGENT
        self.verify_ssl = config.VERIFY_SSL if verify_ssl is None else verify_ssl

    @asynccontextmanager
    async def _session_scope(self):
        if self.session is not None:
            yield self.session
            return

        async with aiohttp.ClientSession(connector=create_connector(self.verify_ssl)) as session:
            yield session

    async def download_images(self, urls: List[str], dest_dir: str,
                              concurrency: int = None,
                              on_progress: Optional[Callable] = None,
                              referer: str = None) -> DownloadResult:
        """
        Download a batch of images into dest_dir.

        Args:
            urls: Image URLs, in the order files should be numbered
            dest_dir: Target directory (created if missing)
            concurrency: Max simultaneous transfers (defaults to instance setting)
            on_progress: Called with DownloadProgress after every attempt
            referer: Referer header for hosts that check it

        Returns:
            DownloadResult with total/success/failed counts

        Raises:
            EmptyResultError: If urls is empty
            FilesystemError: If dest_dir cannot be created
        """
        if not urls:
            raise EmptyResultError("No image URLs to download")

        try:
            os.makedirs(dest_dir, exist_ok=True)
        except OSError as e:
            raise FilesystemError(f"Cannot create download directory {dest_dir}: {e}") from e

        limit = max(1, concurrency or self.concurrency)
        width = max(3, len(str(len(urls))))
        targets = [
            (url, os.path.join(dest_dir, build_filename(index, width, url)))
            for index, url in enumerate(urls, start=1)
        ]

        logger.info(f"Downloading {len(urls)} images to {dest_dir} (concurrency={limit})")

        result = DownloadResult(total=len(urls))
        semaphore = asyncio.Semaphore(limit)
        headers = {'User-Agent': self.user_agent}
        if referer:
            headers['Referer'] = referer

        async with self._session_scope() as session:

            async def worker(url: str, path: str):
                async with semaphore:
                    ok = await self._download_with_retry(session, url, path, headers)

                if ok:
                    result.success += 1
                else:
                    result.failed += 1

                await report_progress(on_progress, DownloadProgress(
                    current=result.success + result.failed,
                    total=result.total,
                    success=result.success,
                    failed=result.failed,
                    url=url,
                    ok=ok
                ))

            await asyncio.gather(*(worker(url, path) for url, path in targets))

        logger.info(f"Batch complete: {result.success}/{result.total} succeeded, {result.failed} failed")
        return result

    async def download_multiple_galleries(self, galleries: List[Gallery], dest_dir: str,
                                          on_progress: Optional[Callable] = None) -> Dict[str, DownloadResult]:
        """
        Download galleries one after another, each into its own subfolder.

        Args:
            galleries: Galleries in processing order
            dest_dir: Parent directory for the gallery folders
            on_progress: Called with GalleryProgress payloads

        Returns:
            Ordered mapping of folder name -> DownloadResult
        """
        try:
            os.makedirs(dest_dir, exist_ok=True)
        except OSError as e:
            raise FilesystemError(f"Cannot create download directory {dest_dir}: {e}") from e

        total = len(galleries)
        results: Dict[str, DownloadResult] = {}

        for completed, gallery in enumerate(galleries):
            folder = self._unique_folder(gallery.name, results)

            if not gallery.urls:
                logger.warning(f"Gallery {folder} has no images, skipping")
                results[folder] = DownloadResult()
            else:
                gallery_dir = os.path.join(dest_dir, folder)

                async def relay(progress, _completed=completed, _folder=folder):
                    await report_progress(on_progress, GalleryProgress(
                        completed_galleries=_completed,
                        total_galleries=total,
                        gallery_name=_folder,
                        gallery_progress=progress
                    ))

                results[folder] = await self.download_images(
                    gallery.urls, gallery_dir, on_progress=relay, referer=gallery.url
                )
                if results[folder].success == 0:
                    self._remove_if_empty(gallery_dir)

            await report_progress(on_progress, GalleryProgress(
                completed_galleries=completed + 1,
                total_galleries=total,
                gallery_name=folder
            ))

        return results

    async def _download_with_retry(self, session: aiohttp.ClientSession, url: str,
                                   path: str, headers: Dict) -> bool:
        """Download one file; returns False instead of raising on failure."""
        attempt = 0
        while True:
            attempt += 1
            try:
                await self._fetch_to_file(session, url, path, headers)
                return True
            except Exception as e:
                if self.retry_handler.should_retry(e, attempt):
                    logger.debug(f"Transient failure for {url}: {e!r}")
                    await self.retry_handler.wait(attempt)
                    continue
                logger.warning(f"Failed to download {url} after {attempt} attempt(s): {e!r}")
                return False

    async def _fetch_to_file(self, session: aiohttp.ClientSession, url: str,
                             path: str, headers: Dict) -> None:
        """Stream one response to disk via a .part file."""
        part_path = path + '.part'
        try:
            async with session.get(url, headers=headers, allow_redirects=True,
                                   timeout=aiohttp.ClientTimeout(total=self.timeout)) as response:
                if response.status < 200 or response.status >= 300:
                    raise HTTPStatusError(response.status, url)

                written = 0
                with open(part_path, 'wb') as f:
                    async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                        f.write(chunk)
                        written += len(chunk)

            if written == 0:
                raise EmptyBodyError(f"Empty response body for {url}")

            os.replace(part_path, path)
        finally:
            if os.path.exists(part_path):
                try:
                    os.remove(part_path)
                except OSError as e:
                    logger.debug(f"Could not remove partial file {part_path}: {e}")

    @staticmethod
    def _unique_folder(name: str, taken) -> str:
        base = sanitize_name(name, fallback='gallery')
        folder = base
        suffix = 2
        while folder in taken:
            folder = f"{base}_{suffix}"
            suffix += 1
        return folder

    @staticmethod
    def _remove_if_empty(path: str) -> None:
        try:
            if os.path.isdir(path) and not os.listdir(path):
                os.rmdir(path)
        except OSError as e:
            logger.debug(f"Could not remove empty folder {path}: {e}")
