"""
Pipeline Orchestrator - Pipeline

Sequences extraction, download, archiving and publishing for one job and
guarantees cleanup on every exit path.

State flow:
    single: idle -> extracting_images -> downloading -> archiving -> publishing -> idle
    multi:  idle -> extracting_links -> extracting_images -> downloading -> archiving -> publishing -> idle
    failed is reachable from any non-idle state and always ends back in idle.
"""

import asyncio
import logging
import os
import time
from typing import Callable, Optional

from .. import config
from ..archive.archive_builder import ArchiveBuilder
from ..download_module.image_downloader import (
    DownloadProgress,
    Gallery,
    GalleryProgress,
    ImageDownloader,
    report_progress,
)
from ..scrapers.dynamic_scraper import DynamicScraper
from ..scrapers.link_utils import extract_gallery_name, sanitize_name
from ..scrapers.static_scraper import StaticScraper
from ..scrapers.strategy_registry import StrategyRegistry
from ..shared.errors import AllDownloadsFailedError, EmptyResultError, GalleryBotError
from ..utils.temp_manager import TempSpaceManager
from .job import Job, JobMode, JobState, PipelineResult, ProgressEvent

logger = logging.getLogger(__name__)

CONTENT_DIR = 'content'


class PipelineOrchestrator:
    """
    Pipeline Orchestrator - one job from URL to published archive

    Jobs share nothing but the public directory, so any number may run
    concurrently; each gets its own scratch directory.
    """

    def __init__(self, registry: StrategyRegistry,
                 static_scraper: StaticScraper = None,
                 dynamic_scraper: DynamicScraper = None,
                 downloader: ImageDownloader = None,
                 archive_builder: ArchiveBuilder = None,
                 temp_manager: TempSpaceManager = None,
                 max_volume_size: int = None):
        """
        Initialize orchestrator.

        Args:
            registry: Loaded strategy registry
            static_scraper: Gallery page image extractor
            dynamic_scraper: Listing page gallery extractor
            downloader: Batch image downloader
            archive_builder: 7z archive builder
            temp_manager: Scratch/public directory manager
            max_volume_size: Archive volume cap in bytes
        """
        self.registry = registry
        self.static_scraper = static_scraper or StaticScraper()
        self.dynamic_scraper = dynamic_scraper or DynamicScraper()
        self.downloader = downloader or ImageDownloader()
        self.archive_builder = archive_builder or ArchiveBuilder()
        self.temp_manager = temp_manager or TempSpaceManager()
        self.max_volume_size = max_volume_size or config.MAX_VOLUME_SIZE

    async def submit(self, url: str, mode, on_progress: Optional[Callable] = None) -> PipelineResult:
        """
        Run a job for a URL.

        Args:
            url: Gallery (single) or listing (multi) page URL
            mode: JobMode or its string value
            on_progress: Receives ProgressEvent payloads (sync or async)

        Returns:
            PipelineResult with published file paths and counts

        Raises:
            GalleryBotError: Classified failure; cleanup already done
        """
        job = Job(url=url.strip(), mode=JobMode(mode))
        return await self.run(job, on_progress)

    async def run(self, job: Job, on_progress: Optional[Callable] = None) -> PipelineResult:
        logger.info(f"Job {job.id[:8]} started: {job.mode.value} {job.url}")

        try:
            if job.mode is JobMode.SINGLE:
                result = await self._run_single(job, on_progress)
            else:
                result = await self._run_multi(job, on_progress)

            self._transition(job, JobState.IDLE)
            logger.info(
                f"Job {job.id[:8]} complete: {result.result.success}/{result.result.total} images, "
                f"{len(result.files)} file(s)"
            )
            return result

        except (Exception, asyncio.CancelledError) as e:
            job.error = e
            self._transition(job, JobState.FAILED)
            if isinstance(e, GalleryBotError):
                logger.warning(f"Job {job.id[:8]} failed: {e}")
            else:
                logger.error(f"Job {job.id[:8]} failed unexpectedly: {e!r}", exc_info=True)
            await self._discard_outputs(job)
            raise

        finally:
            if job.scratch_dir:
                await self.temp_manager.delete_dir(job.scratch_dir)
            if job.state is JobState.FAILED:
                self._transition(job, JobState.IDLE)

    # === Flows ===

    async def _run_single(self, job: Job, on_progress) -> PipelineResult:
        self._transition(job, JobState.EXTRACTING_IMAGES)
        await self._emit(job, on_progress, message='Extracting image URLs')

        strategy = self.registry.resolve(job.url)
        urls = await self.static_scraper.extract_images(job.url, strategy)
        if not urls:
            raise EmptyResultError("No images found in gallery")

        name = extract_gallery_name(job.url)
        job.galleries = [Gallery(name=name, urls=urls, url=job.url)]

        self._transition(job, JobState.DOWNLOADING)
        await self._emit(job, on_progress, message=f'Found {len(urls)} images', total=len(urls))

        job.scratch_dir = await self.temp_manager.create_temp_dir('single_gallery')
        content_dir = os.path.join(job.scratch_dir, CONTENT_DIR)
        gallery_dir = os.path.join(content_dir, name)

        result = await self.downloader.download_images(
            urls, gallery_dir,
            on_progress=lambda p: self._relay_download(job, on_progress, p),
            referer=job.url
        )
        job.results = {name: result}

        if result.success == 0:
            raise AllDownloadsFailedError(f"Failed to download any of {result.total} images")

        return await self._archive_and_publish(job, content_dir, name, on_progress)

    async def _run_multi(self, job: Job, on_progress) -> PipelineResult:
        self._transition(job, JobState.EXTRACTING_LINKS)
        await self._emit(job, on_progress, message='Opening page and extracting galleries')

        strategy = self.registry.resolve(job.url)
        links = await self.dynamic_scraper.extract_gallery_links(job.url, strategy)
        if not links:
            raise EmptyResultError("No galleries found on this page")

        self._transition(job, JobState.EXTRACTING_IMAGES)
        await self._emit(job, on_progress, message=f'Found {len(links)} galleries',
                         total=len(links), total_galleries=len(links))

        for index, link in enumerate(links, start=1):
            name = extract_gallery_name(link)
            try:
                urls = await self.static_scraper.extract_images(link, strategy)
            except Exception as e:
                logger.warning(f"Failed to extract gallery {link}: {e}")
                urls = []

            job.galleries.append(Gallery(name=name, urls=urls, url=link))
            await self._emit(job, on_progress, message='Extracting images',
                             current=index, total=len(links),
                             gallery_name=name, total_galleries=len(links))

        if job.image_count == 0:
            raise EmptyResultError("No images found in any gallery")

        self._transition(job, JobState.DOWNLOADING)
        await self._emit(job, on_progress, message=f'Found {job.image_count} images in {len(job.galleries)} galleries',
                         total=job.image_count, total_galleries=len(job.galleries))

        job.scratch_dir = await self.temp_manager.create_temp_dir('multi_gallery')
        content_dir = os.path.join(job.scratch_dir, CONTENT_DIR)

        job.results = await self.downloader.download_multiple_galleries(
            job.galleries, content_dir,
            on_progress=lambda p: self._relay_download(job, on_progress, p)
        )

        if job.result.success == 0:
            raise AllDownloadsFailedError(f"Failed to download any of {job.result.total} images")

        name = f"{extract_gallery_name(job.url)}_galleries"
        return await self._archive_and_publish(job, content_dir, name, on_progress)

    async def _archive_and_publish(self, job: Job, content_dir: str, name: str,
                                   on_progress) -> PipelineResult:
        self._transition(job, JobState.ARCHIVING)
        await self._emit(job, on_progress, message='Creating archive')

        filename = f"{sanitize_name(name, fallback='gallery')}_{int(time.time())}_{job.id[:8]}.7z"
        archive_path = os.path.join(job.scratch_dir, filename)
        job.archive_paths = await self.archive_builder.create_and_split_if_needed(
            content_dir, archive_path, self.max_volume_size
        )

        self._transition(job, JobState.PUBLISHING)
        await self._emit(job, on_progress, message='Generating download link')

        for path in job.archive_paths:
            job.published_paths.append(await self.temp_manager.move_to_public_location(path))

        return PipelineResult(
            job_id=job.id,
            mode=job.mode,
            name=name,
            files=list(job.published_paths),
            urls=[self.temp_manager.public_url(p) for p in job.published_paths],
            total_size=sum(os.path.getsize(p) for p in job.published_paths),
            gallery_count=sum(1 for r in job.results.values() if r.success > 0),
            result=job.result
        )

    # === Helpers ===

    async def _discard_outputs(self, job: Job) -> None:
        """Delete archive files of a failed job, published or not."""
        for path in job.archive_paths + job.published_paths:
            await self.temp_manager.delete_file(path)
        for path in job.archive_paths:
            ArchiveBuilder.remove_outputs(path)

    def _transition(self, job: Job, state: JobState) -> None:
        job.state = state
        job.history.append(state)
        logger.debug(f"Job {job.id[:8]} -> {state.value}")

    async def _emit(self, job: Job, on_progress, **fields) -> None:
        await report_progress(on_progress, ProgressEvent(job_id=job.id, state=job.state, **fields))

    async def _relay_download(self, job: Job, on_progress, payload) -> None:
        """Translate downloader payloads into ProgressEvents."""
        if isinstance(payload, GalleryProgress):
            inner = payload.gallery_progress
            await self._emit(
                job, on_progress,
                message='Downloading',
                current=inner.current if inner else 0,
                total=inner.total if inner else 0,
                success=inner.success if inner else 0,
                failed=inner.failed if inner else 0,
                gallery_name=payload.gallery_name,
                completed_galleries=payload.completed_galleries,
                total_galleries=payload.total_galleries
            )
        elif isinstance(payload, DownloadProgress):
            await self._emit(
                job, on_progress,
                message='Downloading',
                current=payload.current,
                total=payload.total,
                success=payload.success,
                failed=payload.failed
            )
