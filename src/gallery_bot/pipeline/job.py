"""
Job Model - Pipeline

One user-submitted extraction-and-archive request and the payloads the
orchestrator reports about it.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from ..download_module.image_downloader import DownloadResult, Gallery


class JobMode(str, Enum):
    SINGLE = 'single'  # one gallery page
    MULTI = 'multi'  # listing page linking to many galleries


class JobState(str, Enum):
    IDLE = 'idle'
    EXTRACTING_LINKS = 'extracting_links'
    EXTRACTING_IMAGES = 'extracting_images'
    DOWNLOADING = 'downloading'
    ARCHIVING = 'archiving'
    PUBLISHING = 'publishing'
    FAILED = 'failed'


@dataclass
class Job:
    """State of one pipeline run. Owned exclusively by the orchestrator."""
    url: str
    mode: JobMode
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: JobState = JobState.IDLE
    scratch_dir: Optional[str] = None
    galleries: List[Gallery] = field(default_factory=list)
    results: Dict[str, DownloadResult] = field(default_factory=dict)
    archive_paths: List[str] = field(default_factory=list)
    published_paths: List[str] = field(default_factory=list)
    error: Optional[BaseException] = None
    history: List[JobState] = field(default_factory=list)

    @property
    def result(self) -> DownloadResult:
        """Download counts across all galleries."""
        return DownloadResult.combine(self.results.values())

    @property
    def image_count(self) -> int:
        return sum(len(g.urls) for g in self.galleries)


@dataclass(frozen=True)
class ProgressEvent:
    """Structured progress payload for the presentation layer."""
    job_id: str
    state: JobState
    message: str = ''
    current: int = 0
    total: int = 0
    success: int = 0
    failed: int = 0
    gallery_name: Optional[str] = None
    completed_galleries: Optional[int] = None
    total_galleries: Optional[int] = None


@dataclass
class PipelineResult:
    """What a successful job hands back: published files plus counts."""
    job_id: str
    mode: JobMode
    name: str
    files: List[str]
    urls: List[str]
    total_size: int
    gallery_count: int
    result: DownloadResult
