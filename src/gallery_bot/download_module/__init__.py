"""
Download Module - Batch image downloads

Contains:
- ImageDownloader: bounded-concurrency batch downloader
- RetryHandler: transient-failure classification and backoff
"""

from .retry_handler import RetryHandler, HTTPStatusError, RETRY_HTTP_STATUS
from .image_downloader import (
    ImageDownloader,
    Gallery,
    DownloadResult,
    DownloadProgress,
    GalleryProgress,
    build_filename,
)

__all__ = [
    'RetryHandler',
    'HTTPStatusError',
    'RETRY_HTTP_STATUS',
    'ImageDownloader',
    'Gallery',
    'DownloadResult',
    'DownloadProgress',
    'GalleryProgress',
    'build_filename'
]
