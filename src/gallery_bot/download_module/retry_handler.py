"""
Retry Handler - Download Module

Classify per-file failures and compute capped exponential backoff.
"""

import asyncio
import logging
import random

import aiohttp

logger = logging.getLogger(__name__)

RETRY_HTTP_STATUS = {408, 425, 429, 500, 502, 503, 504}


class HTTPStatusError(Exception):
    """Non-2xx response for a file download."""

    def __init__(self, status: int, url: str):
        self.status = status
        self.url = url
        super().__init__(f"HTTP {status} for {url}")


class RetryHandler:
    """
    Retry Handler - Exponential Backoff

    Handles per-file failures with a small fixed attempt limit:
    - Max attempts: 3
    - Base delay: 1 second
    - Exponential backoff: 1s, 2s, 4s ... capped at 10s (plus jitter)
    """

    MAX_ATTEMPTS = 3
    BASE_DELAY = 1.0  # seconds
    MAX_DELAY = 10.0  # seconds

    def __init__(self, max_attempts: int = None, base_delay: float = None,
                 max_delay: float = None):
        """
        Initialize retry handler.

        Args:
            max_attempts: Total attempts per file, including the first
            base_delay: Delay before the first retry
            max_delay: Upper bound for any single delay
        """
        self.max_attempts = max(1, max_attempts or self.MAX_ATTEMPTS)
        self.base_delay = self.BASE_DELAY if base_delay is None else base_delay
        self.max_delay = self.MAX_DELAY if max_delay is None else max_delay

    @staticmethod
    def is_transient(error: BaseException) -> bool:
        """
        Check whether a failure is worth retrying.

        Connection problems, timeouts and throttling/5xx statuses are
        transient; 404 and friends, empty bodies and disk errors are not.
        """
        if isinstance(error, HTTPStatusError):
            return error.status in RETRY_HTTP_STATUS
        if isinstance(error, asyncio.TimeoutError):
            return True
        if isinstance(error, (aiohttp.ClientConnectionError, aiohttp.ClientPayloadError)):
            return True
        return False

    def get_delay(self, attempt: int) -> float:
        """Delay before retry number `attempt` (0-based)."""
        delay = min(self.max_delay, self.base_delay * (2 ** attempt))
        if delay <= 0:
            return 0.0
        return delay + random.uniform(0, delay * 0.1)

    def should_retry(self, error: BaseException, attempt: int) -> bool:
        """
        Decide whether attempt number `attempt` (1-based) gets another try.
        """
        return attempt < self.max_attempts and self.is_transient(error)

    async def wait(self, attempt: int) -> None:
        delay = self.get_delay(attempt - 1)
        logger.debug(f"Retrying in {delay:.2f}s (attempt {attempt}/{self.max_attempts})")
        await asyncio.sleep(delay)
