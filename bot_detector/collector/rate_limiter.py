"""Rate limiting functionality for upstream API requests."""

import asyncio
import logging
import time
from typing import Any, Dict, Optional

from bot_detector.config import RateLimitConfig

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Fixed-interval gate for upstream requests.

    Consecutive requests are spaced at least ``min_request_interval_ms`` apart.
    Slots are reserved under a lock, so the spacing also holds when several
    coroutines share one limiter. Reddit's X-Ratelimit headers are honoured on
    top of the fixed spacing.
    """

    def __init__(self, config: RateLimitConfig):
        """
        Initialize the rate limiter with configuration.

        Args:
            config: Rate limiting configuration
        """
        self.config = config
        self.remaining_calls: Optional[int] = None
        self.reset_timestamp: Optional[float] = None
        self.last_request_time = 0.0
        self.min_interval = self.config.min_request_interval_ms / 1000.0
        self._lock = asyncio.Lock()

    async def pre_request(self) -> None:
        """
        Wait until the next request slot is available and claim it.

        This should be called before each upstream request.
        """
        async with self._lock:
            now = time.time()
            elapsed = now - self.last_request_time
            if elapsed < self.min_interval:
                await asyncio.sleep(self.min_interval - elapsed)

            if (self.remaining_calls is not None and
                self.reset_timestamp is not None and
                self.remaining_calls < self.config.min_remaining_calls):

                wait_time = self.reset_timestamp - time.time() + self.config.sleep_buffer_sec
                if wait_time > 0:
                    logger.info(f"Rate limit approaching: {self.remaining_calls} calls remaining. "
                                f"Sleeping for {wait_time:.2f}s until reset.")
                    await asyncio.sleep(wait_time)
                self.remaining_calls = None
                self.reset_timestamp = None

            self.last_request_time = time.time()

    def update_from_headers(self, headers: Dict[str, Any]) -> None:
        """
        Update rate limit tracking based on Reddit API response headers.

        Args:
            headers: Response headers from an upstream request
        """
        lowered = {str(k).lower(): v for k, v in headers.items()}

        if "x-ratelimit-remaining" in lowered:
            try:
                self.remaining_calls = int(float(lowered["x-ratelimit-remaining"]))
            except (ValueError, TypeError):
                logger.warning("Failed to parse x-ratelimit-remaining header")

        if "x-ratelimit-reset" in lowered:
            try:
                reset_seconds = float(lowered["x-ratelimit-reset"])
                self.reset_timestamp = time.time() + reset_seconds
            except (ValueError, TypeError):
                logger.warning("Failed to parse x-ratelimit-reset header")

        if self.remaining_calls is not None and self.reset_timestamp is not None:
            reset_in = self.reset_timestamp - time.time()
            logger.debug(f"Rate limit status: {self.remaining_calls} calls remaining, "
                         f"reset in {reset_in:.2f}s")

    async def handle_429(self, retry_after: Optional[str] = None) -> None:
        """
        Handle a 429 Too Many Requests response.

        Args:
            retry_after: Value of the Retry-After header, if available
        """
        try:
            wait_seconds = float(retry_after) if retry_after else 60.0
        except (ValueError, TypeError):
            wait_seconds = 60.0

        wait_seconds += self.config.sleep_buffer_sec

        logger.warning(f"Rate limited (429). Waiting for {wait_seconds:.2f}s before retrying.")
        await asyncio.sleep(wait_seconds)

        self.remaining_calls = None
        self.reset_timestamp = None
