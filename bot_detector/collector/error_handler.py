"""Retry logic for upstream API requests."""

import asyncio
import logging
from functools import wraps
from typing import Any, Awaitable, Callable, Optional, TypeVar, cast

from aiohttp.client_exceptions import ClientResponseError

from bot_detector.collector.rate_limiter import RateLimiter
from bot_detector.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

T = TypeVar("T")
AsyncFunc = Callable[..., Awaitable[T]]


def with_exponential_backoff(
    max_retries: int = 5,
    initial_backoff: float = 1.0,
    max_backoff: float = 32.0,
    backoff_factor: float = 2.0,
    rate_limiter: Optional[RateLimiter] = None,
    max_rate_limit_waits: int = 3,
) -> Callable[[AsyncFunc[T]], AsyncFunc[T]]:
    """
    Decorator for retrying async functions with exponential backoff.

    Server errors (5xx) and transport errors are retried up to ``max_retries``
    times. A 429 response waits out ``Retry-After`` through the rate limiter
    without consuming a retry, at most ``max_rate_limit_waits`` times. Other
    client errors and configuration errors are raised immediately.

    Args:
        max_retries: Maximum number of retry attempts
        initial_backoff: Initial backoff time in seconds
        max_backoff: Maximum backoff time in seconds
        backoff_factor: Multiplier for backoff time between retries
        rate_limiter: Optional rate limiter for handling 429 responses
        max_rate_limit_waits: Maximum number of 429 waits before giving up

    Returns:
        Decorator function
    """
    def decorator(func: AsyncFunc[T]) -> AsyncFunc[T]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            retries = 0
            rate_limit_waits = 0
            backoff = initial_backoff

            while True:
                try:
                    return await func(*args, **kwargs)

                except ConfigurationError:
                    raise

                except ClientResponseError as e:
                    if e.status == 429 and rate_limiter and rate_limit_waits < max_rate_limit_waits:
                        rate_limit_waits += 1
                        retry_after = e.headers.get("Retry-After") if e.headers else None
                        await rate_limiter.handle_429(retry_after)
                        continue

                    if 500 <= e.status < 600:
                        if retries >= max_retries:
                            logger.error(f"Max retries ({max_retries}) exceeded: {e}")
                            raise

                        logger.warning(
                            f"Server error {e.status}: {e}. "
                            f"Retrying in {backoff:.2f}s ({retries+1}/{max_retries})"
                        )
                        await asyncio.sleep(backoff)
                        retries += 1
                        backoff = min(backoff * backoff_factor, max_backoff)
                        continue

                    logger.warning(f"Client error {e.status}: {e}")
                    raise

                except Exception as e:
                    if retries >= max_retries:
                        if max_retries:
                            logger.error(f"Max retries ({max_retries}) exceeded: {e}")
                        raise

                    logger.warning(
                        f"Error: {e}. "
                        f"Retrying in {backoff:.2f}s ({retries+1}/{max_retries})"
                    )
                    await asyncio.sleep(backoff)
                    retries += 1
                    backoff = min(backoff * backoff_factor, max_backoff)
                    continue

        return cast(AsyncFunc[T], wrapper)
    return decorator
