"""
Retry with exponential backoff for async provider calls
"""
import asyncio
import logging
from functools import wraps
from typing import Any, Awaitable, Callable, Optional, TypeVar

import config
from services.errors import ProviderTransientError

logger = logging.getLogger(__name__)

T = TypeVar('T')


def retry_with_backoff(
    max_retries: Optional[int] = None,
    base_delay: Optional[float] = None,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    retry_on: tuple = (ProviderTransientError,)
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Decorator retrying a coroutine on the given exceptions.

    Args:
        max_retries: Retry attempts after the first call; None reads PROVIDER_MAX_RETRIES per call
        base_delay: Initial delay in seconds; None reads PROVIDER_RETRY_BASE_DELAY per call
        max_delay: Maximum delay between retries in seconds
        exponential_base: Base for exponential backoff calculation
        retry_on: Tuple of exceptions to retry on; anything else propagates immediately
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            retries = config.PROVIDER_MAX_RETRIES if max_retries is None else max_retries
            delay_base = config.PROVIDER_RETRY_BASE_DELAY if base_delay is None else base_delay
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except retry_on as e:
                    if attempt >= retries:
                        logger.error(f"Max retries ({retries}) exceeded for {func.__name__}. Final error: {str(e)}")
                        raise
                    delay = min(delay_base * (exponential_base ** attempt), max_delay)
                    logger.warning(
                        f"Error in {func.__name__} (attempt {attempt + 1}/{retries + 1}): "
                        f"{type(e).__name__}: {str(e)}. Retrying in {delay:.1f} seconds..."
                    )
                    await asyncio.sleep(delay)
                    attempt += 1

        return wrapper
    return decorator
