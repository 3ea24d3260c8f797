"""Retry logic with exponential backoff for coroutine functions"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Type, Tuple
from functools import wraps


logger = logging.getLogger(__name__)


def retry_with_backoff(
    func: Optional[Callable[..., Awaitable]] = None,
    max_retries: int = 3,
    initial_delay: float = 1.0,
    backoff_factor: float = 2.0,
    max_delay: float = 30.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Callable:
    """Retry a coroutine function with exponential backoff.

    Can be used as a decorator with or without arguments. When the raised
    exception carries a ``retry_after`` attribute (seconds, e.g. from a
    Retry-After header) that value replaces the computed delay.

    Args:
        func: Coroutine function to retry (when used without arguments)
        max_retries: Maximum number of retry attempts
        initial_delay: Initial delay in seconds
        backoff_factor: Multiplier for delay on each retry
        max_delay: Upper bound for any single delay
        exceptions: Tuple of exceptions to catch and retry
        sleep: Coroutine used to wait between attempts

    Returns:
        Decorated function or decorator

    Example:
        @retry_with_backoff(max_retries=3, exceptions=(ThrottledError,))
        async def fetch():
            ...
    """
    def decorator(f: Callable[..., Awaitable]) -> Callable[..., Awaitable]:
        @wraps(f)
        async def wrapper(*args, **kwargs):
            delay = initial_delay
            last_exception = None

            for attempt in range(max_retries + 1):
                try:
                    return await f(*args, **kwargs)
                except exceptions as e:
                    last_exception = e
                    if attempt < max_retries:
                        hint = getattr(e, "retry_after", None)
                        wait = min(hint if hint is not None else delay, max_delay)
                        logger.warning(
                            f"{f.__name__} failed (attempt {attempt + 1}/{max_retries + 1}): {e}. "
                            f"Retrying in {wait:.1f}s..."
                        )
                        await sleep(wait)
                        delay *= backoff_factor
                    else:
                        logger.error(
                            f"{f.__name__} failed after {max_retries + 1} attempts: {e}"
                        )

            raise last_exception

        return wrapper

    # Support both @retry_with_backoff and @retry_with_backoff()
    if func is not None:
        return decorator(func)
    return decorator
