"""
Retry handler for transactions aborted by a concurrent writer.
Implements exponential backoff around a whole unit of work; nothing of an
aborted attempt was applied, so re-running it from the start is safe.
"""
import asyncio
import logging
from typing import Any, Callable, Optional

from location_sync.config import get_settings
from location_sync.exceptions import ConcurrencyConflict

logger = logging.getLogger(__name__)


async def retry_on_conflict(
    func: Callable[..., Any],
    *args,
    max_retries: Optional[int] = None,
    initial_delay: Optional[float] = None,
    max_delay: float = 2.0,
    exponential_base: float = 2.0,
    **kwargs
) -> Any:
    """
    Call an async function, retrying with exponential backoff on ConcurrencyConflict.

    Args:
        func: Async function running one complete unit of work
        max_retries: Retries after the first attempt (default: settings.conflict_max_retries)
        initial_delay: First delay in seconds (default: settings.conflict_retry_delay)
        max_delay: Upper bound for one delay
        exponential_base: Base for exponential backoff

    Raises:
        ConcurrencyConflict: the last conflict, once retries are exhausted
    """
    settings = get_settings()
    if max_retries is None:
        max_retries = settings.conflict_max_retries
    if initial_delay is None:
        initial_delay = settings.conflict_retry_delay

    attempt = 0
    while True:
        try:
            return await func(*args, **kwargs)
        except ConcurrencyConflict as e:
            attempt += 1
            if attempt > max_retries:
                logger.error(f"All {max_retries + 1} attempts aborted by concurrent writes. Last error: {e}")
                raise

            delay = min(initial_delay * (exponential_base ** (attempt - 1)), max_delay)
            logger.info(f"Concurrent write conflict (attempt {attempt}), retrying in {delay:.2f}s")
            await asyncio.sleep(delay)
