"""Retry logic with exponential backoff"""

import asyncio
from typing import Awaitable, Callable, Any, Tuple, Type
from copilot.utils.logging import get_logger

logger = get_logger(__name__)


async def retry_with_exponential_backoff(
    func: Callable[..., Awaitable[Any]],
    *args,
    max_retries: int = 3,
    base_delay: float = 1,
    max_delay: float = 8,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    **kwargs
) -> Any:
    """
    Await func, retrying with exponential backoff on selected errors

    Args:
        func: Coroutine function to retry
        max_retries: Maximum attempts (including the first)
        base_delay: Base delay in seconds
        max_delay: Max delay cap in seconds
        retry_on: Exception types that trigger a retry; anything else propagates
        *args, **kwargs: Arguments to pass to func

    Returns:
        Function result

    Raises:
        The last exception once all attempts are exhausted
    """
    for attempt in range(max_retries):
        try:
            return await func(*args, **kwargs)

        except retry_on as e:
            if attempt == max_retries - 1:
                logger.error(f"All {max_retries} retry attempts exhausted", error=str(e))
                raise

            delay = min(base_delay * (2 ** attempt), max_delay)
            logger.warning(f"Attempt {attempt + 1} failed, retrying in {delay}s", error=str(e))
            await asyncio.sleep(delay)
