"""
Retry-with-backoff helper shared by the credential manager, the paginated
fetcher and the fee aggregator.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import httpx

from marketsync.core.exceptions import EbayAPIError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 503})


def is_retryable_error(exc: BaseException) -> bool:
    """Transient failures only: throttling, unavailability, timeouts and dropped connections."""
    if isinstance(exc, EbayAPIError):
        return exc.retryable
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES
    return isinstance(
        exc,
        (
            httpx.ConnectTimeout,
            httpx.ReadTimeout,
            httpx.WriteTimeout,
            httpx.PoolTimeout,
            httpx.NetworkError,
            httpx.RemoteProtocolError,
            ConnectionError,
        ),
    )


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    return min(base_delay * (2 ** attempt), max_delay)


async def retry_with_backoff(
    func: Callable[[], Awaitable[Any]],
    label: str,
    is_retryable: Callable[[BaseException], bool] = is_retryable_error,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 5.0,
    sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
) -> Any:
    """
    Await ``func()`` up to ``max_attempts`` times.

    Only exceptions accepted by ``is_retryable`` are retried; anything else
    propagates on the first occurrence. When the attempts are exhausted the last
    exception is re-raised so the caller can decide how to degrade.
    """
    sleep = sleep or asyncio.sleep
    last_exception: Optional[BaseException] = None

    for attempt in range(max_attempts):
        try:
            return await func()
        except Exception as exc:
            if not is_retryable(exc):
                raise
            last_exception = exc
            if attempt < max_attempts - 1:
                delay = backoff_delay(attempt, base_delay, max_delay)
                logger.warning(
                    "%s attempt %s/%s failed (%s). Retrying in %.2fs",
                    label,
                    attempt + 1,
                    max_attempts,
                    exc,
                    delay,
                )
                await sleep(delay)
            else:
                logger.error("%s failed after %s attempts: %s", label, max_attempts, exc)

    raise last_exception
