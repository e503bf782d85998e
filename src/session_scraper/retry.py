from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")


class BackoffStrategy:
    """Exponential backoff for retry delays.

    Sleeps base * 2^(attempt-1) seconds, capped at max_seconds. No jitter.
    """

    def __init__(self, base_seconds: float = 0.1, max_seconds: float = 10.0) -> None:
        self._base = base_seconds
        self._max = max_seconds

    def get_sleep(self, attempt: int) -> float:
        """Backoff duration in seconds after the given (1-based) failed attempt."""
        return min(self._max, self._base * (2 ** max(attempt - 1, 0)))


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    backoff: BackoffStrategy | None = None,
    should_retry: Callable[[BaseException], bool] | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Call `fn` up to `max_retries` times.

    Errors rejected by `should_retry` propagate immediately; after the last
    attempt the original error propagates unchanged.
    """
    backoff = backoff or BackoffStrategy()
    attempt = 0
    while True:
        attempt += 1
        try:
            return await fn()
        except Exception as exc:
            if should_retry is not None and not should_retry(exc):
                raise
            if attempt >= max_retries:
                raise
            delay = backoff.get_sleep(attempt)
            logger.debug("attempt %d/%d failed (%s); retrying in %.2fs", attempt, max_retries, exc, delay)
            await sleep(delay)
