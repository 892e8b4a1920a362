from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

import httpx

P = ParamSpec("P")
R = TypeVar("R")

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


def is_retryable(exc: httpx.RequestError | httpx.HTTPStatusError) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES
    return isinstance(exc, (httpx.ConnectError, httpx.TimeoutException))


def retry_with_backoff(
    retries: int = 1,
    delay: float = 0.25,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Retry async HTTP lookups with exponential backoff for transient upstream failures.

    Only httpx transport errors and retryable status codes are retried; anything
    else propagates on the first attempt.
    """

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            current_delay = delay
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except (httpx.RequestError, httpx.HTTPStatusError) as exc:
                    attempt += 1
                    if attempt > retries or not is_retryable(exc):
                        raise
                    logger.debug("Retrying %s after %r (attempt %d)", func.__qualname__, exc, attempt)
                    await asyncio.sleep(current_delay)
                    current_delay *= 2

        return wrapper

    return decorator
