"""Exponential backoff for transient provider failures

Only failures that can succeed on a second attempt are retried: network
errors, timeouts, 429 and 5xx. Anything else (bad key, bad request, our
own bugs) is raised on the first attempt.
"""

import asyncio
import logging
import random
from functools import wraps
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx
import openai

from habitforge.resilience.metrics import record_retry

logger = logging.getLogger(__name__)

T = TypeVar('T')

MAX_RETRIES = 3
BASE_DELAY = 1.0
MAX_DELAY = 30.0
JITTER = 0.1

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

# openai.APITimeoutError subclasses APIConnectionError
_ALWAYS_RETRYABLE = (
    httpx.TimeoutException,
    httpx.NetworkError,
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


def is_retryable_error(exc: BaseException) -> bool:
    """Whether a second attempt could plausibly succeed"""
    if isinstance(exc, _ALWAYS_RETRYABLE):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES
    if isinstance(exc, openai.APIStatusError):
        return exc.status_code in RETRYABLE_STATUS_CODES
    return False


def calculate_backoff(attempt: int) -> float:
    """
    Delay before retry number `attempt` (0-based).

    BASE_DELAY doubled per attempt, capped at MAX_DELAY, with +/-10% jitter
    so parallel requests do not retry in lockstep: ~1s, ~2s, ~4s, ...
    """
    delay = min(BASE_DELAY * 2 ** attempt, MAX_DELAY)
    return max(delay + random.uniform(-JITTER, JITTER) * delay, 0.0)


async def retry_with_backoff(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    max_retries: int = MAX_RETRIES,
    api_name: Optional[str] = None,
    **kwargs: Any
) -> T:
    """
    Await func(*args, **kwargs), retrying transient failures.

    Args:
        func: Coroutine function to call
        max_retries: Retries after the first attempt
        api_name: Provider label for the retry counter

    Raises:
        The last exception once retries are exhausted, or the first
        non-retryable one
    """
    label = api_name or getattr(func, "__name__", "provider")
    attempt = 0

    while True:
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            if not is_retryable_error(e):
                logger.warning(f"[RETRY] {label}: not retrying {type(e).__name__}: {e}")
                raise
            if attempt >= max_retries:
                logger.error(f"[RETRY] {label}: giving up after {max_retries} retries")
                raise

            delay = calculate_backoff(attempt)
            attempt += 1
            record_retry(label)
            logger.info(
                f"[RETRY] {label}: {type(e).__name__}, retry {attempt}/{max_retries} in {delay:.2f}s"
            )
            await asyncio.sleep(delay)


def with_retry(max_retries: int = MAX_RETRIES, api_name: Optional[str] = None) -> Callable:
    """Decorator form of retry_with_backoff"""
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await retry_with_backoff(
                func, *args, max_retries=max_retries, api_name=api_name, **kwargs
            )
        return wrapper
    return decorator
