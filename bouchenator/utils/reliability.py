"""
Reliability patterns for Bouchenator.

Provides retry logic for transient upstream failures, cancellation-based
timeouts, step timing and demo pacing helpers.
"""

import asyncio
import logging
import time
from functools import wraps
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from bouchenator.core.exceptions import ExternalServiceError, RateLimitError
from bouchenator.core.exceptions import TimeoutError as BouchenatorTimeoutError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

TRANSIENT_EXCEPTIONS = (RateLimitError, ExternalServiceError)


def raise_for_transient(service: str, response: httpx.Response) -> None:
    """
    Translate retryable HTTP statuses into typed exceptions.

    429 becomes ``RateLimitError`` and 5xx becomes ``ExternalServiceError`` so
    ``with_retry`` can act on them; other statuses are left to the caller.
    """
    if response.status_code == 429:
        retry_after = response.headers.get("retry-after")
        try:
            delay = float(retry_after) if retry_after else None
        except ValueError:
            delay = None
        raise RateLimitError(f"{service} rate limited", retry_after=delay)
    if response.status_code >= 500:
        raise ExternalServiceError(service, "server error", status_code=response.status_code)


def with_retry(
    max_attempts: int = 2,
    backoff_base: float = 0.5,
    backoff_max: float = 4.0,
    retry_exceptions: tuple = TRANSIENT_EXCEPTIONS,
):
    """Decorator adding exponential-backoff retry to an async callable."""

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(max_attempts),
                wait=wait_exponential(multiplier=backoff_base, min=backoff_base, max=backoff_max),
                retry=retry_if_exception_type(retry_exceptions),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=True,
            ):
                with attempt:
                    try:
                        return await func(*args, **kwargs)
                    except retry_exceptions as e:
                        logger.warning(
                            "Retrying operation",
                            function=func.__name__,
                            error=str(e),
                            error_type=type(e).__name__,
                        )
                        raise

        return wrapper

    return decorator


async def with_timeout(awaitable: Awaitable[T], timeout_seconds: float, operation: str) -> T:
    """
    Await ``awaitable`` under a hard deadline.

    The pending work is cancelled when the deadline passes and a typed
    ``TimeoutError`` is raised so callers treat it as an ordinary failure.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_seconds)
    except asyncio.TimeoutError as e:
        raise BouchenatorTimeoutError(
            f"{operation} timed out after {timeout_seconds:g} seconds"
        ) from e


def elapsed_ms(t0: float) -> int:
    """Milliseconds since ``t0`` (a ``time.perf_counter`` reading)."""
    return round((time.perf_counter() - t0) * 1000)


async def enforce_min_duration(t0: float, min_ms: int) -> None:
    """Sleep until at least ``min_ms`` have passed since ``t0``; no-op when ``min_ms`` is 0."""
    if min_ms <= 0:
        return
    remaining = min_ms - elapsed_ms(t0)
    if remaining > 0:
        await asyncio.sleep(remaining / 1000)


def track_performance(operation_name: str):
    """
    Decorator to track duration of async operations.

    Args:
        operation_name: Name of the operation for logging
    """

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            start_time = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    "Performance tracking failed",
                    operation=operation_name,
                    duration_ms=elapsed_ms(start_time),
                    status="failed",
                    error=str(e),
                )
                raise
            logger.debug(
                "Performance tracking completed",
                operation=operation_name,
                duration_ms=elapsed_ms(start_time),
                status="success",
            )
            return result

        return wrapper

    return decorator


def describe_http_error(error: Optional[BaseException]) -> str:
    """Short, secret-free description of a fetch failure."""
    if error is None:
        return "unknown error"
    if isinstance(error, (httpx.TimeoutException, asyncio.TimeoutError, BouchenatorTimeoutError)):
        return "timeout"
    if isinstance(error, httpx.HTTPStatusError):
        return f"HTTP {error.response.status_code}"
    return f"{type(error).__name__}: {error}"[:160]
