"""Retry with exponential backoff for calls to external services."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# Exceptions that should trigger retry
RETRYABLE_EXCEPTIONS: tuple[type[BaseException], ...] = (
    asyncio.TimeoutError,
    ConnectionError,
    httpx.TransportError,
)


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    name = getattr(retry_state.fn, "__qualname__", "call")
    logger.info(f"Retrying {name} (attempt {retry_state.attempt_number}): {error!r}")


async def with_retry(
    func: Callable[P, Awaitable[T]],
    *args: P.args,
    max_attempts: int = 3,
    min_wait: float = 1.0,
    max_wait: float = 10.0,
    retry_on: tuple[type[BaseException], ...] = RETRYABLE_EXCEPTIONS,
    **kwargs: P.kwargs,
) -> T:  # type: ignore[return-value]
    """Execute an async function with exponential backoff retry.

    Only exceptions in ``retry_on`` are retried; anything else propagates
    immediately. After the last attempt the original exception is re-raised.
    """
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(retry_on),
        before_sleep=_log_retry,
        reraise=True,
    ):
        with attempt:
            return await func(*args, **kwargs)
