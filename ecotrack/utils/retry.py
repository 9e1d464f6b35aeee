"""Bounded retry with exponential backoff for remote calls."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from ecotrack.config.settings import RetryConfig
from ecotrack.utils.logging import get_logger

logger = get_logger("utils.retry")

T = TypeVar("T")


def backoff_delays(retry: RetryConfig) -> list[float]:
    """
    Delays slept between consecutive attempts.

    The first delay is ``base_delay`` and each following one is multiplied by
    ``backoff_factor``, capped at ``max_backoff``. There is one delay fewer
    than there are attempts.
    """
    delays = []
    delay = retry.base_delay
    for _ in range(retry.max_attempts - 1):
        delays.append(min(delay, retry.max_backoff))
        delay *= retry.backoff_factor
    return delays


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    retry: RetryConfig,
    retry_on: tuple[type[BaseException], ...],
    operation_name: str,
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
) -> T:
    """
    Run ``operation`` until it succeeds or the attempt budget is spent.

    Only exceptions listed in ``retry_on`` are retried; anything else
    propagates immediately. After the last attempt the final exception is
    re-raised unchanged.

    Args:
        operation: Zero-argument coroutine factory
        retry: Attempt ceiling and backoff settings
        retry_on: Exception types considered transient
        operation_name: Name used in log events
        sleep: Sleep coroutine (defaults to asyncio.sleep)

    Returns:
        The operation's result
    """
    sleep = sleep or asyncio.sleep
    delays = backoff_delays(retry)

    for attempt in range(1, retry.max_attempts + 1):
        try:
            return await operation()
        except retry_on as e:
            if attempt >= retry.max_attempts:
                logger.error(
                    "retry_exhausted",
                    operation=operation_name,
                    attempts=attempt,
                    error=str(e),
                )
                raise

            delay = delays[attempt - 1]
            logger.warning(
                "retrying",
                operation=operation_name,
                attempt=attempt,
                max_attempts=retry.max_attempts,
                delay_seconds=delay,
                error=str(e),
            )
            await sleep(delay)

    raise AssertionError("unreachable")  # max_attempts >= 1 is validated
