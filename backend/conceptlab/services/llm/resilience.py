"""
LLM Call Resilience

Two small combinators applied around every provider call:

- with_timeout: races one call against a fixed deadline
- with_retry: re-invokes a failing call with a linearly increasing delay
  (attempt * base_delay) and raises LLMServiceError once attempts run out

They are independent of the transport and of each other, so the gateway
composes them (retry around timeout) and tests can exercise each in isolation
with an injected sleep.

Usage:
    from conceptlab.services.llm.resilience import with_retry, with_timeout

    result = await with_retry(
        lambda: with_timeout(lambda: client.complete(...), 30, "concept_extraction"),
        max_attempts=3,
        base_delay=1.0,
        operation="concept_extraction",
    )
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from conceptlab.errors import LLMServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


async def with_timeout(
    factory: Callable[[], Awaitable[T]],
    seconds: float,
    operation: str,
) -> T:
    """
    Run one call, failing with LLMServiceError if it exceeds the deadline.

    Args:
        factory: Zero-argument callable producing the awaitable to run
        seconds: Deadline in seconds
        operation: Operation name for diagnostics

    Returns:
        The awaited result

    Raises:
        LLMServiceError: If the call does not finish in time
    """
    try:
        return await asyncio.wait_for(factory(), timeout=seconds)
    except asyncio.TimeoutError as e:
        raise LLMServiceError(
            f"LLM request timed out after {seconds:g}s",
            operation=operation,
        ) from e


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    max_attempts: int,
    base_delay: float,
    operation: str,
    sleep: SleepFn = asyncio.sleep,
) -> T:
    """
    Call fn until it succeeds or max_attempts calls have failed.

    The delay before retry n (1-based) is n * base_delay.

    Args:
        fn: Zero-argument async callable, invoked once per attempt
        max_attempts: Total number of attempts (at least 1)
        base_delay: Base delay in seconds
        operation: Operation name for diagnostics
        sleep: Awaitable sleep used between attempts

    Returns:
        The first successful result

    Raises:
        LLMServiceError: After the final attempt fails. The last underlying
            exception is attached as last_error and __cause__.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(max(1, max_attempts)),
        wait=wait_incrementing(start=base_delay, increment=base_delay),
        retry=retry_if_exception_type(Exception),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        sleep=sleep,
    )

    try:
        async for attempt in retrying:
            with attempt:
                return await fn()
    except RetryError as e:
        last_error = e.last_attempt.exception()
        attempts = e.last_attempt.attempt_number
        logger.error(f"LLM {operation} failed after {attempts} attempts: {last_error}")
        raise LLMServiceError(
            f"LLM {operation} failed after {attempts} attempts: {last_error}",
            operation=operation,
            attempts=attempts,
            last_error=last_error,
        ) from last_error
