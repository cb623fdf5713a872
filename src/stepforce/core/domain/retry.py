"""Bounded retry with exponential backoff for model calls."""

import asyncio
from typing import Awaitable, Callable, TypeVar

import structlog

from stepforce.config.settings import RetryPolicy
from stepforce.core.domain.errors import ModelInvocationError

T = TypeVar("T")

logger = structlog.get_logger().bind(component="retry")


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    **log_context,
) -> T:
    """
    Run `operation`, retrying transient ModelInvocationErrors.

    Permanent errors are re-raised immediately; a transient error on the
    last attempt is re-raised as is. Cancellation interrupts both the
    operation and the backoff sleep.
    """
    attempt = 1
    while True:
        try:
            return await operation()
        except ModelInvocationError as e:
            e.attempts = attempt
            if not e.transient or attempt >= policy.max_attempts:
                logger.error(
                    "llm_invocation_failed",
                    error_type=e.error_type,
                    error=str(e)[:200],
                    transient=e.transient,
                    attempts=attempt,
                    **log_context,
                )
                raise

            backoff = policy.backoff_for(attempt)
            logger.warning(
                "llm_invocation_retry",
                error_type=e.error_type,
                attempt=attempt,
                backoff_seconds=backoff,
                **log_context,
            )
            await sleep(backoff)
            attempt += 1
