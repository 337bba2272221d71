"""Retry/backoff utility shared by the transcoder poll loop and the
thumbnail persistence step.

Delay after failed attempt n (0-based):

    2**n * base_delay + uniform(0, base_delay)

The jitter term keeps concurrent invocations from retrying in lockstep.
"""

import asyncio
import functools
import logging
import random
from dataclasses import dataclass

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
)

from .errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_BASE_DELAY = 0.5


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and base delay (seconds) for one use site."""

    max_attempts: int
    base_delay: float = DEFAULT_BASE_DELAY


def backoff_delay(attempt: int, base_delay: float = DEFAULT_BASE_DELAY) -> float:
    """Exponential backoff with uniform jitter, in seconds."""
    return 2 ** attempt * base_delay + random.uniform(0, base_delay)


def with_retries(func, max_retries: int, base_delay: float = DEFAULT_BASE_DELAY,
                 sleep=asyncio.sleep):
    """Wrap an async callable so each call retries on failure.

    Each call makes at most max_retries + 1 attempts, sleeping
    backoff_delay(n) between them, and re-raises the last underlying
    exception once the budget is spent. A zero or negative budget means a
    single attempt. ValidationError is raised immediately.

    Every call builds its own AsyncRetrying, so no attempt counters carry
    over between calls of the wrapped function.

    Args:
        func: Coroutine function to wrap.
        max_retries: Extra attempts after the first one.
        base_delay: Backoff base in seconds.
        sleep: Awaitable sleep, injectable for tests.
    """
    attempts = max(max_retries, 0) + 1

    def _wait(retry_state):
        delay = backoff_delay(retry_state.attempt_number - 1, base_delay)
        logger.warning(
            "%s failed (attempt %d/%d): %r; retrying in %.2fs",
            getattr(func, "__name__", "call"),
            retry_state.attempt_number, attempts,
            retry_state.outcome.exception(), delay,
        )
        return delay

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        retrying = AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=_wait,
            retry=(
                retry_if_exception_type(Exception)
                & retry_if_not_exception_type(ValidationError)
            ),
            reraise=True,
            sleep=sleep,
        )
        async for attempt in retrying:
            with attempt:
                result = await func(*args, **kwargs)
        return result

    return wrapper
