"""Retry policy and a generic retry-with-backoff combinator."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from authkeeper.errors import RetryExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[Any]]
OnRetry = Callable[[int, float, BaseException], None]


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff configuration.

    Attributes:
        max_retries: Additional attempts after the first one fails.
        retry_delay: Base delay in seconds. The wait before retry n
            (0-based) is ``retry_delay * 2 ** n``.
    """

    max_retries: int = 3
    retry_delay: float = 1.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if self.retry_delay < 0:
            raise ValueError("retry_delay must be non-negative")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, attempt: int) -> float:
        """Delay in seconds before retrying after the given failed attempt.

        Args:
            attempt: 0-based index of the attempt that just failed.
        """
        if attempt < 0:
            raise ValueError("attempt must be non-negative")
        return self.retry_delay * (2 ** attempt)

    def delays(self) -> list[float]:
        """All backoff delays this policy can produce, in order."""
        return [self.delay_for(n) for n in range(self.max_retries)]


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    sleep: Sleep = asyncio.sleep,
    on_retry: OnRetry | None = None,
) -> T:
    """Run an async operation, retrying failures with exponential backoff.

    Args:
        operation: Zero-argument coroutine function to run.
        policy: Retry budget and delays.
        sleep: Awaitable sleep used between attempts.
        on_retry: Called with (retry number, delay, error) before each wait.

    Returns:
        The first successful result.

    Raises:
        RetryExhaustedError: After max_retries + 1 failed attempts.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            if attempt >= policy.max_retries:
                raise RetryExhaustedError(attempt + 1, e) from e

            delay = policy.delay_for(attempt)
            logger.debug(
                f"Attempt {attempt + 1}/{policy.max_attempts} failed ({e}); "
                f"retrying in {delay:.3f}s"
            )
            if on_retry is not None:
                on_retry(attempt + 1, delay, e)
            await sleep(delay)
            attempt += 1
