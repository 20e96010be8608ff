"""
RetryExecutor - Retries async operations with exponential backoff.

The retry decision is delegated to a predicate; by default only
``ServiceError`` instances whose ``retryable`` flag is set are retried.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

from loguru import logger

from wikigate.services.errors import is_retryable_error

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """Configuration for retry with backoff. Delays are in seconds."""

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 8.0
    backoff_multiplier: float = 2.0
    is_retryable: Callable[[BaseException], bool] = field(default=is_retryable_error)


class RetryExecutor:
    """
    Executes an operation up to ``max_retries + 1`` times.

    Usage:
        executor = RetryExecutor()
        data = await executor.execute(lambda: fetch(url), RetryPolicy(max_retries=2))
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: RetryPolicy | None = None,
    ) -> T:
        """
        Run ``operation`` with retries.

        Raises:
            The first non-retryable error, or the last error once attempts
            are exhausted.
        """
        policy = policy or self.policy
        delay = policy.base_delay
        attempt = 0

        while True:
            try:
                return await operation()
            except Exception as e:
                if not policy.is_retryable(e):
                    raise

                if attempt >= policy.max_retries:
                    logger.warning(
                        f"Giving up after {attempt + 1} attempts: {type(e).__name__}: {e}"
                    )
                    raise

                logger.debug(
                    f"Attempt {attempt + 1} failed ({type(e).__name__}), retrying in {delay:.2f}s"
                )
                await self._sleep(delay)
                delay = min(delay * policy.backoff_multiplier, policy.max_delay)
                attempt += 1
