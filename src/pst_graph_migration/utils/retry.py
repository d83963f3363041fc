"""Exponential backoff for async calls."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from pst_graph_migration.config.settings import RetrySettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently to retry a failing call."""

    attempts: int = 1
    base_delay_s: float = 0.5
    max_delay_s: float = 30.0
    jitter_s: float = 0.25

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> RetryPolicy:
        """Create a policy from retry settings.

        Args:
            settings: Validated retry settings.

        Returns:
            RetryPolicy instance.
        """
        return cls(
            attempts=settings.attempts,
            base_delay_s=settings.base_delay_s,
            max_delay_s=settings.max_delay_s,
            jitter_s=settings.jitter_s,
        )

    def delay_for(self, attempt: int, *, hint_s: float | None = None) -> float:
        """Return the sleep before the next attempt.

        Args:
            attempt: 1-based number of the attempt that just failed.
            hint_s: Server-provided delay (``Retry-After``), used as a floor.

        Returns:
            Delay in seconds.
        """
        delay = min(self.max_delay_s, self.base_delay_s * (2 ** (attempt - 1)))
        if hint_s is not None:
            delay = max(delay, min(hint_s, self.max_delay_s))
        return delay + random.uniform(0, self.jitter_s)


async def retry_async[T](
    fn: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy,
    should_retry: Callable[[BaseException], bool],
    delay_hint: Callable[[BaseException], float | None] = lambda _exc: None,
) -> T:
    """Retry an async function with exponential backoff.

    Args:
        fn: Async callable to execute.
        policy: Attempt count and delays.
        should_retry: Predicate deciding whether an exception is transient.
        delay_hint: Extracts a server-requested delay from an exception.

    Returns:
        Result of the callable.

    Raises:
        BaseException: The last exception if it is not retryable or retries are exhausted.
    """
    attempt = 1
    while True:
        try:
            return await fn()
        except Exception as exc:
            if attempt >= policy.attempts or not should_retry(exc):
                raise
            delay = policy.delay_for(attempt, hint_s=delay_hint(exc))
            logger.warning(
                "Transient failure (attempt %d/%d), retrying in %.1fs: %s",
                attempt,
                policy.attempts,
                delay,
                exc,
            )
            await asyncio.sleep(delay)
            attempt += 1
