"""Tests for the async retry helper."""

from __future__ import annotations

import asyncio

import pytest

from pst_graph_migration.utils.retry import RetryPolicy, retry_async

NO_WAIT = RetryPolicy(attempts=3, base_delay_s=0.0, max_delay_s=0.0, jitter_s=0.0)


def test_retries_until_success() -> None:
    """Retryable failures are repeated up to the attempt limit."""
    calls = 0

    async def flaky() -> str:
        nonlocal calls
        calls += 1
        if calls < 3:
            raise ConnectionError("try again")
        return "ok"

    result = asyncio.run(retry_async(flaky, policy=NO_WAIT, should_retry=lambda _exc: True))
    assert result == "ok"
    assert calls == 3


def test_non_retryable_errors_raise_immediately() -> None:
    """The predicate decides which failures are transient."""
    calls = 0

    async def broken() -> None:
        nonlocal calls
        calls += 1
        raise ValueError("bad request")

    with pytest.raises(ValueError):
        asyncio.run(retry_async(broken, policy=NO_WAIT, should_retry=lambda _exc: False))
    assert calls == 1


def test_delay_honors_retry_after_and_cap() -> None:
    """Backoff doubles per attempt, is capped and never undercuts Retry-After."""
    policy = RetryPolicy(attempts=5, base_delay_s=1.0, max_delay_s=4.0, jitter_s=0.0)
    assert policy.delay_for(1) == 1.0
    assert policy.delay_for(2) == 2.0
    assert policy.delay_for(5) == 4.0
    assert policy.delay_for(1, hint_s=3.0) == 3.0
