"""Tests for the retry policy value object (core/retry.py)."""

from __future__ import annotations

import pytest

from core.errors import RateLimited, RequestFailed
from core.retry import RetryPolicy


def _flaky(failures: list[BaseException], result="ok"):
    calls = []

    async def fn():
        calls.append(1)
        if failures:
            raise failures.pop(0)
        return result

    return fn, calls


def test_delay_doubles_per_attempt():
    policy = RetryPolicy()
    assert [policy.delay_for(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]


def test_should_retry_respects_kind_and_limit():
    policy = RetryPolicy(max_retries=2)
    assert policy.should_retry(RateLimited(), 1)
    assert policy.should_retry(RateLimited(), 2)
    assert not policy.should_retry(RateLimited(), 3)
    assert not policy.should_retry(RequestFailed(500, "boom"), 1)


@pytest.mark.asyncio
async def test_succeeds_after_rate_limits(sleep):
    fn, calls = _flaky([RateLimited(), RateLimited()])
    assert await RetryPolicy().run(fn, sleep=sleep) == "ok"
    assert len(calls) == 3
    assert sleep.calls == [1.0, 2.0]


@pytest.mark.asyncio
async def test_gives_up_after_max_retries(sleep):
    fn, calls = _flaky([RateLimited() for _ in range(10)])
    with pytest.raises(RateLimited):
        await RetryPolicy(max_retries=3).run(fn, sleep=sleep)
    assert len(calls) == 4  # one try + three retries
    assert sleep.calls == [1.0, 2.0, 4.0]


@pytest.mark.asyncio
async def test_non_retryable_error_raises_immediately(sleep):
    fn, calls = _flaky([RequestFailed(500, "boom")])
    with pytest.raises(RequestFailed):
        await RetryPolicy().run(fn, sleep=sleep)
    assert len(calls) == 1
    assert sleep.calls == []


@pytest.mark.asyncio
async def test_none_policy_never_retries(sleep):
    fn, calls = _flaky([RateLimited()])
    with pytest.raises(RateLimited):
        await RetryPolicy.none().run(fn, sleep=sleep)
    assert len(calls) == 1
    assert sleep.calls == []
