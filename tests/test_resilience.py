"""Tests for eot/resilience.py: retry counts, backoff and timeouts."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from config.config_loader import RetryConfig
from eot.providers.base import ProviderError, ProviderTimeoutError
from eot.resilience import RetryPolicy, backoff_delay, call_with_retry, is_retryable


class FakeSleep:
    """Records requested delays instead of waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def test_policy_from_config():
    policy = RetryPolicy.from_config(RetryConfig(max_retries=4, base_delay_sec=0.5))
    assert policy.max_retries == 4
    assert policy.base_delay_sec == 0.5
    assert policy.max_delay_sec == 30.0


def test_backoff_delay_grows_and_caps():
    policy = RetryPolicy(max_retries=10, base_delay_sec=1.0, backoff_factor=2.0, max_delay_sec=5.0)
    delays = [backoff_delay(policy, n) for n in range(6)]
    assert delays == [1.0, 2.0, 4.0, 5.0, 5.0, 5.0]


def test_is_retryable_classification():
    assert is_retryable(ProviderError("x", "rate limited", retryable=True, status=429))
    assert not is_retryable(ProviderError("x", "bad request", status=400))
    assert is_retryable(ProviderTimeoutError("x", 1.0))
    assert is_retryable(TimeoutError())
    assert is_retryable(ConnectionError())
    assert not is_retryable(ValueError("nope"))


async def test_success_first_attempt():
    thunk = AsyncMock(return_value="ok")
    sleep = FakeSleep()
    result = await call_with_retry(thunk, 1.0, RetryPolicy(), sleep=sleep)
    assert result == "ok"
    assert thunk.await_count == 1
    assert sleep.delays == []


async def test_fatal_error_attempted_once():
    thunk = AsyncMock(side_effect=ProviderError("claude", "invalid key", status=401))
    sleep = FakeSleep()
    with pytest.raises(ProviderError, match="invalid key"):
        await call_with_retry(thunk, 1.0, RetryPolicy(max_retries=3), sleep=sleep)
    assert thunk.await_count == 1
    assert sleep.delays == []


async def test_transient_error_exhausts_attempts():
    thunk = AsyncMock(side_effect=ProviderError("claude", "overloaded", retryable=True, status=503))
    sleep = FakeSleep()
    policy = RetryPolicy(max_retries=3, base_delay_sec=1.0, backoff_factor=2.0, max_delay_sec=3.0)
    with pytest.raises(ProviderError, match="overloaded"):
        await call_with_retry(thunk, 1.0, policy, sleep=sleep)
    assert thunk.await_count == 4
    assert sleep.delays == [1.0, 2.0, 3.0]
    assert sleep.delays == sorted(sleep.delays)
    assert all(d <= policy.max_delay_sec for d in sleep.delays)


async def test_transient_then_success():
    thunk = AsyncMock(side_effect=[ConnectionError("reset"), "ok"])
    sleep = FakeSleep()
    result = await call_with_retry(thunk, 1.0, RetryPolicy(max_retries=2), sleep=sleep)
    assert result == "ok"
    assert thunk.await_count == 2
    assert len(sleep.delays) == 1


async def test_timeout_converted_and_retried():
    calls = 0

    async def slow():
        nonlocal calls
        calls += 1
        await asyncio.sleep(10)

    sleep = FakeSleep()
    with pytest.raises(ProviderTimeoutError) as exc_info:
        await call_with_retry(slow, 0.01, RetryPolicy(max_retries=1), name="slow", sleep=sleep)
    assert calls == 2
    assert exc_info.value.retryable is True
    assert "slow" in str(exc_info.value)


async def test_zero_retries_means_single_attempt():
    thunk = AsyncMock(side_effect=TimeoutError())
    with pytest.raises(ProviderTimeoutError):
        await call_with_retry(thunk, 1.0, RetryPolicy(max_retries=0), sleep=FakeSleep())
    assert thunk.await_count == 1
