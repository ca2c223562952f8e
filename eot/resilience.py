"""Timeout and exponential-backoff retry around a single provider call."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from config.config_loader import RetryConfig
from eot.providers.base import ProviderError, ProviderTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 2
    base_delay_sec: float = 1.0
    backoff_factor: float = 2.0
    max_delay_sec: float = 30.0

    @classmethod
    def from_config(cls, config: RetryConfig) -> "RetryPolicy":
        return cls(
            max_retries=config.max_retries,
            base_delay_sec=config.base_delay_sec,
            backoff_factor=config.backoff_factor,
            max_delay_sec=config.max_delay_sec,
        )


def backoff_delay(policy: RetryPolicy, attempt: int) -> float:
    """Delay before retrying after the given zero-based failed attempt."""
    return min(policy.base_delay_sec * policy.backoff_factor ** attempt, policy.max_delay_sec)


def is_retryable(exc: BaseException) -> bool:
    """Rate limits, network errors, 5xx and timeouts are retryable; nothing else is."""
    if isinstance(exc, ProviderError):
        return exc.retryable
    return isinstance(exc, (TimeoutError, ConnectionError))


async def call_with_retry(
    thunk: Callable[[], Awaitable[T]],
    timeout_sec: float,
    policy: RetryPolicy,
    *,
    name: str = "call",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``thunk`` with a per-attempt timeout, retrying transient failures.

    Fatal errors are raised after exactly one attempt. Transient errors are
    attempted up to ``policy.max_retries + 1`` times; the last error is
    raised once attempts are exhausted.
    """
    attempts = policy.max_retries + 1
    for attempt in range(attempts):
        try:
            result = await asyncio.wait_for(thunk(), timeout=timeout_sec)
        except TimeoutError as exc:
            last_error: Exception = ProviderTimeoutError(name, timeout_sec)
            last_error.__cause__ = exc
        except Exception as exc:
            last_error = exc
        else:
            if attempt > 0:
                logger.info("%s succeeded on attempt %d", name, attempt + 1)
            return result

        if not is_retryable(last_error):
            logger.warning("%s failed with non-retryable error: %s", name, last_error)
            raise last_error
        if attempt == attempts - 1:
            logger.warning("%s failed after %d attempts: %s", name, attempts, last_error)
            raise last_error

        delay = backoff_delay(policy, attempt)
        logger.warning(
            "%s attempt %d/%d failed, retrying in %.1fs: %s",
            name, attempt + 1, attempts, delay, last_error,
        )
        await sleep(delay)

    raise AssertionError("unreachable")
