"""Retry with exponential backoff around any fallible coroutine."""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from roundtable.models import RetryConfig
from roundtable.providers.base import ProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRY = RetryConfig()


def failure_category(exc: BaseException) -> str:
    """Kind value for classified failures, class name for everything else."""
    if isinstance(exc, ProviderError):
        return exc.kind.value
    return type(exc).__name__


def is_retryable(exc: BaseException, config: RetryConfig) -> bool:
    if config.retryable_errors and failure_category(exc) in config.retryable_errors:
        return True
    if isinstance(exc, ProviderError):
        return exc.retryable
    return False


def compute_delay(attempt: int, config: RetryConfig) -> float:
    """min(max_delay, base_delay * backoff_factor ** attempt), attempt counted from 0.

    With jitter the result is drawn uniformly from [0.5 * d, d].
    """
    delay = min(config.max_delay, config.base_delay * config.backoff_factor ** attempt)
    if config.jitter:
        return delay * 0.5 + random.random() * delay * 0.5
    return delay


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` with up to ``config.max_retries`` retries.

    Total attempts = 1 + max_retries. The last failure is re-raised as-is,
    so callers see the original exception type.
    """
    cfg = config or DEFAULT_RETRY
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as exc:
            if attempt >= cfg.max_retries or not is_retryable(exc, cfg):
                raise
            delay = compute_delay(attempt, cfg)
            logger.debug(
                "Retry attempt %d/%d in %.2fs after %s: %s",
                attempt + 1,
                cfg.max_retries,
                delay,
                failure_category(exc),
                exc,
            )
            attempt += 1
            await sleep(delay)
