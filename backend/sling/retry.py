"""Retry policy for store contention.

Only ``RetryableError`` is retried. Validation errors and
``AlreadySettledError`` propagate on the first attempt.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from sling.config import RetryConfig
from sling.exceptions import RetryableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def retry_on_contention(config: RetryConfig | None = None) -> AsyncRetrying:
    """Build a tenacity retrier for ledger operations."""
    config = config or RetryConfig()
    return AsyncRetrying(
        retry=retry_if_exception_type(RetryableError),
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_exponential(
            multiplier=config.backoff_min_seconds,
            min=config.backoff_min_seconds,
            max=config.backoff_max_seconds,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


async def call_with_retry(
    operation: Callable[..., Awaitable[T]],
    *args,
    config: RetryConfig | None = None,
    **kwargs,
) -> T:
    """
    Run ``operation`` and retry it on ``RetryableError``.

    Usage:
        stake = await call_with_retry(engine.place_stake, market_id, user, "Yes", 50)

    Do not wrap ``settle_market`` blindly: re-read the market first, since a
    contended settlement may already have committed.
    """
    async for attempt in retry_on_contention(config):
        with attempt:
            result = await operation(*args, **kwargs)
    return result
