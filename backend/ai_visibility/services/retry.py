"""
Async retry policy with exponential backoff on rate limits.

One ``RetryPolicy`` object is injected into each query client:

- HTTP 429 (rate limit): wait ``base_delay * 2^(attempt-1)`` and retry
- Other retryable failures: wait ``base_delay`` and retry
- Non-retryable failures (bad request, auth, not found): raise immediately
- Overall deadline exceeded: raise immediately, no further attempts

``sleep`` is injectable so tests can record delays instead of waiting.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

import httpx
import openai

from ..exceptions import RateLimitedError
from ..timing import clamp_timeout, deadline_exceeded
from .http_client import RetryConfig, is_non_retryable_error, is_rate_limit_status

logger = logging.getLogger(__name__)

T = TypeVar("T")


def exponential_backoff(base_delay: float, attempt: int) -> float:
    """Delay before retrying after ``attempt`` (1-based) was rate limited."""
    return base_delay * (2 ** (attempt - 1))


def _status_of(exc: BaseException) -> int | None:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    if isinstance(exc, openai.APIStatusError):
        return exc.status_code
    return None


def is_rate_limited(exc: BaseException) -> bool:
    """True for HTTP 429 signals from either transport."""
    if isinstance(exc, (RateLimitedError, openai.RateLimitError)):
        return True
    status = _status_of(exc)
    return status is not None and is_rate_limit_status(status)


def is_retryable(exc: BaseException) -> bool:
    """Everything is worth another attempt except client-side HTTP errors."""
    status = _status_of(exc)
    if status is not None and is_non_retryable_error(status):
        return False
    return True


async def _default_sleep(seconds: float) -> None:
    await asyncio.sleep(seconds)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded-attempt retry policy.

    Attributes:
        max_attempts: Total attempts including the first one.
        base_delay: Seconds; flat delay for generic failures, backoff base for 429.
        backoff: ``(base_delay, attempt) -> seconds`` used after a rate limit.
        rate_limited: Predicate selecting the exponential-backoff path.
        retryable: Predicate deciding whether another attempt is allowed.
        sleep: Awaitable sleep; replaced by a recorder in tests.
    """

    max_attempts: int = RetryConfig.MAX_ATTEMPTS
    base_delay: float = RetryConfig.BASE_DELAY
    backoff: Callable[[float, int], float] = exponential_backoff
    rate_limited: Callable[[BaseException], bool] = is_rate_limited
    retryable: Callable[[BaseException], bool] = is_retryable
    sleep: Callable[[float], Awaitable[None]] = _default_sleep

    def delay_for(self, exc: BaseException, attempt: int) -> float:
        if self.rate_limited(exc):
            return self.backoff(self.base_delay, attempt)
        return self.base_delay

    async def run(self, fn: Callable[[], Awaitable[T]], *, label: str = "") -> T:
        """Call ``fn`` until it succeeds or the policy gives up.

        Raises the last exception once attempts are exhausted.
        """
        label = label or getattr(fn, "__name__", "call")
        attempts = max(1, self.max_attempts)

        for attempt in range(1, attempts + 1):
            try:
                return await fn()
            except Exception as exc:
                if not self.retryable(exc):
                    logger.warning("%s: non-retryable %s", label, type(exc).__name__)
                    raise
                if attempt >= attempts:
                    logger.error(
                        "%s: %s — all %d attempts exhausted",
                        label, type(exc).__name__, attempts,
                    )
                    raise
                if deadline_exceeded():
                    logger.warning("%s: deadline exceeded, not retrying", label)
                    raise

                delay = clamp_timeout(self.delay_for(exc, attempt))
                logger.warning(
                    "%s: %s on attempt %d/%d, retrying in %.1fs",
                    label,
                    "rate limited" if self.rate_limited(exc) else type(exc).__name__,
                    attempt,
                    attempts,
                    delay,
                )
                await self.sleep(delay)
