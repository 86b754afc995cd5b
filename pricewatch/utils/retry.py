"""Bounded retry with exponential backoff for upstream requests."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import httpx

from pricewatch.ingest.errors import CatalogFetchError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUSES = frozenset({408, 500, 502, 503, 504})


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_tries: int = 10
    base_delay: float = 1.0
    max_jitter: float = 1.0

    def is_retryable(self, exc: BaseException) -> bool:
        if isinstance(exc, httpx.HTTPStatusError):
            return exc.response.status_code in RETRYABLE_STATUSES
        return isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError))

    def backoff(self, attempt: int, *, rng: random.Random | None = None) -> float:
        """Delay in seconds after ``attempt`` failed attempts."""
        jitter = (rng or random).uniform(0, self.max_jitter)
        return (2**attempt) * self.base_delay + jitter


def describe_failure(exc: BaseException) -> tuple[int | None, str]:
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status, f"HTTP error: {status}"
    return None, f"HTTP error: {exc!r}"


async def retry_async(
    func: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    label: str = "request",
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> T:
    """Call ``func`` until it succeeds or the policy gives up.

    Non-retryable errors are wrapped in ``CatalogFetchError`` straight away;
    retryable ones are retried up to ``policy.max_tries`` attempts in total.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return await func()
        except (httpx.HTTPError, asyncio.TimeoutError) as exc:
            status, message = describe_failure(exc)
            if not policy.is_retryable(exc):
                raise CatalogFetchError(message, url=label, status_code=status, attempts=attempt) from exc
            if attempt >= policy.max_tries:
                logger.warning("Giving up on %s after %s attempts (%s)", label, attempt, message)
                raise CatalogFetchError(
                    f"{message} after {attempt} attempts", url=label, status_code=status, attempts=attempt
                ) from exc
            delay = policy.backoff(attempt)
            logger.warning(
                "Retrying %s (%s/%s) in %.1fs: %s", label, attempt, policy.max_tries, delay, message
            )
            await sleep(delay)
