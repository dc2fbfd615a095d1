"""Bounded retry with exponential backoff for outbound API calls.

Transient failures (network errors, timeouts, 5xx, 429) are retried; every
other failure surfaces on the first attempt. After the last attempt the last
error is re-raised unchanged.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS_CODES = frozenset({429})


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status >= 500 or status in RETRYABLE_STATUS_CODES
    return False


def _retry_after_seconds(exc: BaseException) -> float | None:
    if not isinstance(exc, httpx.HTTPStatusError) or exc.response.status_code != 429:
        return None
    retry_after = exc.response.headers.get("Retry-After")
    if not retry_after:
        return None
    try:
        return max(float(retry_after), 0.0)
    except ValueError:
        return None


class RetryingInvoker:
    """Run an async operation with bounded attempts and exponential backoff."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleep

    def backoff(self, attempt: int, exc: BaseException | None = None) -> float:
        """Delay before the attempt following ``attempt`` (1-based)."""
        retry_after = _retry_after_seconds(exc) if exc is not None else None
        if retry_after is not None:
            return min(retry_after, self.max_delay)
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)

    async def invoke(
        self,
        operation: Callable[[], Awaitable[T]],
        max_attempts: int | None = None,
    ) -> T:
        attempts = max_attempts or self.max_attempts
        for attempt in range(1, attempts + 1):
            try:
                return await operation()
            except Exception as exc:
                if not is_retryable(exc) or attempt >= attempts:
                    raise
                delay = self.backoff(attempt, exc)
                logger.warning(
                    "Transient failure (attempt %d/%d), retrying in %.1fs: %s",
                    attempt,
                    attempts,
                    delay,
                    exc,
                )
                await self._sleep(delay)
        raise AssertionError("unreachable")
