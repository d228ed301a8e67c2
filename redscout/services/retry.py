"""Backoff-retry executor shared by every network call site.

One ``RetryPolicy`` per call class: paginated listing calls get a longer
budget than lightweight detail calls. Delay before retry ``n`` (0-based) is
``base_delay * 2 ** n``.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


def is_transient_http_error(exc: BaseException) -> bool:
    """429 / 5xx responses, timeouts and connection failures."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status in RETRYABLE_STATUS or status >= 500
    return isinstance(exc, (httpx.TimeoutException, httpx.TransportError))


def describe_error(exc: BaseException) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        return f"status={exc.response.status_code}"
    return f"{type(exc).__name__}: {str(exc)[:100]}"


class RetryPolicy:
    """Run an async operation, retrying retryable failures with exponential delay."""

    def __init__(
        self,
        max_attempts: int,
        base_delay: float,
        is_retryable: Callable[[BaseException], bool] = is_transient_http_error,
        name: str = "upstream",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.is_retryable = is_retryable
        self.name = name
        self._sleep = sleep

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * (2 ** attempt)

    async def run(self, operation: Callable[[], Awaitable[T]], label: str = "") -> T:
        """Await ``operation()`` until it succeeds or the failure is final.

        Non-retryable errors and the last retryable error are re-raised
        unchanged; the caller decides whether that is fatal.
        """
        for attempt in range(self.max_attempts):
            try:
                return await operation()
            except Exception as e:
                last_attempt = attempt + 1 >= self.max_attempts
                if not self.is_retryable(e) or last_attempt:
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    "Retry | %s %s | attempt=%d/%d | cause=%s | backoff=%.2fs",
                    self.name, label, attempt + 1, self.max_attempts,
                    describe_error(e), delay,
                )
                await self._sleep(delay)

        raise RuntimeError("unreachable")  # pragma: no cover
