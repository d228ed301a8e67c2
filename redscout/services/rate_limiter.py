"""Per-client admission control for outbound upstream traffic.

Fixed window per identity: the first request opens a window of ``window_ms``;
up to ``max_requests`` are admitted inside it; once the window has elapsed the
next request opens a new one. Best-effort and local to this process.
"""

import logging
import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from redscout.config import settings
from redscout.services.sweeper import Sweeper

logger = logging.getLogger(__name__)

IDLE_WINDOWS = 10


@dataclass
class RateLimitState:
    window_start: float
    count: int
    last_admitted: float


@dataclass(frozen=True)
class Admission:
    allowed: bool
    retry_after_ms: int | None = None


class RateLimiter:
    """Fixed-window rate limiter keyed by client identity."""

    def __init__(
        self,
        window_ms: int | None = None,
        max_requests: int | None = None,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval: float | None = None,
    ):
        self.window_ms = window_ms if window_ms is not None else settings.rate_limit_window_ms
        self.max_requests = (
            max_requests if max_requests is not None else settings.rate_limit_max_requests
        )
        self._clock = clock
        self._states: dict[str, RateLimitState] = {}
        self._lock = threading.Lock()
        self._sweeper = Sweeper(
            "rate-limiter",
            sweep_interval if sweep_interval is not None else settings.sweep_interval_seconds,
            self.sweep,
        )

    def __len__(self) -> int:
        return len(self._states)

    def admit(self, identity: str) -> Admission:
        now = self._clock()
        with self._lock:
            state = self._states.get(identity)

            if state is None:
                self._states[identity] = RateLimitState(window_start=now, count=1, last_admitted=now)
                return Admission(allowed=True)

            elapsed_ms = (now - state.window_start) * 1000
            if elapsed_ms >= self.window_ms:
                self._states[identity] = RateLimitState(window_start=now, count=1, last_admitted=now)
                return Admission(allowed=True)

            if state.count < self.max_requests:
                self._states[identity] = RateLimitState(
                    window_start=state.window_start, count=state.count + 1, last_admitted=now,
                )
                return Admission(allowed=True)

        retry_after = max(1, math.ceil(self.window_ms - elapsed_ms))
        logger.info("Rate limited | client=%s | retry_after=%dms", identity, retry_after)
        return Admission(allowed=False, retry_after_ms=retry_after)

    def sweep(self) -> int:
        """Forget identities idle for ten windows or more."""
        cutoff = self._clock() - (self.window_ms * IDLE_WINDOWS) / 1000
        with self._lock:
            idle = [k for k, s in self._states.items() if s.last_admitted <= cutoff]
            for key in idle:
                del self._states[key]
        return len(idle)

    def start(self):
        self._sweeper.start()

    async def stop(self):
        await self._sweeper.stop()
