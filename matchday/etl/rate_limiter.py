"""
Sliding-window request limiter with a reserved high-priority allowance.

football-data.org enforces N requests per rolling minute for the whole key.
Normal callers may use `quota - reserve` slots; high-priority callers (live
polling) may use the full quota, so a burst of background lookups can never
starve the live tick.

The timestamp is recorded when the slot is granted, before the request is
sent, so a failed request still counts against the window.
"""

import asyncio
import logging
import time
from collections import deque
from typing import Awaitable, Callable, Optional

from matchday.telemetry.metrics import record_rate_limit_wait

logger = logging.getLogger(__name__)


class SlidingWindowRateLimiter:
    """Process-local sliding window over the trailing `window_seconds`."""

    def __init__(
        self,
        quota: int,
        reserve: int = 0,
        window_seconds: float = 60.0,
        safety_margin: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if quota <= 0:
            raise ValueError(f"quota must be positive, got {quota}")
        if not 0 <= reserve < quota:
            raise ValueError(f"reserve must be in [0, {quota}), got {reserve}")
        self.quota = quota
        self.reserve = reserve
        self.window_seconds = window_seconds
        self.safety_margin = safety_margin
        self._clock = clock
        self._sleep = sleep
        self._timestamps: deque[float] = deque()

    def effective_quota(self, high_priority: bool = False) -> int:
        return self.quota if high_priority else self.quota - self.reserve

    def _prune(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()

    def in_window(self) -> int:
        """Requests still counted in the trailing window."""
        self._prune(self._clock())
        return len(self._timestamps)

    def can_acquire(self, high_priority: bool = False) -> bool:
        return self.in_window() < self.effective_quota(high_priority)

    def _wait_time(self, now: float, limit: int) -> float:
        # The slot frees when the entry that would bring us under `limit`
        # leaves the window.
        blocking = self._timestamps[len(self._timestamps) - limit]
        return blocking + self.window_seconds - now + self.safety_margin

    async def acquire(self, high_priority: bool = False) -> Optional[float]:
        """
        Wait until a slot is free, then claim it.

        Loops rather than waiting once: after waking the window is re-checked
        since the entries may still be inside it. The sleep is cancellable.

        Returns:
            Total seconds spent waiting, or None if no wait was needed.
        """
        limit = self.effective_quota(high_priority)
        waited = 0.0

        while True:
            now = self._clock()
            self._prune(now)
            if len(self._timestamps) < limit:
                break

            wait = self._wait_time(now, limit)
            if wait > 0:
                logger.info(
                    f"[RATE_LIMIT] {len(self._timestamps)}/{limit} in window "
                    f"(high_priority={high_priority}), waiting {wait:.2f}s"
                )
                record_rate_limit_wait(high_priority)
                await self._sleep(wait)
                waited += wait

        self._timestamps.append(self._clock())
        return waited or None
