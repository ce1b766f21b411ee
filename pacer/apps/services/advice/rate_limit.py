"""Sliding-window call limiter for the advice provider."""

from __future__ import annotations

import time
from collections import deque
from typing import Callable, Deque


class RateLimiter:
    def __init__(
        self,
        max_calls: int = 20,
        window_seconds: float = 60.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_calls = max_calls
        self.window_seconds = window_seconds
        self._clock = clock
        self._calls: Deque[float] = deque()

    def _evict(self, now: float) -> None:
        while self._calls and now - self._calls[0] >= self.window_seconds:
            self._calls.popleft()

    def try_acquire(self) -> bool:
        """Record a call if the window has room; return False when limited."""

        now = self._clock()
        self._evict(now)
        if len(self._calls) >= self.max_calls:
            return False
        self._calls.append(now)
        return True

    @property
    def remaining(self) -> int:
        self._evict(self._clock())
        return max(0, self.max_calls - len(self._calls))


__all__ = ["RateLimiter"]
