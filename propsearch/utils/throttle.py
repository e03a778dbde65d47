"""Strict sliding-window rate limiting for quota-limited providers."""

from __future__ import annotations

import functools
import threading
import time
from collections import deque
from typing import Callable, Deque, TypeVar

T = TypeVar("T")


class SlidingWindowThrottle:
    """Allow at most ``limit`` call starts within any ``period`` seconds.

    ``acquire`` blocks until a slot is free, so excess calls queue instead of
    failing. Waiting callers are served in lock acquisition order.
    """

    def __init__(
        self,
        limit: int,
        period: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if limit < 1:
            raise ValueError(f"Throttle limit must be positive, got {limit}")
        if period < 0:
            raise ValueError(f"Throttle period must not be negative, got {period}")
        self.limit = limit
        self.period = period
        self._clock = clock
        self._sleep = sleep
        self._starts: Deque[float] = deque()
        self._lock = threading.Lock()

    def acquire(self) -> None:
        with self._lock:
            while True:
                now = self._clock()
                while self._starts and self._starts[0] <= now - self.period:
                    self._starts.popleft()
                if len(self._starts) < self.limit:
                    self._starts.append(now)
                    return
                self._sleep(self._starts[0] + self.period - now)

    def wrap(self, func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            self.acquire()
            return func(*args, **kwargs)

        return wrapper


__all__ = ["SlidingWindowThrottle"]
