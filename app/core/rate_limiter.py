from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from threading import Lock
from typing import Callable

from app.core.config import COUPON_VALIDATE_RATE_LIMIT, COUPON_VALIDATE_RATE_WINDOW_SECONDS


@dataclass
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after_seconds: int


class RateLimiterService(ABC):
    @abstractmethod
    def check(self, *, client_key: str, endpoint: str) -> RateLimitDecision:
        """Decide whether a request from ``client_key`` to ``endpoint`` may proceed."""


class InMemoryRateLimiterService(RateLimiterService):
    """Sliding-window limiter keyed by client+endpoint.

    Process-local: each worker keeps its own windows. Buckets that saw no
    traffic for a whole window are dropped on the next sweep.
    """

    def __init__(
        self,
        *,
        limit: int = COUPON_VALIDATE_RATE_LIMIT,
        window_seconds: int = COUPON_VALIDATE_RATE_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._store: dict[tuple[str, str], deque[float]] = {}
        self._clock = clock
        self._lock = Lock()
        self._last_sweep = clock()

    def __len__(self) -> int:
        return len(self._store)

    def _sweep(self, cutoff: float) -> None:
        stale = [key for key, bucket in self._store.items() if not bucket or bucket[-1] <= cutoff]
        for key in stale:
            del self._store[key]

    def check(self, *, client_key: str, endpoint: str) -> RateLimitDecision:
        now = self._clock()
        key = (client_key, endpoint)

        with self._lock:
            cutoff = now - self.window_seconds
            if now - self._last_sweep >= self.window_seconds:
                self._sweep(cutoff)
                self._last_sweep = now

            bucket = self._store.setdefault(key, deque())
            while bucket and bucket[0] <= cutoff:
                bucket.popleft()

            if len(bucket) >= self.limit:
                retry_after = max(1, int(self.window_seconds - (now - bucket[0])))
                return RateLimitDecision(
                    allowed=False,
                    limit=self.limit,
                    remaining=0,
                    retry_after_seconds=retry_after,
                )

            bucket.append(now)
            remaining = max(0, self.limit - len(bucket))
            return RateLimitDecision(
                allowed=True,
                limit=self.limit,
                remaining=remaining,
                retry_after_seconds=0,
            )
