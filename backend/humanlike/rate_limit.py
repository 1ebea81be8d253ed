from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Optional

from limits import RateLimitItemPerSecond
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Too many requests, please try again later."


class RateLimited(Exception):
    """Raised when a client has used up its quota for the current window."""

    def __init__(self, retry_after: int) -> None:
        super().__init__(RATE_LIMIT_MESSAGE)
        self.retry_after = retry_after


@dataclass(frozen=True)
class RateWindowEntry:
    count: int
    reset_at: float


class RateLimiter:
    """Fixed-window request counter keyed by client identity.

    The window opens on a client's first request and the count starts over once
    it expires. Counters live in process memory; expired windows are dropped by
    the storage's own sweep.
    """

    def __init__(
        self,
        *,
        max_requests: int = 50,
        window_seconds: int = 900,
        storage: Optional[MemoryStorage] = None,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._item = RateLimitItemPerSecond(max_requests, window_seconds, namespace="api")
        self._storage = storage or MemoryStorage()
        self._strategy = FixedWindowRateLimiter(self._storage)

    def allow(self, key: str) -> bool:
        return self._strategy.hit(self._item, key)

    def check(self, key: str) -> None:
        if self.allow(key):
            return
        entry = self.window(key)
        retry_after = max(1, math.ceil(entry.reset_at - time.time()))
        logger.info("Rate limit exceeded for %s, retry in %ss", key, retry_after)
        raise RateLimited(retry_after)

    def window(self, key: str) -> RateWindowEntry:
        stats = self._strategy.get_window_stats(self._item, key)
        return RateWindowEntry(count=self.max_requests - stats.remaining, reset_at=float(stats.reset_time))

    def reset(self) -> None:
        self._storage.reset()


__all__ = ["RATE_LIMIT_MESSAGE", "RateLimited", "RateLimiter", "RateWindowEntry"]
