"""
Rate-limiting decorators.

TokenBucketProvider allows bursts up to a capacity while enforcing a long-run
average rate; MinIntervalProvider paces calls strictly, one interval after the
previous call finished. Both wrap any QuoteProvider and are mutually exclusive
for a given upstream (see wrap_rate_limit).
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, List, Optional, Sequence

from .base import Quote, QuoteProvider
from .resilience import Deadline

logger = logging.getLogger(__name__)

_MIN_RATE = 1e-7
_MIN_WAIT_S = 0.001


class TokenBucket:
    """
    Token bucket limiter.

    - rate_per_s: tokens added per second
    - capacity: maximum tokens held (burst); the bucket starts full
    """

    def __init__(
        self,
        rate_per_s: float,
        capacity: int,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.rate = rate_per_s if rate_per_s > 0 else _MIN_RATE
        self.capacity = float(capacity if capacity > 0 else 1)
        self._clock = clock
        self._lock = threading.Lock()
        self._tokens = self.capacity
        self._last = clock()

    @property
    def tokens(self) -> float:
        with self._lock:
            self._refill(self._clock())
            return self._tokens

    def _refill(self, now: float) -> None:
        elapsed = now - self._last
        if elapsed > 0:
            self._tokens = min(self._tokens + elapsed * self.rate, self.capacity)
            self._last = now
        self._tokens = max(0.0, min(self._tokens, self.capacity))

    def try_acquire(self) -> float:
        """Take a token if one is available; return 0.0, else the seconds to wait."""
        with self._lock:
            self._refill(self._clock())
            if self._tokens >= 1:
                self._tokens -= 1
                return 0.0
            deficit = 1 - self._tokens
        return max(deficit / self.rate, _MIN_WAIT_S)

    def acquire(self, deadline: Optional[Deadline] = None) -> None:
        """Block until a token is taken; raise Cancelled if the deadline fires first."""
        deadline = deadline or Deadline.never()
        while True:
            deadline.check()
            wait_s = self.try_acquire()
            if wait_s <= 0:
                return
            logger.debug("Token bucket empty, waiting %.3fs", wait_s)
            deadline.sleep(wait_s)


class TokenBucketProvider:
    """Wraps a provider and gates each fetch on a token bucket."""

    def __init__(self, inner: QuoteProvider, bucket: TokenBucket) -> None:
        self.inner = inner
        self.bucket = bucket

    @property
    def provider_name(self) -> str:
        return self.inner.provider_name

    def fetch(
        self, symbols: Sequence[str], deadline: Optional[Deadline] = None
    ) -> List[Quote]:
        self.bucket.acquire(deadline)
        return self.inner.fetch(symbols, deadline)


class MinIntervalProvider:
    """
    Wraps a provider and enforces a minimum time between calls.

    A call may start no sooner than `interval_s` after the previous call
    ended. Waiters return early with Cancelled when the deadline fires.
    """

    def __init__(
        self,
        inner: QuoteProvider,
        interval_s: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.inner = inner
        self.interval_s = interval_s
        self._clock = clock
        self._lock = threading.Lock()
        self._last_end: Optional[float] = None

    @property
    def provider_name(self) -> str:
        return self.inner.provider_name

    def acquire(self, deadline: Optional[Deadline] = None) -> None:
        deadline = deadline or Deadline.never()
        if self.interval_s <= 0:
            return
        while True:
            deadline.check()
            with self._lock:
                if self._last_end is None:
                    return
                wait_s = self._last_end + self.interval_s - self._clock()
            if wait_s <= 0:
                return
            deadline.sleep(wait_s)

    def fetch(
        self, symbols: Sequence[str], deadline: Optional[Deadline] = None
    ) -> List[Quote]:
        self.acquire(deadline)
        try:
            return self.inner.fetch(symbols, deadline)
        finally:
            if self.interval_s > 0:
                with self._lock:
                    self._last_end = self._clock()


def wrap_rate_limit(
    inner: QuoteProvider,
    max_requests_per_minute: int = 0,
    burst: int = 1,
    min_interval_s: float = 0.0,
) -> QuoteProvider:
    """Prefer a token bucket when an rpm is set, otherwise fall back to min-interval."""
    if max_requests_per_minute and max_requests_per_minute > 0:
        rate = max_requests_per_minute / 60.0
        return TokenBucketProvider(inner, TokenBucket(rate, burst if burst > 0 else 1))
    if min_interval_s and min_interval_s > 0:
        return MinIntervalProvider(inner, min_interval_s)
    return inner
