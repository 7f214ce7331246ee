"""
Resilience primitives: request deadlines with cancellation, and retry with
exponential backoff for classified upstream statuses.

Every blocking point in the provider stack (rate limiter waits, retry
backoff) sleeps through Deadline.sleep so one cancel signal stops all of them.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .errors import Cancelled

logger = logging.getLogger(__name__)

SPLIT = "split"
RETRY = "retry"
FAIL = "fail"


class Deadline:
    """
    Shared cancellation signal plus an optional absolute expiry.

    Derived deadlines (with_timeout) share the parent's cancel event, so
    cancelling the parent wakes every waiter below it.
    """

    def __init__(
        self,
        timeout_s: Optional[float] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        _event: Optional[threading.Event] = None,
        _expires_at: Optional[float] = None,
    ) -> None:
        self._clock = clock
        self._event = _event or threading.Event()
        if _expires_at is not None:
            self._expires_at: Optional[float] = _expires_at
        elif timeout_s is not None:
            self._expires_at = clock() + max(timeout_s, 0.0)
        else:
            self._expires_at = None

    @classmethod
    def never(cls) -> "Deadline":
        return cls(None)

    def with_timeout(self, timeout_s: float) -> "Deadline":
        expires_at = self._clock() + max(timeout_s, 0.0)
        if self._expires_at is not None:
            expires_at = min(expires_at, self._expires_at)
        return Deadline(clock=self._clock, _event=self._event, _expires_at=expires_at)

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def remaining(self) -> Optional[float]:
        """Seconds left, or None when there is no expiry."""
        if self._expires_at is None:
            return None
        return max(self._expires_at - self._clock(), 0.0)

    @property
    def expired(self) -> bool:
        if self.cancelled:
            return True
        left = self.remaining()
        return left is not None and left <= 0

    def check(self) -> None:
        if self.cancelled:
            raise Cancelled("request cancelled")
        left = self.remaining()
        if left is not None and left <= 0:
            raise Cancelled("deadline exceeded")

    def sleep(self, seconds: float) -> None:
        """Sleep for `seconds`, raising Cancelled as soon as the deadline fires."""
        self.check()
        if seconds <= 0:
            return
        left = self.remaining()
        if left is not None and left < seconds:
            self._event.wait(left)
            self.check()
            # expiry landed inside the requested sleep
            raise Cancelled("deadline exceeded")
        if self._event.wait(seconds):
            raise Cancelled("request cancelled")

    def timeout_for(self, default_s: float) -> float:
        """HTTP timeout bounded by what is left of the deadline."""
        left = self.remaining()
        if left is None:
            return default_s
        return max(min(default_s, left), 0.001)


@dataclass
class RetryConfig:
    """Configuration for batch splitting and retry with exponential backoff."""
    max_retries: int = 3
    base_delay_s: float = 0.25
    max_delay_s: float = 10.0
    backoff_factor: float = 2.0
    split_on_status_codes: tuple[int, ...] = (400, 413)
    retry_on_status_codes: tuple[int, ...] = (429,)

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number `attempt` (0-based), capped at max_delay_s."""
        return min(self.base_delay_s * (self.backoff_factor ** attempt), self.max_delay_s)

    def classify(self, status_code: int) -> str:
        if status_code in self.split_on_status_codes:
            return SPLIT
        if status_code in self.retry_on_status_codes or 500 <= status_code < 600:
            return RETRY
        return FAIL
