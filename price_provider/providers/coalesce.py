"""
Refresh coalescing for payload-style upstreams.

SingleFlight is a per-key registry of in-flight calls: the first caller for a
key runs the call, later callers for the same key wait on its completion
handle and get the same result or exception. PayloadCache builds on it to
keep one full payload per key (e.g. per site) with an expiry.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Optional, Tuple, TypeVar

from .resilience import Deadline

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _Call:
    def __init__(self) -> None:
        self.done = threading.Event()
        self.value: Any = None
        self.error: Optional[BaseException] = None
        self.waiters = 0


class SingleFlight:
    """Deduplicates concurrent calls that share a key."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._calls: Dict[str, _Call] = {}

    def in_flight(self, key: str) -> bool:
        with self._lock:
            return key in self._calls

    def do(
        self,
        key: str,
        fn: Callable[[], T],
        deadline: Optional[Deadline] = None,
    ) -> Tuple[T, bool]:
        """
        Run `fn` once for all concurrent callers of `key`.

        Returns (value, shared) where shared is True when more than one caller
        observed this call. Waiters give up with Cancelled when their own
        deadline fires; the in-flight call keeps running for the others.
        """
        with self._lock:
            call = self._calls.get(key)
            leader = call is None
            if leader:
                call = _Call()
                self._calls[key] = call
            else:
                call.waiters += 1

        if not leader:
            self._wait(call, deadline)
            if call.error is not None:
                raise call.error
            return call.value, True

        try:
            call.value = fn()
        except BaseException as exc:
            call.error = exc
            raise
        finally:
            with self._lock:
                self._calls.pop(key, None)
            call.done.set()
        return call.value, call.waiters > 0

    @staticmethod
    def _wait(call: _Call, deadline: Optional[Deadline]) -> None:
        if deadline is None:
            call.done.wait()
            return
        while not call.done.is_set():
            deadline.check()
            left = deadline.remaining()
            call.done.wait(0.05 if left is None else min(left, 0.05))


@dataclass(frozen=True)
class PayloadEntry(Generic[T]):
    payload: T
    expires_at: float


class PayloadCache(Generic[T]):
    """
    One payload per key with an expiry, refreshed through SingleFlight.

    A refreshed payload is committed only if the entry is still missing or
    expired at commit time, so a slow refresh never replaces a newer value
    written meanwhile.
    """

    def __init__(
        self,
        ttl_s: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_s = ttl_s
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, PayloadEntry[T]] = {}
        self._flight = SingleFlight()

    def peek(self, key: str) -> Optional[T]:
        """Unexpired payload for `key`, or None."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and self._clock() < entry.expires_at:
                return entry.payload
        return None

    def put(self, key: str, payload: T) -> bool:
        """Commit `payload` unless an unexpired entry exists. Returns True if written."""
        with self._lock:
            entry = self._entries.get(key)
            now = self._clock()
            if entry is not None and now < entry.expires_at:
                return False
            self._entries[key] = PayloadEntry(payload=payload, expires_at=now + self.ttl_s)
            return True

    def get(
        self,
        key: str,
        refresh: Callable[[], T],
        deadline: Optional[Deadline] = None,
    ) -> T:
        cached = self.peek(key)
        if cached is not None:
            return cached
        value, shared = self._flight.do(key, lambda: self._refresh(key, refresh), deadline)
        if shared:
            logger.debug("Coalesced refresh for %s", key)
        return value

    def _refresh(self, key: str, refresh: Callable[[], T]) -> T:
        payload = refresh()
        if self.put(key, payload):
            return payload
        newer = self.peek(key)
        logger.debug("Refresh for %s finished after a newer payload was stored", key)
        return payload if newer is None else newer
