"""
Tests for the rate-limiting decorators.

Verifies that:
- A token bucket starts full and allows exactly `capacity` immediate acquisitions
- The next acquisition waits deficit / rate
- Refill is clamped to capacity and non-positive settings are coerced
- Waits return early with Cancelled when the deadline fires
- MinInterval spaces calls from the end of the previous call
- wrap_rate_limit picks token bucket, min-interval or nothing
"""
from __future__ import annotations

import threading
import time

import pytest

from price_provider.providers.errors import Cancelled, ProviderError
from price_provider.providers.ratelimit import (
    MinIntervalProvider,
    TokenBucket,
    TokenBucketProvider,
    wrap_rate_limit,
)
from price_provider.providers.resilience import Deadline
from tests.fakes import FakeClock, FakeQuoteProvider, FakeTimedProvider

# ---------------------------------------------------------------------------
# TokenBucket arithmetic (injected clock)
# ---------------------------------------------------------------------------


class TestTokenBucket:
    def test_starts_full_and_allows_capacity_immediate_acquisitions(self):
        clock = FakeClock()
        bucket = TokenBucket(rate_per_s=1.0, capacity=3, clock=clock)
        assert [bucket.try_acquire() for _ in range(3)] == [0.0, 0.0, 0.0]
        assert bucket.try_acquire() > 0

    def test_next_acquisition_waits_deficit_over_rate(self):
        clock = FakeClock()
        bucket = TokenBucket(rate_per_s=2.0, capacity=1, clock=clock)
        assert bucket.try_acquire() == 0.0
        assert bucket.try_acquire() == pytest.approx(0.5)
        clock.advance(0.25)
        assert bucket.try_acquire() == pytest.approx(0.25)

    def test_refill_after_elapsed_time(self):
        clock = FakeClock()
        bucket = TokenBucket(rate_per_s=2.0, capacity=1, clock=clock)
        bucket.try_acquire()
        clock.advance(0.5)
        assert bucket.try_acquire() == 0.0

    def test_tokens_clamped_to_capacity(self):
        clock = FakeClock()
        bucket = TokenBucket(rate_per_s=10.0, capacity=2, clock=clock)
        bucket.try_acquire()
        clock.advance(1000)
        assert bucket.tokens == 2.0

    def test_non_positive_settings_coerced(self):
        bucket = TokenBucket(rate_per_s=0, capacity=0)
        assert bucket.rate > 0
        assert bucket.capacity == 1.0
        assert bucket.try_acquire() == 0.0

    def test_concurrent_acquisitions_never_exceed_capacity(self):
        bucket = TokenBucket(rate_per_s=1e-6, capacity=5)
        results = []
        lock = threading.Lock()

        def grab():
            r = bucket.try_acquire()
            with lock:
                results.append(r)

        threads = [threading.Thread(target=grab) for _ in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert results.count(0.0) == 5


# ---------------------------------------------------------------------------
# Blocking acquire (real clock)
# ---------------------------------------------------------------------------


class TestTokenBucketAcquire:
    def test_capacity_plus_one_waits_at_least_one_interval(self):
        bucket = TokenBucket(rate_per_s=10.0, capacity=2)
        start = time.monotonic()
        bucket.acquire()
        bucket.acquire()
        assert time.monotonic() - start < 0.05
        bucket.acquire()
        assert time.monotonic() - start >= 0.09

    def test_acquire_raises_cancelled_on_cancel(self):
        bucket = TokenBucket(rate_per_s=1e-6, capacity=1)
        bucket.acquire()
        deadline = Deadline()
        timer = threading.Timer(0.05, deadline.cancel)
        timer.start()
        start = time.monotonic()
        with pytest.raises(Cancelled):
            bucket.acquire(deadline)
        assert time.monotonic() - start < 1.0

    def test_acquire_raises_cancelled_on_deadline(self):
        bucket = TokenBucket(rate_per_s=0.01, capacity=1)
        bucket.acquire()
        start = time.monotonic()
        with pytest.raises(Cancelled, match="deadline"):
            bucket.acquire(Deadline(0.05))
        assert time.monotonic() - start < 1.0

    def test_cancelled_is_not_a_provider_error(self):
        assert not issubclass(Cancelled, ProviderError)


# ---------------------------------------------------------------------------
# Decorators
# ---------------------------------------------------------------------------


class TestTokenBucketProvider:
    def test_delegates_and_paces_calls(self):
        inner = FakeQuoteProvider("p")
        provider = TokenBucketProvider(inner, TokenBucket(rate_per_s=20.0, capacity=1))
        start = time.monotonic()
        for _ in range(3):
            quotes = provider.fetch(["A"])
            assert [q.symbol for q in quotes] == ["A"]
        assert time.monotonic() - start >= 0.08
        assert inner.call_count == 3
        assert provider.provider_name == "p"

    def test_cancelled_wait_does_not_call_inner(self):
        inner = FakeQuoteProvider("p")
        provider = TokenBucketProvider(inner, TokenBucket(rate_per_s=1e-6, capacity=1))
        provider.fetch(["A"])
        with pytest.raises(Cancelled):
            provider.fetch(["A"], Deadline(0.02))
        assert inner.call_count == 1


class TestMinIntervalProvider:
    def test_interval_measured_from_previous_call_end(self):
        inner = FakeTimedProvider("timed", work_s=0.05)
        provider = MinIntervalProvider(inner, interval_s=0.1)
        provider.fetch(["A"])
        provider.fetch(["A"])
        (_, first_end), (second_start, _) = inner.spans
        assert second_start - first_end >= 0.09

    def test_first_call_is_not_delayed(self):
        inner = FakeQuoteProvider("p")
        provider = MinIntervalProvider(inner, interval_s=5.0)
        start = time.monotonic()
        provider.fetch(["A"])
        assert time.monotonic() - start < 0.5

    def test_waiter_cancelled_by_deadline(self):
        inner = FakeQuoteProvider("p")
        provider = MinIntervalProvider(inner, interval_s=5.0)
        provider.fetch(["A"])
        start = time.monotonic()
        with pytest.raises(Cancelled):
            provider.fetch(["A"], Deadline(0.05))
        assert time.monotonic() - start < 1.0
        assert inner.call_count == 1

    def test_failed_call_still_counts_as_last_end(self):
        clock = FakeClock()

        class Boom(FakeQuoteProvider):
            def fetch(self, symbols, deadline=None):
                raise ProviderError("boom")

        provider = MinIntervalProvider(Boom("p"), interval_s=1.0, clock=clock)
        with pytest.raises(ProviderError):
            provider.fetch(["A"])
        assert provider._last_end == clock()


class TestWrapRateLimit:
    def test_rpm_selects_token_bucket(self):
        inner = FakeQuoteProvider("p")
        wrapped = wrap_rate_limit(inner, max_requests_per_minute=120, burst=3, min_interval_s=5)
        assert isinstance(wrapped, TokenBucketProvider)
        assert wrapped.bucket.rate == pytest.approx(2.0)
        assert wrapped.bucket.capacity == 3.0

    def test_zero_burst_defaults_to_one(self):
        wrapped = wrap_rate_limit(FakeQuoteProvider("p"), max_requests_per_minute=60, burst=0)
        assert wrapped.bucket.capacity == 1.0

    def test_interval_used_without_rpm(self):
        wrapped = wrap_rate_limit(FakeQuoteProvider("p"), max_requests_per_minute=0, min_interval_s=2)
        assert isinstance(wrapped, MinIntervalProvider)
        assert wrapped.interval_s == 2

    def test_no_limits_returns_inner(self):
        inner = FakeQuoteProvider("p")
        assert wrap_rate_limit(inner) is inner
