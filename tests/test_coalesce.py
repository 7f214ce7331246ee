"""
Tests for refresh coalescing.

Verifies that:
- Concurrent calls for one key run the work once and share its result or error
- The in-flight registry entry is removed once the call settles
- A waiter whose own deadline fires gives up without disturbing the leader
- PayloadCache serves unexpired payloads and commits only when still expired
"""
from __future__ import annotations

import threading
import time

import pytest

from price_provider.providers.coalesce import PayloadCache, SingleFlight
from price_provider.providers.errors import Cancelled, ProviderError
from price_provider.providers.resilience import Deadline
from tests.fakes import FakeClock


def _wait_for(predicate, timeout: float = 2.0) -> None:
    end = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > end:
            raise AssertionError("condition not reached")
        time.sleep(0.005)


def _run_threads(n, target):
    results, errors = [], []
    lock = threading.Lock()

    def run():
        try:
            value = target()
            with lock:
                results.append(value)
        except BaseException as exc:
            with lock:
                errors.append(exc)

    threads = [threading.Thread(target=run) for _ in range(n)]
    for t in threads:
        t.start()
    return threads, results, errors


# ---------------------------------------------------------------------------
# SingleFlight
# ---------------------------------------------------------------------------


class TestSingleFlight:
    def test_concurrent_callers_share_one_call(self):
        sf = SingleFlight()
        release = threading.Event()
        calls = {"n": 0}

        def work():
            calls["n"] += 1
            release.wait(2)
            return "payload"

        leader, leader_results, _ = _run_threads(1, lambda: sf.do("k", work))
        _wait_for(lambda: sf.in_flight("k"))
        followers, results, errors = _run_threads(4, lambda: sf.do("k", work))
        _wait_for(lambda: sf._calls["k"].waiters == 4)
        release.set()
        for t in leader + followers:
            t.join(2)

        assert calls["n"] == 1
        assert errors == []
        assert leader_results == [("payload", True)]
        assert results == [("payload", True)] * 4
        assert not sf.in_flight("k")

    def test_error_shared_with_waiters(self):
        sf = SingleFlight()
        release = threading.Event()

        def work():
            release.wait(2)
            raise ProviderError("upstream down")

        leader, _, leader_errors = _run_threads(1, lambda: sf.do("k", work))
        _wait_for(lambda: sf.in_flight("k"))
        followers, _, errors = _run_threads(2, lambda: sf.do("k", work))
        _wait_for(lambda: sf._calls["k"].waiters == 2)
        release.set()
        for t in leader + followers:
            t.join(2)

        assert len(leader_errors) == 1 and len(errors) == 2
        assert all(isinstance(e, ProviderError) for e in leader_errors + errors)
        assert not sf.in_flight("k")

    def test_sequential_calls_are_not_shared(self):
        sf = SingleFlight()
        assert sf.do("k", lambda: 1) == (1, False)
        assert sf.do("k", lambda: 2) == (2, False)

    def test_distinct_keys_run_independently(self):
        sf = SingleFlight()
        assert sf.do("a", lambda: "A")[0] == "A"
        assert sf.do("b", lambda: "B")[0] == "B"

    def test_waiter_deadline_does_not_cancel_leader(self):
        sf = SingleFlight()
        release = threading.Event()

        def work():
            release.wait(2)
            return "done"

        leader, leader_results, _ = _run_threads(1, lambda: sf.do("k", work))
        _wait_for(lambda: sf.in_flight("k"))
        with pytest.raises(Cancelled):
            sf.do("k", work, Deadline(0.05))
        release.set()
        leader[0].join(2)
        assert leader_results[0][0] == "done"


# ---------------------------------------------------------------------------
# PayloadCache
# ---------------------------------------------------------------------------


class TestPayloadCache:
    def test_refresh_once_within_ttl(self):
        clock = FakeClock()
        cache = PayloadCache(10, clock=clock)
        calls = {"n": 0}

        def refresh():
            calls["n"] += 1
            return {"v": calls["n"]}

        assert cache.get("site", refresh) == {"v": 1}
        clock.advance(5)
        assert cache.get("site", refresh) == {"v": 1}
        clock.advance(6)
        assert cache.get("site", refresh) == {"v": 2}
        assert calls["n"] == 2

    def test_peek_ignores_expired_payload(self):
        clock = FakeClock()
        cache = PayloadCache(1, clock=clock)
        cache.put("k", "old")
        assert cache.peek("k") == "old"
        clock.advance(1)
        assert cache.peek("k") is None

    def test_put_refuses_to_replace_unexpired_payload(self):
        clock = FakeClock()
        cache = PayloadCache(10, clock=clock)
        assert cache.put("k", "first") is True
        assert cache.put("k", "second") is False
        clock.advance(10)
        assert cache.put("k", "third") is True
        assert cache.peek("k") == "third"

    def test_slow_refresh_does_not_overwrite_newer_payload(self):
        cache = PayloadCache(60)
        started = threading.Event()
        release = threading.Event()

        def slow_refresh():
            started.set()
            release.wait(2)
            return "stale"

        threads, results, _ = _run_threads(1, lambda: cache.get("k", slow_refresh))
        started.wait(2)
        cache.put("k", "newer")
        release.set()
        threads[0].join(2)

        assert results == ["newer"]
        assert cache.peek("k") == "newer"

    def test_concurrent_gets_refresh_once(self):
        cache = PayloadCache(60)
        calls = {"n": 0}
        lock = threading.Lock()

        def refresh():
            with lock:
                calls["n"] += 1
            time.sleep(0.1)
            return "payload"

        threads, results, errors = _run_threads(8, lambda: cache.get("k", refresh))
        for t in threads:
            t.join(2)
        assert errors == []
        assert results == ["payload"] * 8
        assert calls["n"] == 1

    def test_refresh_error_not_cached(self):
        cache = PayloadCache(60)

        def failing():
            raise ProviderError("boom")

        with pytest.raises(ProviderError):
            cache.get("k", failing)
        assert cache.peek("k") is None
        assert cache.get("k", lambda: "ok") == "ok"
