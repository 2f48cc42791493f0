# tests/test_rate_cache.py
"""
Rate Cache Tests - Freshness, Single-Flight Refresh and Degradation

This module tests the RateCache lookup protocol: the fast path, refresh and
write-through, single-flight coalescing across threads, monotonic snapshot
installation, degraded answers, timeouts and history reads.

Files that USE this module:
- pytest (test runner executes these tests)

Files that this module USES:
- ratecache.application.rate_cache (RateCache to test)
- tests.conftest (FakeClock, FakeClient, MemoryStore fixtures)
"""
import threading  # Concurrent callers
import time  # Polling for background work
from datetime import datetime, timedelta, timezone  # Snapshot timestamps

import pytest  # Testing framework for writing and running tests

from ratecache.adapters.persistence import JsonFileRateStore
from ratecache.application.rate_cache import RateCache
from ratecache.domain.errors import (
    InvalidCurrencyError,
    InvalidRateError,
    LookupTimeoutError,
    ProviderUnavailableError,
    StaleDataExceededError,
)
from ratecache.domain.models import Freshness, RateSnapshot

from conftest import T0


def wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return False


@pytest.fixture
def make_cache(client, store, clock):
    caches = []

    def factory(**kwargs):
        kwargs.setdefault("max_age", timedelta(minutes=5))
        kwargs.setdefault("max_stale_age", timedelta(hours=1))
        kwargs.setdefault("max_workers", 4)
        cache = RateCache(client=client, store=store, clock=clock, **kwargs)
        caches.append(cache)
        return cache

    yield factory
    for cache in caches:
        cache.close()


def run_concurrently(n, fn):
    results = [None] * n
    errors = [None] * n

    def worker(i):
        try:
            results[i] = fn()
        except Exception as e:
            errors[i] = e

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(n)]
    for t in threads:
        t.start()
    return threads, results, errors


class TestConstruction:
    def test_stale_ceiling_below_max_age(self, client, store):
        with pytest.raises(ValueError, match="max_stale_age"):
            RateCache(client, store, max_age=60, max_stale_age=30)

    def test_negative_max_age(self, client, store):
        with pytest.raises(ValueError, match="non-negative"):
            RateCache(client, store, max_age=-1, max_stale_age=30)

    def test_accepts_seconds(self, client, store):
        cache = RateCache(client, store, max_age=60, max_stale_age=120)
        assert cache.max_age == timedelta(minutes=1)
        assert cache.max_stale_age == timedelta(minutes=2)
        cache.close()


class TestGetLatest:
    def test_empty_store_fetches_persists_and_returns(self, make_cache, client, store):
        provider_ts = T0 - timedelta(seconds=30)
        client.responses.append(RateSnapshot("USD", provider_ts, {"EUR": 0.9, "GBP": 0.8}))
        cache = make_cache()

        result = cache.get_latest("USD", max_age=0)

        assert result.is_fresh
        assert result.snapshot.source_currency == "USD"
        assert dict(result.snapshot.rates) == {"EUR": 0.9, "GBP": 0.8}
        assert result.snapshot.as_of == provider_ts
        assert store.saved == [result.snapshot]
        assert client.calls == ["USD"]

    def test_fast_path_within_max_age(self, make_cache, client, clock):
        cache = make_cache()
        first = cache.get_latest("usd")
        clock.advance(minutes=4)
        second = cache.get_latest("USD")

        assert client.calls == ["USD"]
        assert second.snapshot is first.snapshot
        assert cache.stats.hits == 1
        assert cache.stats.refreshes == 1

    def test_refreshes_after_max_age(self, make_cache, client, clock):
        cache = make_cache()
        cache.get_latest("USD")
        clock.advance(minutes=6)
        result = cache.get_latest("USD")

        assert client.calls == ["USD", "USD"]
        assert result.snapshot.as_of == clock()

    def test_zero_max_age_always_refreshes(self, make_cache, client):
        cache = make_cache()
        cache.get_latest("USD", max_age=0)
        cache.get_latest("USD", max_age=0)
        assert client.calls == ["USD", "USD"]

    def test_invalid_currency_fails_before_io(self, make_cache, client, store):
        cache = make_cache()
        with pytest.raises(InvalidCurrencyError):
            cache.get_latest("US$")
        assert client.calls == []
        assert store.reads == 0

    def test_code_with_trailing_newline_fails_before_io(self, make_cache, client, store):
        cache = make_cache()
        with pytest.raises(InvalidCurrencyError):
            cache.get_latest("USD\n")
        assert client.calls == []
        assert store.reads == 0

    def test_provider_rejection_propagates(self, make_cache, client):
        client.responses.append(InvalidCurrencyError("unknown currency ZZZ"))
        cache = make_cache()
        with pytest.raises(InvalidCurrencyError, match="ZZZ"):
            cache.get_latest("ZZZ")

    def test_warm_from_store_without_provider_call(self, make_cache, client, store):
        stored = RateSnapshot("EUR", T0 - timedelta(minutes=1), {"USD": 1.1})
        store.saved.append(stored)
        cache = make_cache()

        result = cache.get_latest("EUR")

        assert result.snapshot == stored
        assert result.is_fresh
        assert client.calls == []

    def test_stale_store_snapshot_triggers_fetch(self, make_cache, client, store):
        store.saved.append(RateSnapshot("EUR", T0 - timedelta(minutes=30), {"USD": 1.1}))
        cache = make_cache()

        result = cache.get_latest("EUR")

        assert client.calls == ["EUR"]
        assert result.snapshot.as_of == T0
        assert len(store.saved) == 2

    def test_store_read_failure_still_fetches(self, make_cache, client, store):
        store.fail_read = True
        cache = make_cache()

        result = cache.get_latest("USD")

        assert result.is_fresh
        assert client.calls == ["USD"]
        assert any("store read failed" in w for w in result.warnings)

    def test_store_write_failure_keeps_fresh_snapshot(self, make_cache, client, store):
        store.fail_save = True
        cache = make_cache()

        result = cache.get_latest("USD")

        assert result.is_fresh
        assert any("store write failed" in w for w in result.warnings)
        assert cache.peek("USD") is result.snapshot
        assert cache.stats.store_failures == 1

    def test_undecodable_store_file_still_serves_fetch(self, client, clock, tmp_path):
        path = tmp_path / "rates.json"
        path.write_bytes(b"\xff\xfe\x00garbage")
        cache = RateCache(client=client, store=JsonFileRateStore(path), clock=clock,
                          max_age=timedelta(minutes=5), max_stale_age=timedelta(hours=1))
        try:
            result = cache.get_latest("USD")
        finally:
            cache.close()

        assert result.is_fresh
        assert client.calls == ["USD"]
        assert (tmp_path / "rates.json.corrupt").exists()
        assert JsonFileRateStore(path).find_latest("USD").as_of == result.snapshot.as_of

    def test_unexpected_store_errors_are_warnings(self, make_cache, client, store, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("driver crashed")

        monkeypatch.setattr(store, "find_latest", broken)
        monkeypatch.setattr(store, "save", broken)
        cache = make_cache()

        result = cache.get_latest("USD")

        assert result.is_fresh
        assert client.calls == ["USD"]
        assert any("store read failed" in w for w in result.warnings)
        assert any("store write failed" in w for w in result.warnings)
        assert cache.stats.store_failures == 2

    def test_result_key_matches_request(self, make_cache, client):
        client.responses.append(RateSnapshot("EUR", T0, {"USD": 1.1}))
        cache = make_cache()
        with pytest.raises(ProviderUnavailableError, match="returned EUR rates"):
            cache.get_latest("USD")

    def test_unexpected_client_error_becomes_unavailable(self, make_cache, client):
        client.responses.append(RuntimeError("socket exploded"))
        cache = make_cache()
        with pytest.raises(ProviderUnavailableError, match="socket exploded"):
            cache.get_latest("USD")

    def test_max_stale_age_below_max_age_rejected(self, make_cache):
        cache = make_cache()
        with pytest.raises(ValueError):
            cache.get_latest("USD", max_age=600, max_stale_age=60)


class TestDegradation:
    def _cache_with_aged_snapshot(self, make_cache, client, store, age):
        store.saved.append(RateSnapshot("USD", T0 - age, {"EUR": 0.9}))
        client.responses.append(ProviderUnavailableError("provider down"))
        return make_cache()

    def test_serves_degraded_within_ceiling(self, make_cache, client, store):
        cache = self._cache_with_aged_snapshot(make_cache, client, store, timedelta(minutes=10))

        result = cache.get_latest("USD", max_age=timedelta(minutes=5), max_stale_age=timedelta(minutes=15))

        assert result.freshness is Freshness.DEGRADED
        assert result.snapshot.as_of == T0 - timedelta(minutes=10)
        assert any("provider down" in w for w in result.warnings)
        assert cache.stats.degraded == 1

    def test_stale_data_exceeded_beyond_ceiling(self, make_cache, client, store):
        cache = self._cache_with_aged_snapshot(make_cache, client, store, timedelta(minutes=10))

        with pytest.raises(StaleDataExceededError):
            cache.get_latest("USD", max_age=timedelta(minutes=5), max_stale_age=timedelta(minutes=8))

    def test_no_snapshot_is_provider_unavailable(self, make_cache, client):
        client.responses.append(ProviderUnavailableError("provider down"))
        cache = make_cache()

        with pytest.raises(ProviderUnavailableError) as excinfo:
            cache.get_latest("USD")
        assert not isinstance(excinfo.value, StaleDataExceededError)

    def test_unusable_provider_data_degrades(self, make_cache, client, store):
        store.saved.append(RateSnapshot("USD", T0 - timedelta(minutes=10), {"EUR": 0.9}))
        client.responses.append(InvalidRateError("Rate table for USD is empty"))
        cache = make_cache()

        result = cache.get_latest("USD", max_age=timedelta(minutes=5), max_stale_age=timedelta(minutes=15))

        assert result.is_degraded
        assert any("is empty" in w for w in result.warnings)

    def test_failed_refresh_is_not_retried(self, make_cache, client, clock):
        cache = make_cache()
        cache.get_latest("USD")
        clock.advance(minutes=10)
        client.responses.append(ProviderUnavailableError("provider down"))

        result = cache.get_latest("USD")

        assert result.is_degraded
        assert client.calls == ["USD", "USD"]


class TestSingleFlight:
    def test_concurrent_callers_share_one_refresh(self, make_cache, client):
        client.gate = threading.Event()
        cache = make_cache()
        n = 8

        threads, results, errors = run_concurrently(n, lambda: cache.get_latest("USD"))
        assert wait_until(lambda: cache.stats.misses == n)
        client.gate.set()
        for t in threads:
            t.join(5)

        assert errors == [None] * n
        assert client.calls == ["USD"]
        assert len({id(r.snapshot) for r in results}) == 1
        assert cache.stats.refreshes == 1
        assert cache.stats.joined == n - 1

    def test_failure_broadcast_to_all_waiters(self, make_cache, client):
        client.gate = threading.Event()
        client.responses.append(ProviderUnavailableError("quota exhausted"))
        cache = make_cache()
        n = 5

        threads, results, errors = run_concurrently(n, lambda: cache.get_latest("USD"))
        assert wait_until(lambda: cache.stats.misses == n)
        client.gate.set()
        for t in threads:
            t.join(5)

        assert client.calls == ["USD"]
        assert all(isinstance(e, ProviderUnavailableError) for e in errors)
        assert all("quota exhausted" in str(e) for e in errors)

    def test_different_currencies_do_not_block(self, make_cache, client):
        client.gate = threading.Event()
        client.gated_codes = {"USD"}
        cache = make_cache()

        threads, _, _ = run_concurrently(1, lambda: cache.get_latest("USD"))
        assert client.entered.wait(5)

        result = cache.get_latest("EUR", timeout=2)
        assert result.snapshot.source_currency == "EUR"

        client.gate.set()
        threads[0].join(5)

    def test_zero_max_age_joiner_skips_stored_snapshot(self, make_cache, client, store):
        stored = RateSnapshot("USD", T0 - timedelta(minutes=1), {"EUR": 0.8})
        store.saved.append(stored)
        store.read_gate = threading.Event()
        cache = make_cache()

        first, first_results, first_errors = run_concurrently(1, lambda: cache.get_latest("USD"))
        assert store.read_entered.wait(5)
        second, second_results, second_errors = run_concurrently(1, lambda: cache.get_latest("USD", max_age=0))
        assert wait_until(lambda: cache.stats.joined == 1)
        store.read_gate.set()
        for t in first + second:
            t.join(5)

        assert first_errors == [None] and second_errors == [None]
        assert client.calls == ["USD"]
        assert second_results[0].snapshot.as_of == T0
        assert first_results[0].snapshot is second_results[0].snapshot

    def test_timeout_leaves_refresh_running(self, make_cache, client):
        client.gate = threading.Event()
        cache = make_cache()

        with pytest.raises(LookupTimeoutError):
            cache.get_latest("USD", timeout=0.05)

        client.gate.set()
        assert wait_until(lambda: cache.peek("USD") is not None)

        result = cache.get_latest("USD", timeout=1)
        assert result.is_fresh
        assert client.calls == ["USD"]


class TestOrdering:
    def test_older_provider_answer_never_replaces_newer(self, make_cache, client, store):
        newer = RateSnapshot("USD", T0, {"EUR": 0.9})
        older = RateSnapshot("USD", T0 - timedelta(hours=1), {"EUR": 0.8})
        client.responses.extend([newer, older])
        cache = make_cache()

        cache.get_latest("USD", max_age=0)
        result = cache.get_latest("USD", max_age=0)

        assert result.snapshot is newer
        assert cache.peek("USD") is newer
        assert any("older than cached" in w for w in result.warnings)
        # history still records what the provider returned
        assert older in store.saved

    def test_decreasing_sequence_keeps_maximum(self, make_cache, client):
        stamps = [T0 - timedelta(minutes=m) for m in (5, 10, 1, 20)]
        client.responses.extend(RateSnapshot("USD", ts, {"EUR": 0.9}) for ts in stamps)
        cache = make_cache()

        for _ in stamps:
            cache.get_latest("USD", max_age=0)

        assert cache.peek("USD").as_of == T0 - timedelta(minutes=1)


class TestHistory:
    def test_returns_newest_first(self, make_cache, client, store):
        t1 = T0 - timedelta(hours=2)
        t2 = T0 - timedelta(hours=1)
        store.saved.extend([RateSnapshot("EUR", t1, {"USD": 1.1}), RateSnapshot("EUR", t2, {"USD": 1.2})])
        cache = make_cache()

        history = cache.get_history("EUR", t1, t2)

        assert [s.as_of for s in history] == [t2, t1]
        assert client.calls == []
        assert cache.peek("EUR") is None

    def test_idempotent(self, make_cache, store):
        store.saved.append(RateSnapshot("EUR", T0, {"USD": 1.1}))
        cache = make_cache()
        start, end = T0 - timedelta(days=1), T0
        assert cache.get_history("EUR", start, end) == cache.get_history("EUR", start, end)

    def test_empty_range(self, make_cache):
        cache = make_cache()
        assert cache.get_history("EUR", T0 - timedelta(days=1), T0) == []

    def test_rejects_inverted_range(self, make_cache):
        cache = make_cache()
        with pytest.raises(ValueError, match="start must be <= end"):
            cache.get_history("EUR", T0, T0 - timedelta(seconds=1))

    def test_rejects_naive_bounds(self, make_cache):
        cache = make_cache()
        with pytest.raises(ValueError, match="timezone-aware"):
            cache.get_history("EUR", datetime(2024, 1, 1), T0)

    def test_with_timeout(self, make_cache, store):
        store.saved.append(RateSnapshot("EUR", T0, {"USD": 1.1}))
        cache = make_cache()
        assert len(cache.get_history("EUR", T0, T0, timeout=2)) == 1


class TestHelpers:
    def test_convert(self, make_cache):
        cache = make_cache()
        assert cache.convert(100, "USD", "EUR") == pytest.approx(90.0)
        assert cache.convert(5, "usd", "USD") == 5.0
        with pytest.raises(KeyError):
            cache.convert(1, "USD", "JPY")

    def test_invalidate_forces_provider_refresh(self, make_cache, client, store):
        store.saved.append(RateSnapshot("USD", T0, {"EUR": 0.9}))
        cache = make_cache()
        cache.get_latest("USD")
        assert client.calls == []

        assert cache.invalidate("USD") is True
        cache.get_latest("USD")
        assert client.calls == ["USD"]
        assert cache.invalidate("GBP") is False

    def test_known_currencies(self, make_cache):
        cache = make_cache()
        cache.get_latest("USD")
        cache.get_latest("EUR")
        assert cache.known_currencies() == ["EUR", "USD"]

    def test_closed_cache_reports_unavailable(self, make_cache):
        cache = make_cache()
        cache.close()
        with pytest.raises(ProviderUnavailableError, match="closed"):
            cache.get_latest("USD")
