# src/ratecache/application/rate_cache.py
"""
Rate Cache - Latest-Value Cache in Front of the Snapshot Store

This module contains the core lookup logic. For a source currency it returns
the freshest snapshot allowed by the freshness policy, refreshing from the
rate client and writing through to the store when the cached snapshot is
stale or missing.

Refreshes are single-flight per currency: the first stale caller starts a
refresh on the worker pool and every caller (the initiator included) waits
on the same Future. A caller that times out stops waiting; the refresh keeps
running and still updates the cache for later callers.

Files that USE this module:
- ratecache.app (composition root builds one RateCache per process)
- tests.test_rate_cache (unit tests)

Files that this module USES:
- ratecache.adapters.providers.base (RateClient contract)
- ratecache.adapters.persistence.base (RateStore contract)
- ratecache.application.stats (CacheStats counters)
- ratecache.config (default freshness policy, workers, timeout)
- ratecache.domain.* (snapshots, results, error taxonomy)
"""
from __future__ import annotations  # Enable postponed evaluation of annotations

import logging  # Standard library logging
import threading  # Per-key locks
from concurrent.futures import Future, ThreadPoolExecutor  # Single-flight refresh coordination
from concurrent.futures import TimeoutError as FuturesTimeoutError  # Raised by Future.result(timeout)
from dataclasses import dataclass, field  # Cache entry bookkeeping
from datetime import datetime, timedelta, timezone  # Freshness arithmetic
from typing import Callable, Dict, List, Optional, Tuple, Union  # Type hints

from ratecache.adapters.persistence.base import RateStore
from ratecache.adapters.providers.base import RateClient
from ratecache.application.stats import CacheStats
from ratecache.config import settings
from ratecache.domain.errors import (
    DomainError,
    InvalidCurrencyError,
    LookupTimeoutError,
    ProviderUnavailableError,
    StaleDataExceededError,
    StoreUnavailableError,
)
from ratecache.domain.models import Freshness, LatestResult, RateSnapshot
from ratecache.shared.validators import normalize_currency

logger = logging.getLogger(__name__)

Duration = Union[timedelta, int, float]


def _as_timedelta(value: Duration, name: str) -> timedelta:
    if not isinstance(value, timedelta):
        value = timedelta(seconds=value)
    if value < timedelta(0):
        raise ValueError(f"{name} must be non-negative")
    return value


def _as_seconds(value: Optional[Duration]) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CacheEntry:
    """
    Latest known snapshot for one source currency plus refresh bookkeeping.

    Attributes:
        source_currency: Cache key
        snapshot: Newest snapshot known to the cache, or None
        in_flight: Future of the running refresh, or None
        warmed: True once the store has been consulted for this key
        refresh_max_age: Smallest max_age among callers waiting on in_flight
    """
    source_currency: str
    snapshot: Optional[RateSnapshot] = None
    in_flight: Optional[Future] = None
    refresh_max_age: Optional[timedelta] = None
    warmed: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)


@dataclass(frozen=True)
class _RefreshOutcome:
    snapshot: RateSnapshot
    warnings: Tuple[str, ...] = ()


class RateCache:
    """
    Time-bounded, source-keyed latest-value cache over a RateClient and a RateStore.

    Construct one per process and inject it into consumers.
    """

    def __init__(
        self,
        client: RateClient,
        store: RateStore,
        max_age: Optional[Duration] = None,
        max_stale_age: Optional[Duration] = None,
        clock: Optional[Callable[[], datetime]] = None,
        max_workers: Optional[int] = None,
        stats: Optional[CacheStats] = None,
    ):
        """
        Initialize the cache.

        Args:
            client: Rate client used for refreshes
            store: Snapshot store used for write-through and history
            max_age: Default freshness window (defaults to settings.max_age)
            max_stale_age: Default hard ceiling for degraded answers (defaults to settings.max_stale_age)
            clock: Returns the current aware datetime (defaults to UTC now)
            max_workers: Refresh pool size (defaults to settings.refresh_workers)
            stats: Optional shared CacheStats

        Raises:
            ValueError: If a window is negative or max_stale_age < max_age
        """
        self.client = client
        self.store = store
        self.max_age = _as_timedelta(settings.max_age if max_age is None else max_age, "max_age")
        self.max_stale_age = _as_timedelta(
            settings.max_stale_age if max_stale_age is None else max_stale_age, "max_stale_age"
        )
        if self.max_stale_age < self.max_age:
            raise ValueError("max_stale_age must be >= max_age")
        self._clock = clock or _utcnow
        self._entries: Dict[str, CacheEntry] = {}
        self._entries_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or settings.refresh_workers,
            thread_name_prefix="ratecache-refresh",
        )
        self._stats = stats or CacheStats()

    # Internal --------------------------------------------------
    def _entry(self, code: str) -> CacheEntry:
        with self._entries_lock:
            entry = self._entries.get(code)
            if entry is None:
                entry = CacheEntry(source_currency=code)
                self._entries[code] = entry
            return entry

    def _is_fresh(self, snapshot: RateSnapshot, max_age: timedelta) -> bool:
        # max_age == 0 means "always refresh"
        return max_age > timedelta(0) and snapshot.age(self._clock()) <= max_age

    def _install(self, entry: CacheEntry, candidate: RateSnapshot) -> RateSnapshot:
        """Keep the snapshot with the greatest as_of. Caller holds entry.lock."""
        current = entry.snapshot
        if current is None or candidate.as_of >= current.as_of:
            entry.snapshot = candidate
            return candidate
        logger.warning(
            "Ignoring %s snapshot as of %s: cached snapshot as of %s is newer",
            entry.source_currency, candidate.as_of.isoformat(), current.as_of.isoformat(),
        )
        return current

    def _fetch(self, code: str) -> RateSnapshot:
        try:
            snapshot = self.client.fetch(code)
        except (ProviderUnavailableError, InvalidCurrencyError):
            raise
        except DomainError as e:
            # e.g. InvalidRateError from an unusable provider payload
            logger.warning("Rate client %s returned unusable data for %s: %s", type(self.client).__name__, code, e)
            raise ProviderUnavailableError(f"Rate client returned unusable {code} data: {e}") from e
        except Exception as e:
            logger.exception("Rate client %s raised unexpectedly for %s", type(self.client).__name__, code)
            raise ProviderUnavailableError(f"Rate client failed for {code}: {e}") from e
        if snapshot.source_currency != code:
            raise ProviderUnavailableError(
                f"Rate client returned {snapshot.source_currency} rates for a {code} request"
            )
        return snapshot

    def _store_failure(self, action: str, code: str, error: Exception, warnings: List[str]) -> str:
        if not isinstance(error, StoreUnavailableError):
            logger.exception("Rate store %s raised unexpectedly on %s for %s", type(self.store).__name__, action, code)
        self._stats.record("store_failures")
        msg = f"store {action} failed for {code}: {error}"
        warnings.append(msg)
        return msg

    def _persist(self, snapshot: RateSnapshot, warnings: List[str]) -> None:
        """Write-through. A store failure is reported, never fatal."""
        try:
            self.store.save(snapshot)
        except Exception as e:
            msg = self._store_failure("write", snapshot.source_currency, e, warnings)
            logger.warning("Serving unpersisted snapshot, %s", msg)

    def _warm_from_store(self, entry: CacheEntry, warnings: List[str]) -> Optional[RateSnapshot]:
        code = entry.source_currency
        try:
            stored = self.store.find_latest(code)
        except Exception as e:
            msg = self._store_failure("read", code, e, warnings)
            logger.warning("Skipping cache warm-up, %s", msg)
            return None
        entry.warmed = True
        if stored is None:
            return None
        with entry.lock:
            return self._install(entry, stored)

    def _refresh(self, entry: CacheEntry, future: Future) -> None:
        """
        Run one refresh for entry and resolve future with the outcome.

        On the first refresh for a key the store is consulted. A stored snapshot
        is adopted without a provider call only if it is fresh for every caller
        waiting at that point (the smallest max_age among them), so a waiting
        caller that asked for max_age=0 always gets a provider answer. Callers
        joining after that decision accept whatever the refresh returns.
        """
        code = entry.source_currency
        warnings: List[str] = []
        try:
            snapshot = None
            if not entry.warmed:
                stored = self._warm_from_store(entry, warnings)
                with entry.lock:
                    wanted = entry.refresh_max_age
                if stored is not None and wanted is not None and self._is_fresh(stored, wanted):
                    logger.info("Loaded fresh %s snapshot as of %s from store", code, stored.as_of.isoformat())
                    snapshot = stored
            if snapshot is None:
                fetched = self._fetch(code)
                self._persist(fetched, warnings)
                with entry.lock:
                    snapshot = self._install(entry, fetched)
                if snapshot is not fetched:
                    warnings.append(
                        f"provider returned {code} rates as of {fetched.as_of.isoformat()}, "
                        f"older than cached {snapshot.as_of.isoformat()}"
                    )
                logger.info("Refreshed %s rates as of %s (%d targets)", code, snapshot.as_of.isoformat(), len(snapshot.rates))
        except Exception as e:
            self._stats.record("refresh_failures")
            logger.warning("Refresh failed for %s: %s", code, e)
            with entry.lock:
                entry.in_flight = None
                entry.refresh_max_age = None
            future.set_exception(e)
            return

        with entry.lock:
            entry.in_flight = None
            entry.refresh_max_age = None
        future.set_result(_RefreshOutcome(snapshot=snapshot, warnings=tuple(warnings)))

    def _degrade(
        self,
        entry: CacheEntry,
        max_stale_age: timedelta,
        error: Exception,
    ) -> LatestResult:
        code = entry.source_currency
        with entry.lock:
            snapshot = entry.snapshot
        if snapshot is None:
            raise ProviderUnavailableError(f"No {code} rates available: {error}") from error

        age = snapshot.age(self._clock())
        if age > max_stale_age:
            raise StaleDataExceededError(
                f"Cached {code} rates are {age} old (limit {max_stale_age}) and refresh failed: {error}"
            ) from error

        self._stats.record("degraded")
        msg = f"refresh failed for {code}: {error}"
        logger.warning("Serving degraded %s snapshot as of %s (%s old): %s", code, snapshot.as_of.isoformat(), age, error)
        return LatestResult(snapshot=snapshot, freshness=Freshness.DEGRADED, warnings=(msg,))

    # Public API -----------------------------------------------
    def get_latest(
        self,
        source_currency: str,
        max_age: Optional[Duration] = None,
        max_stale_age: Optional[Duration] = None,
        timeout: Optional[Duration] = None,
    ) -> LatestResult:
        """
        Return the freshest snapshot for source_currency allowed by policy.

        Args:
            source_currency: 3-letter source code
            max_age: Freshness window (0 = always refresh); defaults to the cache's
            max_stale_age: Hard ceiling for degraded answers; defaults to the cache's
            timeout: Seconds (or timedelta) to wait for a refresh; None waits forever

        Returns:
            LatestResult, FRESH or DEGRADED

        Raises:
            InvalidCurrencyError: Malformed code (before any I/O) or rejected by provider
            ProviderUnavailableError: Refresh failed and nothing is cached
            StaleDataExceededError: Refresh failed and the cached snapshot is too old
            LookupTimeoutError: timeout elapsed; the refresh keeps running
        """
        code = normalize_currency(source_currency)
        max_age = self.max_age if max_age is None else _as_timedelta(max_age, "max_age")
        max_stale_age = (
            max(self.max_stale_age, max_age)
            if max_stale_age is None
            else _as_timedelta(max_stale_age, "max_stale_age")
        )
        if max_stale_age < max_age:
            raise ValueError("max_stale_age must be >= max_age")
        wait = _as_seconds(timeout if timeout is not None else settings.lookup_timeout_seconds)

        entry = self._entry(code)
        started = False
        with entry.lock:
            snapshot = entry.snapshot
            if snapshot is not None and self._is_fresh(snapshot, max_age):
                self._stats.record("hits")
                logger.debug("Cache hit for %s (as of %s)", code, snapshot.as_of.isoformat())
                return LatestResult(snapshot=snapshot)
            self._stats.record("misses")
            future = entry.in_flight
            if future is None:
                future = Future()
                entry.in_flight = future
                entry.refresh_max_age = max_age
                started = True
            else:
                entry.refresh_max_age = min(entry.refresh_max_age, max_age)

        if started:
            self._stats.record("refreshes")
            try:
                self._executor.submit(self._refresh, entry, future)
            except RuntimeError as e:
                # executor already shut down
                with entry.lock:
                    entry.in_flight = None
                    entry.refresh_max_age = None
                future.set_exception(ProviderUnavailableError(f"Rate cache is closed: {e}"))
        else:
            self._stats.record("joined")
            logger.debug("Joining in-flight refresh for %s", code)

        try:
            outcome: _RefreshOutcome = future.result(timeout=wait)
        except FuturesTimeoutError as e:
            raise LookupTimeoutError(f"Timed out after {wait}s waiting for {code} rates") from e
        except (ProviderUnavailableError, StoreUnavailableError) as e:
            return self._degrade(entry, max_stale_age, e)

        return LatestResult(snapshot=outcome.snapshot, freshness=Freshness.FRESH, warnings=outcome.warnings)

    def get_history(
        self,
        source_currency: str,
        start: datetime,
        end: datetime,
        timeout: Optional[Duration] = None,
    ) -> List[RateSnapshot]:
        """
        Read persisted snapshots with start <= as_of <= end, newest first.

        Never calls the rate client and never touches cached entries.

        Raises:
            InvalidCurrencyError: Malformed code
            ValueError: Naive datetimes or start > end
            StoreUnavailableError: Store read failed
            LookupTimeoutError: timeout elapsed
        """
        code = normalize_currency(source_currency)
        if start.tzinfo is None or end.tzinfo is None:
            raise ValueError("start and end must be timezone-aware")
        if start > end:
            raise ValueError("start must be <= end")
        wait = _as_seconds(timeout if timeout is not None else settings.lookup_timeout_seconds)

        if wait is None:
            return list(self.store.find_range(code, start, end))

        future = self._executor.submit(self.store.find_range, code, start, end)
        try:
            return list(future.result(timeout=wait))
        except FuturesTimeoutError as e:
            raise LookupTimeoutError(f"Timed out after {wait}s reading {code} history") from e

    def peek(self, source_currency: str) -> Optional[RateSnapshot]:
        """Cached snapshot for a code, without any I/O."""
        code = normalize_currency(source_currency)
        with self._entries_lock:
            entry = self._entries.get(code)
        if entry is None:
            return None
        with entry.lock:
            return entry.snapshot

    def known_currencies(self) -> List[str]:
        with self._entries_lock:
            entries = list(self._entries.values())
        return sorted(e.source_currency for e in entries if e.snapshot is not None)

    def invalidate(self, source_currency: str) -> bool:
        """
        Drop the cached snapshot so the next lookup refreshes from the provider.

        Persisted history is untouched.

        Returns:
            True if a snapshot was dropped
        """
        code = normalize_currency(source_currency)
        with self._entries_lock:
            entry = self._entries.get(code)
        if entry is None:
            return False
        with entry.lock:
            dropped = entry.snapshot is not None
            entry.snapshot = None
            entry.warmed = True
        if dropped:
            logger.info("Invalidated cached %s snapshot", code)
        return dropped

    def convert(
        self,
        amount: float,
        source_currency: str,
        target_currency: str,
        max_age: Optional[Duration] = None,
        timeout: Optional[Duration] = None,
    ) -> float:
        """
        Convert an amount using the latest source rates.

        Raises:
            KeyError: If the source table has no rate for the target
        """
        source = normalize_currency(source_currency)
        target = normalize_currency(target_currency)
        if source == target:
            return float(amount)
        result = self.get_latest(source, max_age=max_age, timeout=timeout)
        return float(amount) * result.snapshot.rate(target)

    @property
    def stats(self) -> CacheStats:
        return self._stats

    def close(self) -> None:
        """Stop accepting refreshes; running ones finish in the background."""
        self._executor.shutdown(wait=False)

    def __enter__(self) -> "RateCache":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
