# src/ratecache/application/stats.py
"""
Cache Statistics - Track Lookup and Refresh Activity

This module tracks counters for one RateCache instance:
- Fast-path hits and misses
- Refreshes started and joined
- Refresh, store and degraded outcomes

Files that USE this module:
- ratecache.application.rate_cache (records every lookup outcome)
- ratecache.app (prints stats after CLI commands at DEBUG level)

Files that this module USES:
- None (in-memory counters)
"""
from __future__ import annotations

import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Dict, Union


@dataclass
class _Counters:
    hits: int = 0
    misses: int = 0
    refreshes: int = 0
    joined: int = 0
    refresh_failures: int = 0
    degraded: int = 0
    store_failures: int = 0


class CacheStats:
    """Thread-safe counters for cache activity."""

    def __init__(self):
        self._lock = threading.Lock()
        self._counters = _Counters()
        self._since = datetime.now(timezone.utc)

    def record(self, counter: str, amount: int = 1) -> None:
        """
        Increment a named counter.

        Raises:
            AttributeError: If the counter name is unknown
        """
        with self._lock:
            current = getattr(self._counters, counter)
            setattr(self._counters, counter, current + amount)

    def __getattr__(self, name: str) -> int:
        # Expose counters as read-only attributes (stats.hits, stats.refreshes, ...)
        counters = self.__dict__.get("_counters")
        if counters is not None and name in _Counters.__dataclass_fields__:
            return getattr(counters, name)
        raise AttributeError(name)

    def snapshot(self) -> Dict[str, Union[int, str]]:
        """Return a copy of all counters plus the time counting started."""
        with self._lock:
            data: Dict[str, Union[int, str]] = dict(asdict(self._counters))
            data["since"] = self._since.isoformat()
        return data

    def reset(self) -> None:
        with self._lock:
            self._counters = _Counters()
            self._since = datetime.now(timezone.utc)
