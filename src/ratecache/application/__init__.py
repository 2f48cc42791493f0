# src/ratecache/application/__init__.py
"""
Application Layer - Use Cases and Services

This package contains the rate cache and its statistics.
No direct I/O dependencies - uses adapters through interfaces.
"""

from ratecache.application.rate_cache import CacheEntry, RateCache
from ratecache.application.stats import CacheStats

__all__ = [
    "RateCache",
    "CacheEntry",
    "CacheStats",
]
