# src/ratecache/__init__.py
"""
RateCache - Time-Bounded Exchange Rate Cache

A latest-value cache for exchange rate snapshots, keyed by source currency.
Stale entries are refreshed from a rate provider with at most one refresh per
currency in flight, every fetched snapshot is written through to a history
store, and stale answers are served as degraded results when the provider
is down.
"""

__version__ = "1.0.0"
