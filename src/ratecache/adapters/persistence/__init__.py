# src/ratecache/adapters/persistence/__init__.py
"""
Persistence Adapters - Snapshot History Storage

This package contains adapters for persisting rate snapshots:
- File-based storage (JSON)
- Relational storage (SQLAlchemy)
"""

from pathlib import Path

from ratecache.adapters.persistence.base import RateStore
from ratecache.adapters.persistence.file_store import JsonFileRateStore
from ratecache.adapters.persistence.sql_store import SqlRateStore


def make_rate_store(url: str) -> RateStore:
    """
    Build a snapshot store from a location string.

    Paths ending in .json get the file store; anything else is treated
    as a SQLAlchemy database URL.
    """
    if url.lower().endswith(".json"):
        return JsonFileRateStore(Path(url).expanduser())
    return SqlRateStore(url)


__all__ = [
    "RateStore",
    "JsonFileRateStore",
    "SqlRateStore",
    "make_rate_store",
]
