# src/ratecache/adapters/persistence/base.py
"""
Rate Store Interface - Snapshot History Contract

Files that USE this module:
- ratecache.adapters.persistence.file_store (JsonFileRateStore implementation)
- ratecache.adapters.persistence.sql_store (SqlRateStore implementation)
- ratecache.application.rate_cache (write-through and history reads)

Files that this module USES:
- ratecache.domain.models (RateSnapshot)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from ratecache.domain.models import RateSnapshot


class RateStore(ABC):
    """Append-only history of rate snapshots keyed by source currency and as_of.

    Every failure surfaces as StoreUnavailableError.
    """

    @abstractmethod
    def save(self, snapshot: RateSnapshot) -> None:
        """Append a snapshot. Saving an identical snapshot twice is allowed."""

    @abstractmethod
    def find_latest(self, source_currency: str) -> Optional[RateSnapshot]:
        """Return the snapshot with the greatest as_of for the code, or None."""

    @abstractmethod
    def find_range(self, source_currency: str, start: datetime, end: datetime) -> List[RateSnapshot]:
        """Return snapshots with start <= as_of <= end, newest first."""

    def close(self) -> None:  # pragma: no cover - optional cleanup hook
        """Stores may override to release connections/resources."""


__all__ = ["RateStore"]
