# src/ratecache/domain/models.py
"""
Domain Models - Pure Business Objects

This module contains the domain models the cache works with:
- Rate snapshots (one immutable rate table per source currency and time)
- Lookup results (a snapshot plus fresh/degraded metadata)

Files that USE this module:
- ratecache.application.* (the cache builds and returns these)
- ratecache.adapters.* (providers create snapshots, stores persist them)
- tests.* (tests use domain models for test data)

Files that this module USES:
- ratecache.shared.validators (currency code and rate validation)
- ratecache.domain.errors (InvalidRateError)
"""

from __future__ import annotations  # Enable postponed evaluation of annotations

from dataclasses import dataclass, field  # Decorator for creating data classes
from datetime import datetime, timedelta, timezone  # Date/time utilities for timestamps
from enum import Enum  # Fresh/degraded marker
from types import MappingProxyType  # Read-only view over the copied rate table
from typing import Any, Dict, Mapping, Optional, Tuple  # Type hints

from ratecache.domain.errors import InvalidRateError
from ratecache.shared.validators import normalize_currency, validate_rate_value


def _parse_ts(raw: str) -> datetime:
    # Accept both "...Z" and "+00:00"
    ts = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


@dataclass(frozen=True)
class RateSnapshot:
    """
    One fetched rate table for a source currency at a point in time.

    Attributes:
        source_currency: Uppercase 3-letter code the rates are quoted against
        as_of: Timezone-aware time at which the provider considered rates current
        rates: Target code -> units of target per 1 unit of source

    The rate table is copied on construction and exposed read-only, so a
    snapshot never changes after it is built.
    """
    source_currency: str
    as_of: datetime
    rates: Mapping[str, float]

    def __post_init__(self) -> None:
        source = normalize_currency(self.source_currency)
        if not isinstance(self.as_of, datetime) or self.as_of.tzinfo is None:
            raise ValueError("as_of must be a timezone-aware datetime")

        table: Dict[str, float] = {}
        for target, value in dict(self.rates).items():
            code = normalize_currency(target)
            if code == source:
                raise InvalidRateError(f"Rate table for {source} lists itself as a target")
            if not validate_rate_value(value):
                raise InvalidRateError(f"Invalid rate for {source}->{code}: {value!r}")
            table[code] = float(value)
        if not table:
            raise InvalidRateError(f"Rate table for {source} is empty")

        # frozen dataclass: assign normalized values through object.__setattr__
        object.__setattr__(self, "source_currency", source)
        object.__setattr__(self, "rates", MappingProxyType(table))

    def rate(self, target: str) -> float:
        """
        Get the rate for one target currency.

        Raises:
            KeyError: If the snapshot has no rate for the target
        """
        return self.rates[target.upper()]

    def rates_dict(self) -> Dict[str, float]:
        """Return a mutable copy of the rate table."""
        return dict(self.rates)

    def age(self, now: Optional[datetime] = None) -> timedelta:
        """Time elapsed between as_of and now (UTC by default)."""
        return (now or datetime.now(timezone.utc)) - self.as_of

    def to_json(self) -> dict:
        """
        Convert to a JSON-serializable dictionary.

        Returns:
            Dictionary with ISO-formatted timestamp
        """
        return {
            "source_currency": self.source_currency,
            "as_of": self.as_of.isoformat(),
            "rates": self.rates_dict(),
        }

    @staticmethod
    def from_json(data: Mapping[str, Any]) -> "RateSnapshot":
        """
        Create a RateSnapshot from a JSON dictionary.

        Args:
            data: Dictionary produced by to_json()

        Returns:
            RateSnapshot instance with parsed data
        """
        return RateSnapshot(
            source_currency=str(data["source_currency"]),
            as_of=_parse_ts(str(data["as_of"])),
            rates={str(k): float(v) for k, v in dict(data["rates"]).items()},
        )


class Freshness(str, Enum):
    """Whether a lookup answer satisfied the caller's max_age."""
    FRESH = "fresh"
    DEGRADED = "degraded"


@dataclass(frozen=True)
class LatestResult:
    """
    Outcome of a latest-rate lookup.

    Attributes:
        snapshot: The snapshot handed to the caller
        freshness: FRESH when within max_age, DEGRADED when served stale after a failed refresh
        warnings: Failures absorbed while producing this answer (refresh or store errors)
    """
    snapshot: RateSnapshot
    freshness: Freshness = Freshness.FRESH
    warnings: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_fresh(self) -> bool:
        return self.freshness is Freshness.FRESH

    @property
    def is_degraded(self) -> bool:
        return self.freshness is Freshness.DEGRADED

    def to_json(self) -> dict:
        data = self.snapshot.to_json()
        data["freshness"] = self.freshness.value
        data["warnings"] = list(self.warnings)
        return data
