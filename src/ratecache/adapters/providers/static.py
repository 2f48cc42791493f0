# src/ratecache/adapters/providers/static.py
"""
Static Rate Client - Offline Rate Tables

Serves fixed in-process rate tables stamped with the current time. Used for
offline runs (`--provider static`) and for wiring checks without an API key.

Files that USE this module:
- ratecache.adapters.providers (make_rate_client factory)
- tests.test_providers, tests.test_app
"""
from datetime import datetime, timezone
from typing import Callable, Dict, Mapping, Optional

from ratecache.adapters.providers.base import RateClient
from ratecache.domain.errors import InvalidCurrencyError
from ratecache.domain.models import RateSnapshot
from ratecache.shared.validators import normalize_currency

# Units of target per 1 USD
_USD_TABLE: Dict[str, float] = {
    "EUR": 0.92,
    "GBP": 0.79,
    "JPY": 151.4,
    "CHF": 0.90,
    "CAD": 1.37,
    "AUD": 1.52,
    "INR": 83.3,
    "SGD": 1.35,
}


def _cross_tables(usd_table: Mapping[str, float]) -> Dict[str, Dict[str, float]]:
    """Derive a table per source currency by crossing through USD."""
    per_usd = dict(usd_table)
    per_usd["USD"] = 1.0
    tables = {}
    for source, source_per_usd in per_usd.items():
        tables[source] = {
            target: target_per_usd / source_per_usd
            for target, target_per_usd in per_usd.items()
            if target != source
        }
    return tables


class StaticRateClient(RateClient):
    name = "static"

    def __init__(
        self,
        tables: Optional[Mapping[str, Mapping[str, float]]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.tables = {k.upper(): dict(v) for k, v in (tables or _cross_tables(_USD_TABLE)).items()}
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def fetch(self, source_currency: str) -> RateSnapshot:
        source = normalize_currency(source_currency)
        table = self.tables.get(source)
        if table is None:
            raise InvalidCurrencyError(f"No static rates for {source}")
        return RateSnapshot(source_currency=source, as_of=self.clock(), rates=table)
