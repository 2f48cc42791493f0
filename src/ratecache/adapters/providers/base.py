# src/ratecache/adapters/providers/base.py
"""
Base Client Interface for Exchange Rate Providers

This module defines the abstract base class for all rate clients.
A client fetches one full rate table for a source currency. It never
retries and never caches; both belong to RateCache.

Files that USE this module:
- ratecache.adapters.providers.fastforex (FastForexClient implements RateClient)
- ratecache.adapters.providers.static (StaticRateClient implements RateClient)
- ratecache.application.rate_cache (depends on the RateClient contract)

Files that this module USES:
- ratecache.domain.models (RateSnapshot)
"""
from abc import ABC, abstractmethod

from ratecache.domain.models import RateSnapshot


class RateClient(ABC):
    name: str = "abstract"

    @abstractmethod
    def fetch(self, source_currency: str) -> RateSnapshot:
        """
        Return the current rate table for source_currency.

        Raises:
            ProviderUnavailableError: On network or provider failure
            InvalidCurrencyError: If the provider rejects the code
        """
        raise NotImplementedError
