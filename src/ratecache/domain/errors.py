# src/ratecache/domain/errors.py
"""
Domain Errors - Business Logic Exceptions

This module defines the exception taxonomy shared by the cache, the rate
providers and the snapshot stores. Adapters translate library failures
(requests, SQLAlchemy, filesystem) into these types.

Files that USE this module:
- ratecache.domain.models (snapshot validation)
- ratecache.adapters.* (providers and stores raise these)
- ratecache.application.rate_cache (RateCache raises and handles these)
- ratecache.app (CLI maps DomainError to exit codes)
"""


class DomainError(Exception):
    """Base exception for domain errors."""
    pass


class InvalidCurrencyError(DomainError, ValueError):
    """Raised when a currency code is malformed or rejected by the provider."""
    pass


class InvalidRateError(DomainError, ValueError):
    """Raised when a rate table is empty or holds a non-positive/non-finite value."""
    pass


class ProviderUnavailableError(DomainError):
    """Raised when the rate provider fails and no usable snapshot is known."""
    pass


class StaleDataExceededError(ProviderUnavailableError):
    """Raised when the provider fails and the known snapshot is older than max_stale_age."""
    pass


class StoreUnavailableError(DomainError):
    """Raised when a snapshot store read or write fails."""
    pass


class LookupTimeoutError(DomainError, TimeoutError):
    """Raised when a caller stops waiting; the underlying work keeps running."""
    pass
