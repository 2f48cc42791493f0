# src/ratecache/domain/__init__.py
"""
Domain Layer - Pure Business Objects

This package contains domain models and the error taxonomy.
No dependencies on infrastructure or external systems.
"""

from ratecache.domain.errors import (
    DomainError,
    InvalidCurrencyError,
    InvalidRateError,
    LookupTimeoutError,
    ProviderUnavailableError,
    StaleDataExceededError,
    StoreUnavailableError,
)
from ratecache.domain.models import (
    Freshness,
    LatestResult,
    RateSnapshot,
)

__all__ = [
    "RateSnapshot",
    "LatestResult",
    "Freshness",
    "DomainError",
    "InvalidCurrencyError",
    "InvalidRateError",
    "LookupTimeoutError",
    "ProviderUnavailableError",
    "StaleDataExceededError",
    "StoreUnavailableError",
]
