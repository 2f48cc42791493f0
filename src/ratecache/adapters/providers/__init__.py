# src/ratecache/adapters/providers/__init__.py
"""
Provider Adapters - External Rate Clients

This package contains clients for external exchange rate APIs.
All clients implement the RateClient interface.
"""

from ratecache.adapters.providers.base import RateClient
from ratecache.adapters.providers.fastforex import FastForexClient
from ratecache.adapters.providers.static import StaticRateClient

_CLIENT_REGISTRY = {
    "fastforex": FastForexClient,
    "static": StaticRateClient,
}


def make_rate_client(kind: str) -> RateClient:
    """
    Build a rate client by name.

    Raises:
        ValueError: If the kind is unknown
    """
    cls = _CLIENT_REGISTRY.get(kind.strip().lower())
    if cls is None:
        raise ValueError(f"Unknown rate provider kind '{kind}'")
    return cls()


__all__ = [
    "RateClient",
    "FastForexClient",
    "StaticRateClient",
    "make_rate_client",
]
