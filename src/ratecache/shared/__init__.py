# src/ratecache/shared/__init__.py
"""
Shared Utilities - Cross-cutting Concerns

This package contains shared utilities used across all layers:
- Validation
- Logging configuration
"""

from ratecache.shared.validators import (
    normalize_currency,
    validate_api_key,
    validate_currency_code,
    validate_rate_value,
)
from ratecache.shared.logging_conf import setup_logging

__all__ = [
    "normalize_currency",
    "validate_api_key",
    "validate_currency_code",
    "validate_rate_value",
    "setup_logging",
]
