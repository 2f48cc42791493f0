# src/ratecache/shared/validators.py
"""
Input Validation Utilities - Currency Codes, Rates and Credentials

This module provides the validation helpers used at every entry point:
currency codes are checked before any I/O happens, rate values are checked
when a snapshot is built, and API keys are checked when settings load.

Files that USE this module:
- ratecache.domain.models (RateSnapshot validation)
- ratecache.application.rate_cache (fail-fast code normalization)
- ratecache.adapters.providers.* (normalize codes before requests)
- ratecache.config.settings (API key validation)

Files that this module USES:
- ratecache.domain.errors (InvalidCurrencyError)
"""
import math
import re

from ratecache.domain.errors import InvalidCurrencyError

_CURRENCY_RE = re.compile(r"[A-Z]{3}")


def validate_currency_code(code: str) -> bool:
    """
    Check whether a string is a well-formed 3-letter currency code.

    Lowercase input is accepted; surrounding whitespace is not.

    Args:
        code: Currency code to validate (e.g., 'USD', 'eur')

    Returns:
        True if valid, False otherwise
    """
    if not isinstance(code, str) or not code:
        return False
    return bool(_CURRENCY_RE.fullmatch(code.upper()))


def normalize_currency(code: str) -> str:
    """
    Validate and uppercase a currency code.

    Args:
        code: Currency code to normalize

    Returns:
        Uppercase 3-letter code

    Raises:
        InvalidCurrencyError: If the code is not a 3-letter alphabetic code
    """
    if not validate_currency_code(code):
        raise InvalidCurrencyError(f"Invalid currency code: {code!r}")
    return code.upper()


def validate_rate_value(value: float) -> bool:
    """
    Check whether a rate is a finite positive number.

    Args:
        value: Rate value to validate

    Returns:
        True if valid, False otherwise
    """
    if isinstance(value, bool):
        return False
    try:
        num = float(value)
    except (TypeError, ValueError):
        return False
    return math.isfinite(num) and num > 0


def validate_api_key(api_key: str, min_length: int = 10) -> bool:
    """
    Validate API key format.

    Args:
        api_key: API key to validate
        min_length: Minimum length requirement

    Returns:
        True if valid, False otherwise
    """
    if not api_key:
        return False

    return len(api_key) >= min_length and not api_key.isspace()
