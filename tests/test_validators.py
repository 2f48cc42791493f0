# tests/test_validators.py
"""
Validator Tests - Currency Codes, Rates and API Keys

Files that USE this module:
- pytest (test runner executes these tests)

Files that this module USES:
- ratecache.shared.validators (validation functions to test)
"""
import pytest  # Testing framework for writing and running tests

from ratecache.domain.errors import InvalidCurrencyError
from ratecache.shared.validators import (
    normalize_currency,
    validate_api_key,
    validate_currency_code,
    validate_rate_value,
)


class TestCurrencyCodes:
    @pytest.mark.parametrize("code", ["USD", "eur", "Gbp"])
    def test_valid(self, code):
        assert validate_currency_code(code)

    @pytest.mark.parametrize("code", ["", "US", "USDT", "U$D", " USD", "USD\n", "123", None])
    def test_invalid(self, code):
        assert not validate_currency_code(code)

    def test_normalize_uppercases(self):
        assert normalize_currency("jpy") == "JPY"

    def test_normalize_raises(self):
        with pytest.raises(InvalidCurrencyError, match="Invalid currency code"):
            normalize_currency("dollars")

    def test_normalize_rejects_trailing_newline(self):
        with pytest.raises(InvalidCurrencyError):
            normalize_currency("USD\n")


class TestRateValues:
    def test_positive_numbers(self):
        assert validate_rate_value(0.0001)
        assert validate_rate_value(151)
        assert validate_rate_value("1.5")

    def test_rejects_non_positive_and_non_finite(self):
        assert not validate_rate_value(0)
        assert not validate_rate_value(-2)
        assert not validate_rate_value(float("inf"))
        assert not validate_rate_value(float("nan"))
        assert not validate_rate_value(False)


class TestApiKey:
    def test_api_key(self):
        assert validate_api_key("abcdefghij")
        assert not validate_api_key("short")
        assert not validate_api_key("")
        assert not validate_api_key(" " * 12)
