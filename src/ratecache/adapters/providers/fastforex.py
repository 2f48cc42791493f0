# src/ratecache/adapters/providers/fastforex.py
"""
FastForex API Client for Full Rate Tables

This module implements the fastFOREX `fetch-all` client: one request returns
every rate quoted against a source currency. Library and HTTP failures are
translated into the domain error taxonomy so RateCache can decide between
degrading and failing.

Files that USE this module:
- ratecache.adapters.providers (make_rate_client factory)
- tests.test_providers (unit tests)

Files that this module USES:
- ratecache.adapters.providers.base (RateClient interface)
- ratecache.config (settings for API key, URL and timeout)
"""
import logging
from datetime import datetime, timezone
from typing import Optional

import requests

from ratecache.adapters.providers.base import RateClient
from ratecache.config import settings
from ratecache.domain.errors import InvalidCurrencyError, ProviderUnavailableError
from ratecache.domain.models import RateSnapshot
from ratecache.shared.validators import normalize_currency, validate_currency_code, validate_rate_value

log = logging.getLogger(__name__)

# fastFOREX answers these, with an error body naming the currency, when `from` is unknown
_REJECTED_CODE_STATUSES = (400, 404, 422)


def _reports_invalid_currency(resp: requests.Response) -> bool:
    """Check whether an error response body blames the requested currency."""
    try:
        body = resp.json()
    except ValueError:
        return False
    if not isinstance(body, dict):
        return False
    message = " ".join(str(body.get(k, "")) for k in ("error", "message"))
    return "currenc" in message.lower()


def _parse_updated(raw: Optional[str]) -> datetime:
    """
    Parse the provider's `updated` field ("YYYY-MM-DD HH:MM:SS", UTC).

    Falls back to the current time when the field is absent.
    """
    if not raw:
        return datetime.now(timezone.utc)
    ts = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


class FastForexClient(RateClient):
    name = "fastforex"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize FastForex API client.

        Args:
            api_key: Optional API key (defaults to settings.fastforex_key)
            base_url: Optional API root (defaults to settings.fastforex_base_url)
            timeout: Optional HTTP timeout in seconds (defaults to settings.http_timeout_seconds)
            session: Optional requests session (plain requests.get when omitted)

        Raises:
            ValueError: If the API key is missing or empty
        """
        self.api_key = api_key if api_key is not None else settings.fastforex_key
        if not self.api_key or not self.api_key.strip():
            raise ValueError("FastForex API key not configured (FASTFOREX_API_KEY).")
        self.base_url = (base_url or settings.fastforex_base_url).rstrip("/")
        self.timeout = timeout or settings.http_timeout_seconds
        self.session = session

    @property
    def url(self) -> str:
        return f"{self.base_url}/fetch-all"

    def _get(self, source: str) -> requests.Response:
        params = {"from": source, "api_key": self.api_key}
        getter = self.session.get if self.session is not None else requests.get
        return getter(self.url, params=params, timeout=self.timeout)

    def fetch(self, source_currency: str) -> RateSnapshot:
        """
        Fetch the full rate table for a source currency.

        Returns:
            RateSnapshot stamped with the provider's `updated` time

        Raises:
            InvalidCurrencyError: If the code is malformed or rejected by the API
            ProviderUnavailableError: On timeout, network error, 5xx, auth/quota errors,
                invalid JSON or an unexpected schema
        """
        source = normalize_currency(source_currency)

        try:
            log.info("Fetching rate table for %s from FastForex", source)
            resp = self._get(source)
        except requests.exceptions.Timeout as e:
            log.warning("FastForex API timeout after %d seconds", self.timeout)
            raise ProviderUnavailableError(f"FastForex API timeout after {self.timeout}s") from e
        except requests.exceptions.RequestException as e:
            log.warning("FastForex API request failed (network/connection error): %s", e)
            raise ProviderUnavailableError(f"FastForex API request failed: {e}") from e

        if resp.status_code >= 500:
            log.warning("FastForex API returned 5xx error (%d) for %s", resp.status_code, source)
            raise ProviderUnavailableError(f"FastForex API returned {resp.status_code} (server error)")

        if resp.status_code in _REJECTED_CODE_STATUSES and _reports_invalid_currency(resp):
            log.error("FastForex rejected currency %s (HTTP %d)", source, resp.status_code)
            raise InvalidCurrencyError(f"FastForex rejected currency {source!r} (HTTP {resp.status_code})")

        try:
            resp.raise_for_status()
            data = resp.json()
        except requests.exceptions.HTTPError as e:
            # 401/403/429: key or quota problems, nothing wrong with the currency
            status = e.response.status_code if e.response is not None else "?"
            log.error("FastForex API HTTP error %s: %s", status, e)
            raise ProviderUnavailableError(f"FastForex API HTTP error {status}") from e
        except ValueError as e:
            # requests' JSONDecodeError is a ValueError
            log.error("FastForex API returned invalid JSON: %s", e)
            raise ProviderUnavailableError(f"FastForex API returned invalid JSON: {e}") from e

        return self._to_snapshot(source, data)

    def _to_snapshot(self, source: str, data) -> RateSnapshot:
        # Expect: {"base":"USD","results":{"EUR":0.9,...},"updated":"2024-01-01 12:00:00"}
        if not isinstance(data, dict) or not isinstance(data.get("results"), dict):
            log.error("FastForex unexpected response structure: %s", data)
            raise ProviderUnavailableError("FastForex response missing 'results' field")

        base = data.get("base", source)
        if str(base).upper() != source:
            raise ProviderUnavailableError(f"FastForex answered for {base!r}, expected {source!r}")

        rates = {}
        for code, value in data["results"].items():
            code = str(code).upper()
            if code == source or not validate_currency_code(code):
                continue
            if not validate_rate_value(value):
                log.warning("FastForex dropped invalid rate %s->%s: %r", source, code, value)
                continue
            rates[code] = float(value)

        if not rates:
            raise ProviderUnavailableError(f"FastForex returned no usable rates for {source}")

        try:
            as_of = _parse_updated(data.get("updated"))
        except ValueError as e:
            raise ProviderUnavailableError(f"FastForex returned invalid 'updated' field: {e}") from e

        log.info("FastForex updated %s: %d rates as of %s", source, len(rates), as_of.isoformat())
        return RateSnapshot(source_currency=source, as_of=as_of, rates=rates)
