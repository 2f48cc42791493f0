# src/ratecache/app.py
"""
Application Entry Point - Cache Wiring and Command Line

This module serves as the composition root for ratecache. It wires the rate
client, the snapshot store and the cache from settings, and exposes a small
command line for one-off lookups.

Files that USE this module:
- ratecache.__main__ (python -m ratecache)

Files that this module USES:
- ratecache.shared.logging_conf (setup_logging for logging configuration)
- ratecache.config (settings for configuration management)
- ratecache.adapters.providers (make_rate_client)
- ratecache.adapters.persistence (make_rate_store)
- ratecache.application.rate_cache (RateCache)
"""

from __future__ import annotations  # Enable postponed evaluation of annotations

import argparse  # Command line parsing
import json  # JSON output for lookups
import logging  # Standard library for logging messages and errors
from datetime import datetime, timezone  # History bounds
from typing import Optional, Sequence  # Type hints

from ratecache.adapters.persistence import make_rate_store  # Snapshot store factory
from ratecache.adapters.providers import make_rate_client  # Rate client factory
from ratecache.application.rate_cache import RateCache  # Core cache
from ratecache.config import Settings, settings  # Configuration
from ratecache.domain.errors import DomainError  # Base of the error taxonomy
from ratecache.shared.logging_conf import setup_logging  # Configure logging with file rotation

log = logging.getLogger(__name__)


def build_cache(
    cfg: Optional[Settings] = None,
    provider: Optional[str] = None,
    store_url: Optional[str] = None,
) -> RateCache:
    """
    Wire client, store and cache from settings.

    Args:
        cfg: Settings instance (defaults to the global settings)
        provider: Override for cfg.rate_provider
        store_url: Override for cfg.store_url

    Returns:
        A RateCache the caller owns (close it when done)
    """
    cfg = cfg or settings
    client = make_rate_client(provider or cfg.rate_provider)
    store = make_rate_store(store_url or cfg.store_url)
    log.info(
        "Rate cache wired: provider=%s store=%s max_age=%ss max_stale_age=%ss",
        type(client).__name__, type(store).__name__, cfg.max_age_seconds, cfg.max_stale_age_seconds,
    )
    return RateCache(
        client=client,
        store=store,
        max_age=cfg.max_age,
        max_stale_age=cfg.max_stale_age,
        max_workers=cfg.refresh_workers,
    )


def _parse_dt(raw: str) -> datetime:
    try:
        ts = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid ISO-8601 datetime: {raw!r}") from e
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ratecache", description="Exchange rate snapshot cache")
    parser.add_argument("--provider", choices=["fastforex", "static"], help="Rate provider (default: RATE_PROVIDER)")
    parser.add_argument("--store", help="SQLAlchemy URL or .json path (default: RATES_STORE_URL)")
    parser.add_argument("--log-level", help="Logging level (default: LOG_LEVEL)")

    sub = parser.add_subparsers(dest="command", required=True)

    latest = sub.add_parser("latest", help="Print the latest snapshot for a source currency")
    latest.add_argument("currency")
    latest.add_argument("--max-age", type=float, help="Freshness window in seconds")
    latest.add_argument("--max-stale-age", type=float, help="Hard ceiling for degraded answers in seconds")
    latest.add_argument("--timeout", type=float, help="Seconds to wait for a refresh")

    history = sub.add_parser("history", help="Print persisted snapshots in a time range")
    history.add_argument("currency")
    history.add_argument("--start", type=_parse_dt, required=True, help="ISO-8601 start (UTC if naive)")
    history.add_argument("--end", type=_parse_dt, help="ISO-8601 end (default: now)")
    history.add_argument("--timeout", type=float, help="Seconds to wait for the store")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the command line. Returns a process exit code."""
    args = build_parser().parse_args(argv)

    setup_logging(
        level=args.log_level or settings.log_level,
        log_file=settings.log_file,
        log_dir=settings.log_dir,
        max_bytes=settings.log_max_bytes,
        backup_count=settings.log_backup_count,
        log_stdout=False,
    )

    try:
        cache = build_cache(provider=args.provider, store_url=args.store)
    except (DomainError, ValueError) as e:
        log.error("Failed to start rate cache: %s", e)
        print(f"error: {e}")
        return 2

    with cache:
        try:
            if args.command == "latest":
                result = cache.get_latest(
                    args.currency,
                    max_age=args.max_age,
                    max_stale_age=args.max_stale_age,
                    timeout=args.timeout,
                )
                print(json.dumps(result.to_json(), indent=2, sort_keys=True))
            else:
                end = args.end or datetime.now(timezone.utc)
                snapshots = cache.get_history(args.currency, args.start, end, timeout=args.timeout)
                print(json.dumps([s.to_json() for s in snapshots], indent=2, sort_keys=True))
        except (DomainError, ValueError) as e:
            log.error("%s failed: %s", args.command, e)
            print(f"error: {e}")
            return 1
        finally:
            log.debug("Cache stats: %s", cache.stats.snapshot())
            cache.store.close()
    return 0
