# src/ratecache/adapters/persistence/file_store.py
"""
File Store - Snapshot History in a JSON Document

This module persists rate snapshots to a single JSON file. Writes are atomic
(temp file + rename) and serialized with a lock, so concurrent refreshes for
different currencies never corrupt the document.

Files that USE this module:
- ratecache.adapters.persistence (make_rate_store picks this for *.json paths)
- tests.test_stores (unit tests)

Files that this module USES:
- ratecache.adapters.persistence.base (RateStore interface)
- ratecache.domain.models (RateSnapshot serialization)
"""
from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

from ratecache.adapters.persistence.base import RateStore
from ratecache.domain.errors import StoreUnavailableError
from ratecache.domain.models import RateSnapshot
from ratecache.shared.validators import normalize_currency

log = logging.getLogger(__name__)


class JsonFileRateStore(RateStore):
    """Append-only snapshot history stored as {"snapshots": [...]}."""

    def __init__(self, path: Union[str, Path]):
        """
        Initialize file store.

        Args:
            path: Path to the JSON document (parent directories are created)
        """
        self.path = Path(path)
        self._lock = threading.Lock()
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreUnavailableError(f"Cannot create store directory {self.path.parent}: {e}") from e

    def _load(self) -> List[RateSnapshot]:
        """
        Load every snapshot from disk.

        A corrupt document (bad UTF-8, bad JSON or the wrong shape) is backed
        up to *.corrupt and treated as empty.
        """
        if not self.path.exists():
            return []

        try:
            with self.path.open("r", encoding="utf-8") as f:
                try:
                    data = json.load(f)
                except ValueError as e:
                    # JSONDecodeError and UnicodeDecodeError
                    self._backup_corrupt(e)
                    return []
            if not isinstance(data, dict) or not isinstance(data.get("snapshots", []), list):
                self._backup_corrupt("top-level value is not a snapshot document")
                return []
        except OSError as e:
            raise StoreUnavailableError(f"Failed to read store file {self.path}: {e}") from e

        snapshots = []
        for raw in data.get("snapshots", []):
            try:
                snapshots.append(RateSnapshot.from_json(raw))
            except (KeyError, ValueError, TypeError, AttributeError) as e:
                log.warning("Skipping malformed snapshot record in %s: %s", self.path, e)
        return snapshots

    def _backup_corrupt(self, reason) -> None:
        backup_path = self.path.with_suffix(".json.corrupt")
        shutil.copy2(self.path, backup_path)
        log.warning("Store file corrupted, backed up to %s: %s", backup_path, reason)

    def _write(self, snapshots: List[RateSnapshot]) -> None:
        """Write the whole document atomically."""
        temp_fd, temp_path = tempfile.mkstemp(
            suffix=".json.tmp",
            dir=str(self.path.parent),
            text=True,
        )
        try:
            with os.fdopen(temp_fd, "w", encoding="utf-8") as f:
                json.dump({"snapshots": [s.to_json() for s in snapshots]}, f, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, str(self.path))
        except OSError as e:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise StoreUnavailableError(f"Failed to write store file {self.path}: {e}") from e

    def save(self, snapshot: RateSnapshot) -> None:
        with self._lock:
            snapshots = self._load()
            snapshots.append(snapshot)
            self._write(snapshots)
        log.debug("Saved %s snapshot as of %s to %s", snapshot.source_currency, snapshot.as_of, self.path)

    def _for_currency(self, source_currency: str) -> List[RateSnapshot]:
        code = normalize_currency(source_currency)
        with self._lock:
            snapshots = self._load()
        matching = [s for s in snapshots if s.source_currency == code]
        # newest first; equal as_of keeps the later insert first
        return [s for _, s in sorted(enumerate(matching), key=lambda p: (p[1].as_of, p[0]), reverse=True)]

    def find_latest(self, source_currency: str) -> Optional[RateSnapshot]:
        snapshots = self._for_currency(source_currency)
        return snapshots[0] if snapshots else None

    def find_range(self, source_currency: str, start: datetime, end: datetime) -> List[RateSnapshot]:
        return [s for s in self._for_currency(source_currency) if start <= s.as_of <= end]
