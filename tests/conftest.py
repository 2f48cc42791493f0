# tests/conftest.py
"""
Shared Test Fixtures - Fake Clock, Client and Store

Files that USE this module:
- tests.test_rate_cache, tests.test_app (pytest loads fixtures automatically)

Files that this module USES:
- ratecache.adapters.providers.base (RateClient interface for the fake client)
- ratecache.adapters.persistence.base (RateStore interface for the fake store)
"""
import threading  # Gates for concurrency tests
from datetime import datetime, timedelta, timezone  # Controllable clock

import pytest  # Testing framework

from ratecache.adapters.persistence.base import RateStore
from ratecache.adapters.providers.base import RateClient
from ratecache.domain.errors import StoreUnavailableError
from ratecache.domain.models import RateSnapshot

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class FakeClient(RateClient):
    """Returns queued snapshots/exceptions; optionally blocks until released."""
    name = "fake"

    def __init__(self, clock):
        self.clock = clock
        self.calls = []
        self.responses = []
        self.gate = None
        self.gated_codes = None
        self.entered = threading.Event()
        self._lock = threading.Lock()

    def fetch(self, source_currency):
        with self._lock:
            self.calls.append(source_currency)
            response = self.responses.pop(0) if self.responses else None
        self.entered.set()
        if self.gate is not None and (self.gated_codes is None or source_currency in self.gated_codes):
            self.gate.wait(5)
        if isinstance(response, BaseException):
            raise response
        if response is None:
            table = {"EUR": 0.9, "GBP": 0.8, "USD": 1.1}
            table.pop(source_currency, None)
            response = RateSnapshot(source_currency, self.clock(), table)
        return response


class MemoryStore(RateStore):
    def __init__(self):
        self.saved = []
        self.fail_save = False
        self.fail_read = False
        self.reads = 0
        self.read_gate = None
        self.read_entered = threading.Event()

    def save(self, snapshot):
        if self.fail_save:
            raise StoreUnavailableError("disk full")
        self.saved.append(snapshot)

    def _matching(self, code):
        self.reads += 1
        self.read_entered.set()
        if self.read_gate is not None:
            self.read_gate.wait(5)
        if self.fail_read:
            raise StoreUnavailableError("connection refused")
        rows = [s for s in self.saved if s.source_currency == code]
        return sorted(rows, key=lambda s: s.as_of, reverse=True)

    def find_latest(self, source_currency):
        rows = self._matching(source_currency)
        return rows[0] if rows else None

    def find_range(self, source_currency, start, end):
        return [s for s in self._matching(source_currency) if start <= s.as_of <= end]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def client(clock):
    return FakeClient(clock)


@pytest.fixture
def store():
    return MemoryStore()
