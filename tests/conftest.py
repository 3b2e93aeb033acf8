"""
Pytest configuration for market_backfill tests.

This file contains:
- Global pytest configuration and markers
- A temporary SQLite DatabaseManager fixture
- An in-process fakeredis server for the sentinel cache
- A scripted source adapter for backfill task tests
"""

import threading
from datetime import datetime, timezone

import pytest
import fakeredis

from market_backfill.cache.sentinel import SentinelCache
from market_backfill.database.manager import DatabaseManager
from market_backfill.utils.exceptions import FetchError


# Global pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line(
        "markers", "unit: mark test as unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
    config.addinivalue_line(
        "markers", "external_api: mark test as requiring external API access"
    )


class ScriptedSource:
    """
    Source adapter stand-in returning prepared records per security code.

    A value that is an exception instance is raised instead of returned;
    codes without an entry raise FetchError.
    """

    source_name = "scripted"

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.calls = []
        self._lock = threading.Lock()

    def fetch(self, security_code):
        with self._lock:
            self.calls.append(security_code)
        response = self.responses.get(security_code)
        if response is None:
            raise FetchError(f"no data for {security_code}")
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def redis_server():
    """In-process Redis server; set ``connected = False`` to simulate an outage."""
    return fakeredis.FakeServer()


@pytest.fixture
def fake_redis(redis_server):
    return fakeredis.FakeStrictRedis(server=redis_server)


@pytest.fixture
def sentinel(fake_redis):
    return SentinelCache(fake_redis)


@pytest.fixture
def temp_db(tmp_path):
    """Fresh SQLite database per test."""
    manager = DatabaseManager(str(tmp_path / "test_market_data.db"))
    yield manager
    manager.engine.dispose()


@pytest.fixture
def now():
    """Reference time whose previous quarter is 2026Q2 and annual window is 2025."""
    return datetime(2026, 10, 18, 17, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_source():
    """Factory for ScriptedSource instances."""
    return ScriptedSource
