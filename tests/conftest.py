"""
Shared pytest fixtures and configuration for moredis tests.

This module provides:
- ``store`` / ``source`` fixtures backed by the in-memory fakes in
  ``tests._support.fakes``
- Settings and logging cleanup fixtures for test isolation

Usage:
    def test_something(store, source):
        source.add("users", [{"_id": "1", "email": "A@x"}])
        ...
        assert store.writes == ["HSET moredis:maps:1 a@x 1"]
"""

import pytest
import structlog

from moredis.core.config.settings import clear_settings_cache
from moredis.framework.logging import clear_context
from tests._support.fakes import FakeSource, FakeStore


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Isolate tests from the caller's environment and the settings cache."""
    for name in (
        "MONGO_URL",
        "REDIS_URL",
        "MOREDIS_MONGO_URL",
        "MOREDIS_REDIS_URL",
        "MOREDIS_CONFIG_FILE",
        "MOREDIS_KEY_PREFIX",
        "MOREDIS_FLUSH_INTERVAL",
        "MOREDIS_LOG_LEVEL",
        "MOREDIS_LOG_FORMAT",
    ):
        monkeypatch.delenv(name, raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture(autouse=True)
def clean_log_context():
    clear_context()
    yield
    clear_context()
    structlog.reset_defaults()
