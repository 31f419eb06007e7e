"""Pytest configuration and shared fixtures."""

import time
from datetime import datetime, timezone

import pytest

from cmdguard.config import SecurityConfig
from cmdguard.core.rules import DEFAULT_RULES_PATH, RuleSet
from cmdguard.core.validator import CommandValidator, set_default_validator
from cmdguard.exceptions import StoreError
from cmdguard.integrations.store import KeyValueStore, MemoryStore

# 2025-10-09 12:00:00 UTC
START_TIME = 1760011200.0


class FakeClock:
    """Manually advanced time source (seconds since the epoch)."""

    def __init__(self, start=START_TIME):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds

    def datetime(self):
        return datetime.fromtimestamp(self.now, tz=timezone.utc)


class FailingStore(KeyValueStore):
    """Store whose every operation raises StoreError."""

    def get(self, key, default=None):
        raise StoreError("store unavailable", key=key)

    def set(self, key, value):
        raise StoreError("store unavailable", key=key)

    def remove(self, key):
        raise StoreError("store unavailable", key=key)


class PlainStore(KeyValueStore):
    """Dict-backed store without copying, for tests that write many entries."""

    def __init__(self):
        self.data = {}

    def get(self, key, default=None):
        return self.data.get(key, default)

    def set(self, key, value):
        self.data[key] = value

    def remove(self, key):
        self.data.pop(key, None)


class SlowStore(MemoryStore):
    """MemoryStore whose reads stall, widening any read-modify-write gap."""

    def get(self, key, default=None):
        value = super().get(key, default)
        time.sleep(0.005)
        return value


@pytest.fixture
def default_rules_path():
    """Path to the built-in rules file."""
    return DEFAULT_RULES_PATH


@pytest.fixture
def store():
    """Empty in-memory store."""
    return MemoryStore()


@pytest.fixture
def failing_store():
    return FailingStore()


@pytest.fixture
def plain_store():
    return PlainStore()


@pytest.fixture
def slow_store():
    return SlowStore()


@pytest.fixture
def clock():
    """FakeClock starting at a fixed instant."""
    return FakeClock()


@pytest.fixture
def rules():
    """Fresh registry holding the built-in rules."""
    return RuleSet.default()


@pytest.fixture
def make_validator(store, clock):
    """Factory fixture for validators sharing the test store and clock."""

    def _create(config=None, **kwargs):
        kwargs.setdefault("store", store)
        kwargs.setdefault("clock", clock)
        return CommandValidator(config=config or SecurityConfig(), **kwargs)

    return _create


@pytest.fixture
def validator(make_validator):
    """Validator with default config, in-memory store and fake clock."""
    return make_validator()


@pytest.fixture
def default_validator(validator):
    """Install ``validator`` behind the module-level API for one test."""
    set_default_validator(validator)
    yield validator
    set_default_validator(None)


@pytest.fixture
def isolated_config(tmp_path, monkeypatch):
    """Keep user and project config files out of config loading."""
    monkeypatch.setattr("cmdguard.config.get_user_config_path", lambda: tmp_path / "user" / "config.yaml")
    monkeypatch.chdir(tmp_path)
    return tmp_path
