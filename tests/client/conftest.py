"""Shared fixtures for client tests."""

from __future__ import annotations

import pytest

from fleetsync.client.cache import LocalCache
from fleetsync.client.errors import ErrorClassifier
from fleetsync.client.network import NetworkMonitor
from fleetsync.client.queue import OfflineQueue
from fleetsync.client.storage import MemoryKeyValueStore
from fleetsync.core.config import MonitorConfig
from tests.client.fakes import (
    GENERIC_URL,
    PRIMARY_URL,
    FakeClock,
    FakeDocumentStore,
    FakeProbe,
    PlatformFlag,
)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def probe(clock: FakeClock) -> FakeProbe:
    return FakeProbe(clock)


@pytest.fixture
def platform() -> PlatformFlag:
    return PlatformFlag(online=True)


@pytest.fixture
def monitor_config() -> MonitorConfig:
    return MonitorConfig(primary_url=PRIMARY_URL, generic_url=GENERIC_URL)


@pytest.fixture
def monitor(
    monitor_config: MonitorConfig,
    probe: FakeProbe,
    platform: PlatformFlag,
    clock: FakeClock,
) -> NetworkMonitor:
    """A NetworkMonitor wired to the fake probe, platform flag and clock."""
    return NetworkMonitor(monitor_config, probe=probe, platform_online=platform, clock=clock)


@pytest.fixture
def kv_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def queue(kv_store: MemoryKeyValueStore) -> OfflineQueue:
    return OfflineQueue(kv_store)


@pytest.fixture
def cache(kv_store: MemoryKeyValueStore) -> LocalCache:
    return LocalCache(kv_store)


@pytest.fixture
def classifier() -> ErrorClassifier:
    return ErrorClassifier()


@pytest.fixture
def documents() -> FakeDocumentStore:
    return FakeDocumentStore()
