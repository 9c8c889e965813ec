"""Integration test fixtures — real SQLite I/O but no network."""

from __future__ import annotations

from pathlib import Path

import pytest

from pricewatch.core.config import (
    PricewatchConfig,
    SchedulerConfig,
    SnapshotConfig,
    StorageConfig,
)
from pricewatch.core.models import StorageBackend
from pricewatch.storage.store import SqliteKeyValueStore


@pytest.fixture
def integration_config(tmp_path: Path) -> PricewatchConfig:
    """Real config with pacing shrunk to milliseconds."""
    return PricewatchConfig(
        storage=StorageConfig(
            backend=StorageBackend.SQLITE,
            sqlite_path=str(tmp_path / "integration.db"),
        ),
        scheduler=SchedulerConfig(
            request_spacing_seconds=0.01,
            throttle_cooldown_seconds=0.01,
            max_throttle_retries=2,
            poll_seconds=0.05,
        ),
        snapshot=SnapshotConfig(tick_seconds=0.01, idle_poll_seconds=0.005),
    )


@pytest.fixture
async def integration_store(integration_config: PricewatchConfig) -> SqliteKeyValueStore:
    """An initialized SqliteKeyValueStore for integration tests."""
    store = SqliteKeyValueStore(integration_config.storage)
    await store.initialize()
    yield store
    await store.close()
