"""Shared pytest fixtures for pricewatch."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

import pytest

from pricewatch.core.config import SchedulerConfig, SnapshotConfig
from pricewatch.core.exceptions import StorageError, StoreWriteError
from pricewatch.core.models import (
    Catalog,
    Group,
    Item,
    ItemList,
    Settings,
    SnapshotRecord,
)
from pricewatch.prices.models import PriceQuote
from pricewatch.storage.repository import PortfolioRepository


class MemoryStore:
    """Dict-backed KeyValueStore. Values pass through JSON like the real one."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.fail_reads: set[str] = set()
        self.fail_writes: set[str] = set()
        self.writes: list[str] = []

    async def get(self, key: str) -> Any | None:
        if key in self.fail_reads:
            raise StorageError(f"read of {key!r} failed", context={"key": key})
        raw = self.data.get(key)
        return None if raw is None else json.loads(raw)

    async def set(self, key: str, value: Any) -> None:
        if key in self.fail_writes:
            raise StoreWriteError(f"write of {key!r} failed", context={"key": key})
        self.data[key] = json.dumps(value)
        self.writes.append(key)


class FakePriceSource:
    """Scripted PriceSource.

    ``outcomes`` maps item names to a Decimal, an exception, or a list of
    those consumed one per call (the last entry repeats).
    """

    def __init__(self, outcomes: dict[str, Any] | None = None) -> None:
        self.outcomes = dict(outcomes or {})
        self.calls: list[str] = []

    async def lookup(self, item_name: str) -> PriceQuote:
        self.calls.append(item_name)
        outcome = self.outcomes.get(item_name)
        if isinstance(outcome, list):
            outcome = outcome.pop(0) if len(outcome) > 1 else outcome[0]
        if isinstance(outcome, Exception):
            raise outcome
        return PriceQuote(name=item_name, lowest_price=outcome, source="fake")


class FakeTime:
    """Injected clock + sleep. Sleeping advances the clock instantly."""

    def __init__(self, start: datetime) -> None:
        self.now = start
        self.sleeps: list[float] = []
        self.on_sleep = None

    def clock(self) -> datetime:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += timedelta(seconds=seconds)
        if self.on_sleep is not None:
            await self.on_sleep(seconds)


# --- Fixtures ---


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def repository(memory_store: MemoryStore) -> PortfolioRepository:
    return PortfolioRepository(memory_store)


@pytest.fixture
def fake_time() -> FakeTime:
    # 12:00 in Berlin (CEST)
    return FakeTime(datetime(2024, 6, 3, 10, 0, tzinfo=timezone.utc))


@pytest.fixture
def scheduler_config() -> SchedulerConfig:
    return SchedulerConfig(
        request_spacing_seconds=2.5,
        throttle_cooldown_seconds=20,
        max_throttle_retries=3,
        poll_seconds=60,
    )


@pytest.fixture
def snapshot_config() -> SnapshotConfig:
    return SnapshotConfig(timezone="Europe/Berlin", tick_seconds=60, idle_poll_seconds=5)


@pytest.fixture
def sample_catalog() -> Catalog:
    """Two top-level lists, a group with one list, and the Dashboard."""
    return Catalog(
        nodes=[
            ItemList(name="Dashboard"),
            ItemList(
                name="Cases",
                items=[
                    Item(name="Chroma Case", quantity=2),
                    Item(
                        name="Prisma Case",
                        quantity=10,
                        current_price=Decimal("0.50"),
                        previous_price=Decimal("0.40"),
                        fluctuation_percent=Decimal("25"),
                    ),
                    Item(name="", quantity=3),
                ],
            ),
            Group(
                name="Stickers",
                lists=[
                    ItemList(
                        name="Katowice 2014",
                        items=[
                            Item(
                                name="Sticker | iBUYPOWER | Katowice 2014",
                                quantity=1,
                                current_price=Decimal("50000"),
                                previous_price=Decimal("48000"),
                                locked=True,
                                color="gold",
                            ),
                            Item(
                                name="Sticker | Titan | Katowice 2014",
                                quantity=1,
                                current_price=Decimal("9000"),
                            ),
                        ],
                    ),
                ],
            ),
            ItemList(
                name="Capsules",
                items=[Item(name="Paris 2023 Legends Sticker Capsule", quantity=4)],
            ),
        ]
    )


@pytest.fixture
def sample_settings() -> Settings:
    return Settings(refresh_interval_minutes=30, snapshot_time_of_day="19:00")


@pytest.fixture
def sample_snapshot() -> SnapshotRecord:
    return SnapshotRecord(
        date_key=datetime(2024, 6, 2).date(),
        value=Decimal("9001.00"),
        captured_at=datetime(2024, 6, 2, 17, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def make_source():
    """Factory for scripted price sources."""
    return FakePriceSource


@pytest.fixture
def make_time():
    """Factory for FakeTime at an arbitrary start instant."""
    return FakeTime
