"""Tests for pricewatch.storage.repository."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from pricewatch.core.exceptions import StorageError
from pricewatch.core.models import (
    Catalog,
    Item,
    ItemList,
    PortfolioState,
    RefreshStatus,
    SchedulerPhase,
    Settings,
    SnapshotRecord,
    StatusReport,
)
from pricewatch.storage.repository import (
    CATALOG_KEY,
    LAST_REFRESH_KEY,
    SETTINGS_KEY,
    PortfolioRepository,
)


def _snapshot(day: int, value: str, scope: str = "dashboard") -> SnapshotRecord:
    return SnapshotRecord(
        scope=scope,
        date_key=date(2024, 6, day),
        value=Decimal(value),
        captured_at=datetime(2024, 6, day, 17, 0, tzinfo=timezone.utc),
    )


class TestCatalog:
    async def test_empty_store_gives_empty_catalog(self, repository):
        assert await repository.load_catalog() == Catalog()

    async def test_round_trip(self, repository, sample_catalog):
        await repository.save_catalog(sample_catalog)
        assert await repository.load_catalog() == sample_catalog

    async def test_invalid_stored_catalog_raises(self, repository, memory_store):
        await memory_store.set(CATALOG_KEY, {"nodes": [{"kind": "list", "name": ""}]})
        with pytest.raises(StorageError, match="Stored catalog is invalid"):
            await repository.load_catalog()


class TestSaveListPrices:
    async def test_merges_price_fields_only(self, repository, sample_catalog):
        await repository.save_catalog(sample_catalog)
        refreshed = Item(
            name="Chroma Case",
            quantity=999,
            current_price=Decimal("1.50"),
            previous_price=Decimal("1.50"),
            color="red",
        )

        applied = await repository.save_list_prices("Cases", {0: refreshed})

        assert applied == 1
        item = (await repository.load_catalog()).find_list("Cases").items[0]
        assert item.current_price == Decimal("1.50")
        assert item.previous_price == Decimal("1.50")
        assert item.quantity == 2
        assert item.color == ""

    async def test_keeps_edits_made_meanwhile(self, repository, sample_catalog):
        await repository.save_catalog(sample_catalog)
        # user bumps a quantity while the list is being refreshed
        edited = sample_catalog.find_list("Cases")
        items = list(edited.items)
        items[1] = items[1].model_copy(update={"quantity": 11})
        await repository.save_catalog(
            sample_catalog.replace_list(edited.model_copy(update={"items": items}))
        )

        refreshed = Item(name="Chroma Case", current_price=Decimal("1.50"))
        await repository.save_list_prices("Cases", {0: refreshed})

        stored = (await repository.load_catalog()).find_list("Cases")
        assert stored.items[1].quantity == 11
        assert stored.items[0].current_price == Decimal("1.50")

    async def test_skips_renamed_item(self, repository, sample_catalog):
        await repository.save_catalog(sample_catalog)
        refreshed = Item(name="Old Name", current_price=Decimal("1.50"))
        assert await repository.save_list_prices("Cases", {0: refreshed}) == 0
        stored = (await repository.load_catalog()).find_list("Cases")
        assert stored.items[0].current_price is None

    async def test_skips_item_locked_meanwhile(self, repository):
        await repository.save_catalog(
            Catalog(nodes=[ItemList(name="L", items=[Item(name="a", locked=True)])])
        )
        refreshed = Item(name="a", current_price=Decimal(3))
        assert await repository.save_list_prices("L", {0: refreshed}) == 0

    async def test_vanished_list(self, repository, sample_catalog, memory_store):
        await repository.save_catalog(sample_catalog)
        writes = len(memory_store.writes)
        refreshed = Item(name="x", current_price=Decimal(1))
        assert await repository.save_list_prices("Gone", {0: refreshed}) == 0
        assert len(memory_store.writes) == writes

    async def test_out_of_range_index(self, repository, sample_catalog):
        await repository.save_catalog(sample_catalog)
        refreshed = Item(name="x", current_price=Decimal(1))
        assert await repository.save_list_prices("Cases", {42: refreshed}) == 0


class TestSettings:
    async def test_defaults_when_missing(self, memory_store):
        defaults = Settings(refresh_interval_minutes=5)
        repo = PortfolioRepository(memory_store, defaults=defaults)
        assert await repo.load_settings() == defaults

    async def test_round_trip(self, repository, sample_settings):
        await repository.save_settings(sample_settings)
        assert await repository.load_settings() == sample_settings

    async def test_invalid_settings_fall_back(self, repository, memory_store):
        await memory_store.set(SETTINGS_KEY, {"snapshot_time_of_day": "25:99"})
        assert await repository.load_settings() == Settings()


class TestLastRefresh:
    async def test_none_when_missing(self, repository):
        assert await repository.load_last_refresh() is None

    async def test_round_trip(self, repository):
        ts = datetime(2024, 6, 3, 9, 30, tzinfo=timezone.utc)
        await repository.save_last_refresh(ts)
        assert await repository.load_last_refresh() == ts

    async def test_corrupt_timestamp_raises_storage_error(self, repository, memory_store):
        await memory_store.set(LAST_REFRESH_KEY, "yesterday-ish")
        with pytest.raises(StorageError, match="refresh timestamp is invalid"):
            await repository.load_last_refresh()


class TestSnapshots:
    async def test_add_and_load_sorted(self, repository):
        await repository.add_snapshot(_snapshot(3, "110"))
        await repository.add_snapshot(_snapshot(1, "100"))
        records = await repository.load_snapshots()
        assert [r.date_key.day for r in records] == [1, 3]

    async def test_never_overwrites(self, repository):
        assert await repository.add_snapshot(_snapshot(3, "110")) is True
        assert await repository.add_snapshot(_snapshot(3, "999")) is False
        records = await repository.load_snapshots()
        assert len(records) == 1
        assert records[0].value == Decimal("110")

    async def test_scope_filter(self, repository):
        await repository.add_snapshot(_snapshot(3, "110"))
        await repository.add_snapshot(_snapshot(3, "10", scope="Cases"))
        assert len(await repository.load_snapshots()) == 2
        assert [r.scope for r in await repository.load_snapshots("Cases")] == ["Cases"]

    async def test_has_snapshot(self, repository):
        await repository.add_snapshot(_snapshot(3, "110"))
        assert await repository.has_snapshot("dashboard", date(2024, 6, 3))
        assert not await repository.has_snapshot("dashboard", date(2024, 6, 4))
        assert not await repository.has_snapshot("Cases", date(2024, 6, 3))


class TestInstallationId:
    async def test_generated_once(self, repository):
        first = await repository.installation_id()
        assert len(first) == 32
        assert await repository.installation_id() == first


class TestStatus:
    async def test_default_status(self, repository):
        assert await repository.load_status() == StatusReport()

    async def test_round_trip(self, repository):
        report = StatusReport(
            status=RefreshStatus.RATE_LIMITED,
            phase=SchedulerPhase.BACKOFF,
            items_updated=3,
            items_failed=1,
            last_sync_ok=False,
        )
        await repository.save_status(report)
        assert await repository.load_status() == report


class TestWholeState:
    async def test_state_round_trip(
        self, repository, memory_store, sample_catalog, sample_settings, sample_snapshot
    ):
        await repository.save_catalog(sample_catalog)
        await repository.save_settings(sample_settings)
        await repository.save_last_refresh(datetime(2024, 6, 3, 9, 0, tzinfo=timezone.utc))
        await repository.add_snapshot(sample_snapshot)
        state = await repository.load_state()

        other = PortfolioRepository(type(memory_store)())
        await other.restore_state(PortfolioState.from_blob(state.to_blob()))

        restored = await other.load_state()
        assert restored.installation_id == state.installation_id
        assert restored.catalog == sample_catalog
        assert restored.settings == sample_settings
        assert restored.snapshots == [sample_snapshot]
        assert restored.last_refresh_at == state.last_refresh_at
