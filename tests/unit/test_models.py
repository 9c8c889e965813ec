"""Tests for pricewatch.core.models."""

from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from pricewatch.core.models import (
    DASHBOARD_LIST,
    Catalog,
    Group,
    Item,
    ItemList,
    PortfolioState,
    RefreshTarget,
    Settings,
    SnapshotRecord,
)


class TestItem:
    def test_defaults(self):
        item = Item(name="Chroma Case")
        assert item.quantity == 0
        assert item.current_price is None
        assert item.fluctuation_percent is None
        assert item.locked is False

    def test_negative_quantity_rejected(self):
        with pytest.raises(ValidationError, match="quantity must be >= 0"):
            Item(name="Chroma Case", quantity=-1)

    def test_value_without_price_is_zero(self):
        assert Item(name="Chroma Case", quantity=5).value == Decimal(0)

    def test_value(self):
        item = Item(name="Chroma Case", quantity=2, current_price=Decimal("1.50"))
        assert item.value == Decimal("3.00")

    @pytest.mark.parametrize(
        "item, expected",
        [
            (Item(name="Chroma Case"), True),
            (Item(name=""), False),
            (Item(name="   "), False),
            (Item(name="Chroma Case", locked=True), False),
        ],
    )
    def test_is_refreshable(self, item, expected):
        assert item.is_refreshable is expected

    def test_frozen(self):
        item = Item(name="Chroma Case")
        with pytest.raises(ValidationError):
            item.quantity = 3


class TestItemList:
    def test_blank_name_rejected(self):
        with pytest.raises(ValidationError, match="must not be blank"):
            ItemList(name=" ")

    def test_dashboard_total_is_zero(self):
        dashboard = ItemList(
            name=DASHBOARD_LIST,
            items=[Item(name="x", quantity=1, current_price=Decimal(5))],
        )
        assert dashboard.is_dashboard
        assert dashboard.total_value() == Decimal(0)


class TestCatalog:
    def test_iter_lists_skips_dashboard_and_descends_groups(self, sample_catalog):
        names = [m.name for m in sample_catalog.iter_lists()]
        assert names == ["Cases", "Katowice 2014", "Capsules"]

    def test_refresh_targets_skip_empty_and_locked(self, sample_catalog):
        targets = sample_catalog.refresh_targets()
        assert targets == [
            RefreshTarget("Cases", 0, "Chroma Case"),
            RefreshTarget("Cases", 1, "Prisma Case"),
            RefreshTarget("Katowice 2014", 1, "Sticker | Titan | Katowice 2014"),
            RefreshTarget("Capsules", 0, "Paris 2023 Legends Sticker Capsule"),
        ]

    def test_find_list(self, sample_catalog):
        assert sample_catalog.find_list("Katowice 2014").items[1].current_price == 9000
        assert sample_catalog.find_list("Nope") is None
        assert sample_catalog.find_list(DASHBOARD_LIST) is None

    def test_duplicate_list_names_rejected(self):
        with pytest.raises(ValidationError, match="duplicate list name"):
            Catalog(
                nodes=[
                    ItemList(name="Cases"),
                    Group(name="Folder", lists=[ItemList(name="Cases")]),
                ]
            )

    def test_duplicate_group_names_rejected(self):
        with pytest.raises(ValidationError, match="duplicate group name"):
            Catalog(nodes=[Group(name="Folder"), Group(name="Folder")])

    def test_replace_list_inside_group(self, sample_catalog):
        updated = ItemList(name="Katowice 2014", items=[])
        result = sample_catalog.replace_list(updated)
        assert result.find_list("Katowice 2014").items == []
        assert sample_catalog.find_list("Katowice 2014").items != []

    def test_total_value(self, sample_catalog):
        # Prisma 10 x 0.50 + iBUYPOWER 50000 + Titan 9000
        assert sample_catalog.total_value() == Decimal("59005.00")
        assert sample_catalog.item_count() == 6

    def test_parses_discriminated_nodes(self):
        catalog = Catalog.model_validate(
            {
                "nodes": [
                    {"kind": "list", "name": "Cases", "items": [{"name": "a"}]},
                    {"kind": "group", "name": "F", "lists": [{"name": "Inner"}]},
                ]
            }
        )
        assert isinstance(catalog.nodes[0], ItemList)
        assert isinstance(catalog.nodes[1], Group)

    def test_group_cannot_contain_group(self):
        with pytest.raises(ValidationError):
            Catalog.model_validate(
                {
                    "nodes": [
                        {
                            "kind": "group",
                            "name": "Outer",
                            "lists": [{"kind": "group", "name": "Inner", "lists": []}],
                        }
                    ]
                }
            )


class TestSettings:
    def test_defaults(self):
        s = Settings()
        assert s.refresh_interval == timedelta(minutes=60)
        assert s.snapshot_time == time(19, 0)

    @pytest.mark.parametrize("value", ["24:00", "7:00", "19-00", "19:60", ""])
    def test_bad_time_of_day_rejected(self, value):
        with pytest.raises(ValidationError, match="HH:MM"):
            Settings(snapshot_time_of_day=value)

    def test_zero_interval_rejected(self):
        with pytest.raises(ValidationError, match="refresh_interval_minutes"):
            Settings(refresh_interval_minutes=0)


class TestSnapshotRecord:
    def test_key(self, sample_snapshot):
        assert sample_snapshot.key == ("dashboard", date(2024, 6, 2))


class TestPortfolioState:
    def test_blob_round_trip(self, sample_catalog, sample_settings, sample_snapshot):
        state = PortfolioState(
            installation_id="abc123",
            catalog=sample_catalog,
            settings=sample_settings,
            last_refresh_at=datetime(2024, 6, 3, 9, 0, tzinfo=timezone.utc),
            snapshots=[sample_snapshot],
        )
        blob = state.to_blob()
        assert blob["installation_id"] == "abc123"
        assert PortfolioState.from_blob(blob) == state
