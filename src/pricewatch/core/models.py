"""Pydantic data models — the system's type contracts."""

from __future__ import annotations

import re
from collections.abc import Iterator
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from enum import StrEnum
from typing import Annotated, Any, Literal, NamedTuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# --- Constants ---

DASHBOARD_LIST = "Dashboard"
"""Reserved list name for the aggregate view. Never holds items."""

DASHBOARD_SCOPE = "dashboard"
"""Snapshot scope of the portfolio-wide total."""

# --- Type Aliases ---

ListName = str
ItemName = str
Scope = str

_TIME_OF_DAY = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")

# --- Enumerations ---


class RefreshStatus(StrEnum):
    """User-visible health of the price refresh."""

    STABLE = "stable"
    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"


class SchedulerPhase(StrEnum):
    """Refresh scheduler state machine phases."""

    IDLE = "idle"
    WAITING = "waiting"
    RUNNING = "running"
    BACKOFF = "backoff"


class StorageBackend(StrEnum):
    """Supported persistent store backends."""

    SQLITE = "sqlite"


# --- Catalog Models ---


class Item(BaseModel):
    """A priced item. `name` is the lookup key against the price source."""

    model_config = ConfigDict(frozen=True)

    name: ItemName = ""
    quantity: int = 0
    current_price: Decimal | None = None
    previous_price: Decimal | None = None
    fluctuation_percent: Decimal | None = None
    locked: bool = False
    color: str = ""

    @field_validator("quantity")
    @classmethod
    def quantity_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"quantity must be >= 0, got {v}")
        return v

    @property
    def is_refreshable(self) -> bool:
        """Locked items and items without a name are never looked up."""
        return bool(self.name.strip()) and not self.locked

    @property
    def value(self) -> Decimal:
        """quantity x current_price, zero when the item has no price yet."""
        if self.current_price is None:
            return Decimal(0)
        return self.current_price * self.quantity


class ItemList(BaseModel):
    """A named, ordered collection of items (a "tab")."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["list"] = "list"
    name: ListName
    items: list[Item] = []
    image: str | None = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("list name must not be blank")
        return v

    @property
    def is_dashboard(self) -> bool:
        return self.name == DASHBOARD_LIST

    def total_value(self) -> Decimal:
        if self.is_dashboard:
            return Decimal(0)
        return sum((item.value for item in self.items), Decimal(0))


class Group(BaseModel):
    """A named collection of lists (a "folder"). Groups never nest."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["group"] = "group"
    name: str
    lists: list[ItemList] = []

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("group name must not be blank")
        return v


CatalogNode = Annotated[ItemList | Group, Field(discriminator="kind")]


class RefreshTarget(NamedTuple):
    """One eligible item, addressed by list name and position."""

    list_name: ListName
    index: int
    name: ItemName


class Catalog(BaseModel):
    """The forest of lists and groups, in display order."""

    model_config = ConfigDict(frozen=True)

    nodes: list[CatalogNode] = []

    @model_validator(mode="after")
    def names_unique(self) -> Catalog:
        """List names are unique catalog-wide; group names among groups."""
        seen_lists: set[str] = set()
        seen_groups: set[str] = set()
        for node in self.nodes:
            if isinstance(node, Group):
                if node.name in seen_groups:
                    raise ValueError(f"duplicate group name: {node.name!r}")
                seen_groups.add(node.name)
                members = node.lists
            else:
                members = [node]
            for item_list in members:
                if item_list.name in seen_lists:
                    raise ValueError(f"duplicate list name: {item_list.name!r}")
                seen_lists.add(item_list.name)
        return self

    def iter_lists(self) -> Iterator[ItemList]:
        """Yield every list depth-first in stored order, skipping Dashboard."""
        for node in self.nodes:
            members = node.lists if isinstance(node, Group) else [node]
            for item_list in members:
                if not item_list.is_dashboard:
                    yield item_list

    def find_list(self, name: ListName) -> ItemList | None:
        """Return the list with this name, or None if it no longer exists."""
        for item_list in self.iter_lists():
            if item_list.name == name:
                return item_list
        return None

    def refresh_targets(self) -> list[RefreshTarget]:
        """Flatten the catalog into the ordered items a refresh cycle visits."""
        return [
            RefreshTarget(item_list.name, index, item.name)
            for item_list in self.iter_lists()
            for index, item in enumerate(item_list.items)
            if item.is_refreshable
        ]

    def replace_list(self, updated: ItemList) -> Catalog:
        """Return a new catalog with the same-named list swapped for `updated`."""
        nodes: list[ItemList | Group] = []
        for node in self.nodes:
            if isinstance(node, Group):
                lists = [
                    updated if member.name == updated.name else member
                    for member in node.lists
                ]
                nodes.append(node.model_copy(update={"lists": lists}))
            elif node.name == updated.name:
                nodes.append(updated)
            else:
                nodes.append(node)
        return self.model_copy(update={"nodes": nodes})

    def total_value(self) -> Decimal:
        return sum((m.total_value() for m in self.iter_lists()), Decimal(0))

    def item_count(self) -> int:
        return sum(len(m.items) for m in self.iter_lists())


# --- Snapshot & Settings Models ---


class SnapshotRecord(BaseModel):
    """Total value of one scope captured once for one calendar date."""

    model_config = ConfigDict(frozen=True)

    scope: Scope = DASHBOARD_SCOPE
    date_key: date
    value: Decimal
    captured_at: datetime

    @property
    def key(self) -> tuple[Scope, date]:
        return (self.scope, self.date_key)


class Settings(BaseModel):
    """User-editable settings, written by the settings UI."""

    model_config = ConfigDict(frozen=True)

    refresh_interval_minutes: int = 60
    snapshot_time_of_day: str = "19:00"

    @field_validator("refresh_interval_minutes")
    @classmethod
    def interval_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("refresh_interval_minutes must be >= 1")
        return v

    @field_validator("snapshot_time_of_day")
    @classmethod
    def time_of_day_format(cls, v: str) -> str:
        if not _TIME_OF_DAY.match(v):
            raise ValueError(f"snapshot_time_of_day must be HH:MM, got {v!r}")
        return v

    @property
    def refresh_interval(self) -> timedelta:
        return timedelta(minutes=self.refresh_interval_minutes)

    @property
    def snapshot_time(self) -> time:
        hours, minutes = self.snapshot_time_of_day.split(":")
        return time(int(hours), int(minutes))


# --- Status & Mirror Models ---


class StatusReport(BaseModel):
    """Volatile scheduler status surfaced to the user-facing layer."""

    model_config = ConfigDict(frozen=True)

    status: RefreshStatus = RefreshStatus.STABLE
    phase: SchedulerPhase = SchedulerPhase.IDLE
    last_cycle_completed_at: datetime | None = None
    items_updated: int = 0
    items_failed: int = 0
    cycles_completed: int = 0
    last_sync_ok: bool | None = None
    last_sync_at: datetime | None = None
    last_sync_error: str | None = None


class PortfolioState(BaseModel):
    """Everything the remote mirror holds for one installation."""

    model_config = ConfigDict(frozen=True)

    installation_id: str
    catalog: Catalog = Catalog()
    settings: Settings = Settings()
    last_refresh_at: datetime | None = None
    snapshots: list[SnapshotRecord] = []
    exported_at: datetime | None = None

    def to_blob(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_blob(cls, blob: dict[str, Any]) -> PortfolioState:
        return cls.model_validate(blob)
