"""Typed access to the portfolio state held in a KeyValueStore.

Each public method reads or writes one store key wholesale. There are no
field-level writes: the catalog is always written back as a whole, which
keeps the stored value consistent even if the process dies mid-cycle.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from datetime import date, datetime, timezone

from pydantic import ValidationError

from pricewatch.core.exceptions import StorageError
from pricewatch.core.models import (
    Catalog,
    Item,
    ListName,
    PortfolioState,
    Scope,
    Settings,
    SnapshotRecord,
    StatusReport,
)
from pricewatch.storage.store import KeyValueStore

logger = logging.getLogger(__name__)

CATALOG_KEY = "catalog"
SETTINGS_KEY = "settings"
LAST_REFRESH_KEY = "last_refresh_at"
SNAPSHOTS_KEY = "snapshots"
INSTALLATION_ID_KEY = "installation_id"
STATUS_KEY = "status"

_PRICE_FIELDS = ("current_price", "previous_price", "fluctuation_percent")


class PortfolioRepository:
    """Reads and writes catalog, settings, snapshots and status.

    Parameters
    ----------
    store : KeyValueStore
        Any object with async ``get(key)`` / ``set(key, value)``.
    defaults : Settings | None
        Settings returned when none have been stored yet.
    """

    def __init__(self, store: KeyValueStore, defaults: Settings | None = None) -> None:
        self._store = store
        self._defaults = defaults or Settings()

    @property
    def store(self) -> KeyValueStore:
        return self._store

    # --- Catalog ---

    async def load_catalog(self) -> Catalog:
        """Read the catalog fresh from the store.

        Raises:
            StorageError: The store could not be read or holds an invalid catalog.
        """
        raw = await self._store.get(CATALOG_KEY)
        if raw is None:
            return Catalog()
        try:
            return Catalog.model_validate(raw)
        except ValidationError as e:
            raise StorageError(
                f"Stored catalog is invalid: {e.error_count()} error(s)",
                context={"operation": "get", "key": CATALOG_KEY},
            ) from e

    async def save_catalog(self, catalog: Catalog) -> None:
        await self._store.set(CATALOG_KEY, catalog.model_dump(mode="json"))

    async def save_list_prices(
        self, list_name: ListName, updates: Mapping[int, Item]
    ) -> int:
        """Merge refreshed price fields of one list into the stored catalog.

        The catalog is re-read first so user edits made while the list was
        being refreshed survive. An update is applied only if the stored item
        at that index still has the same name and is not locked; only the
        price fields are copied.

        Returns:
            Number of items updated. Zero if the list no longer exists.
        """
        catalog = await self.load_catalog()
        current = catalog.find_list(list_name)
        if current is None:
            logger.info("List %r disappeared during refresh, dropping updates", list_name)
            return 0

        items = list(current.items)
        applied = 0
        for index, refreshed in updates.items():
            if index >= len(items):
                continue
            existing = items[index]
            if existing.name != refreshed.name or existing.locked:
                continue
            items[index] = existing.model_copy(
                update={f: getattr(refreshed, f) for f in _PRICE_FIELDS}
            )
            applied += 1

        if applied:
            updated = current.model_copy(update={"items": items})
            await self.save_catalog(catalog.replace_list(updated))
        return applied

    # --- Settings ---

    async def load_settings(self) -> Settings:
        raw = await self._store.get(SETTINGS_KEY)
        if raw is None:
            return self._defaults
        try:
            return Settings.model_validate(raw)
        except ValidationError as e:
            logger.warning("Stored settings are invalid, using defaults: %s", e)
            return self._defaults

    async def save_settings(self, settings: Settings) -> None:
        await self._store.set(SETTINGS_KEY, settings.model_dump(mode="json"))

    # --- Refresh timestamp ---

    async def load_last_refresh(self) -> datetime | None:
        raw = await self._store.get(LAST_REFRESH_KEY)
        if raw is None:
            return None
        try:
            return datetime.fromisoformat(raw)
        except (TypeError, ValueError) as e:
            raise StorageError(
                f"Stored refresh timestamp is invalid: {raw!r}",
                context={"operation": "get", "key": LAST_REFRESH_KEY},
            ) from e

    async def save_last_refresh(self, completed_at: datetime) -> None:
        await self._store.set(LAST_REFRESH_KEY, completed_at.isoformat())

    # --- Snapshots ---

    async def load_snapshots(self, scope: Scope | None = None) -> list[SnapshotRecord]:
        """Return stored snapshots sorted by date, optionally for one scope."""
        raw = await self._store.get(SNAPSHOTS_KEY) or []
        records = [SnapshotRecord.model_validate(r) for r in raw]
        if scope is not None:
            records = [r for r in records if r.scope == scope]
        return sorted(records, key=lambda r: (r.date_key, r.scope))

    async def has_snapshot(self, scope: Scope, date_key: date) -> bool:
        records = await self.load_snapshots(scope)
        return any(r.date_key == date_key for r in records)

    async def add_snapshot(self, record: SnapshotRecord) -> bool:
        """Store a snapshot unless one already exists for its (scope, date).

        Returns:
            True if written, False if a record for that key already existed.
            Existing records are never overwritten.
        """
        records = await self.load_snapshots()
        if any(r.key == record.key for r in records):
            return False
        records.append(record)
        await self._store.set(
            SNAPSHOTS_KEY, [r.model_dump(mode="json") for r in records]
        )
        return True

    # --- Installation identity ---

    async def installation_id(self) -> str:
        """Return the stable installation id, generating it on first use."""
        existing = await self._store.get(INSTALLATION_ID_KEY)
        if existing:
            return existing
        new_id = uuid.uuid4().hex
        await self._store.set(INSTALLATION_ID_KEY, new_id)
        logger.info("Generated installation id %s", new_id)
        return new_id

    # --- Status ---

    async def load_status(self) -> StatusReport:
        raw = await self._store.get(STATUS_KEY)
        if raw is None:
            return StatusReport()
        return StatusReport.model_validate(raw)

    async def save_status(self, report: StatusReport) -> None:
        await self._store.set(STATUS_KEY, report.model_dump(mode="json"))

    # --- Whole-state export / restore ---

    async def load_state(self) -> PortfolioState:
        """Assemble everything the remote mirror holds."""
        return PortfolioState(
            installation_id=await self.installation_id(),
            catalog=await self.load_catalog(),
            settings=await self.load_settings(),
            last_refresh_at=await self.load_last_refresh(),
            snapshots=await self.load_snapshots(),
            exported_at=datetime.now(timezone.utc),
        )

    async def restore_state(self, state: PortfolioState) -> None:
        """Overwrite local state with a previously exported one."""
        await self._store.set(INSTALLATION_ID_KEY, state.installation_id)
        await self.save_catalog(state.catalog)
        await self.save_settings(state.settings)
        if state.last_refresh_at is not None:
            await self.save_last_refresh(state.last_refresh_at)
        await self._store.set(
            SNAPSHOTS_KEY, [r.model_dump(mode="json") for r in state.snapshots]
        )
        logger.info(
            "Restored state for installation %s (%d lists, %d snapshots)",
            state.installation_id,
            sum(1 for _ in state.catalog.iter_lists()),
            len(state.snapshots),
        )
