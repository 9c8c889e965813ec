"""Persistent store: Protocol definition, SQLite implementation, factory."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, ClassVar, Protocol, runtime_checkable

import aiosqlite

from pricewatch.core.config import StorageConfig
from pricewatch.core.exceptions import StorageError, StoreWriteError
from pricewatch.core.models import StorageBackend

logger = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    """Namespaced key -> JSON-serialisable value store.

    No transactions: every `set` replaces the whole value for a key.
    """

    async def get(self, key: str) -> Any | None: ...
    async def set(self, key: str, value: Any) -> None: ...


class SqliteKeyValueStore:
    """SQLite implementation of the key-value store protocol.

    Uses aiosqlite for async access, WAL mode so readers never block the
    scheduler's writes, and a version-tracked migration system.
    """

    _MIGRATIONS: ClassVar[dict[int, tuple[str, list[str]]]] = {
        1: (
            "Initial schema",
            [
                """CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT DEFAULT (datetime('now'))
                )""",
                """CREATE TABLE IF NOT EXISTS kv (
                    namespace TEXT NOT NULL,
                    key TEXT NOT NULL,
                    value TEXT NOT NULL,
                    updated_at TEXT DEFAULT (datetime('now')),
                    PRIMARY KEY(namespace, key)
                )""",
            ],
        ),
    }

    def __init__(self, config: StorageConfig) -> None:
        self._path = config.sqlite_path
        self._namespace = config.namespace
        self._db: aiosqlite.Connection | None = None

    @property
    def namespace(self) -> str:
        return self._namespace

    async def initialize(self) -> None:
        """Open connection, enable WAL, run migrations."""
        try:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(self._path)
            await self._db.execute("PRAGMA journal_mode=WAL")
            current = await self._get_schema_version()
            await self._apply_migrations(current)
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to initialize SQLite store: {e}",
                context={"operation": "initialize", "path": self._path},
            ) from e

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def health_check(self) -> bool:
        if self._db is None:
            return False
        try:
            async with self._db.execute("SELECT 1") as cursor:
                row = await cursor.fetchone()
            return row is not None
        except Exception:
            return False

    # --- Schema Migration ---

    async def _get_schema_version(self) -> int:
        try:
            async with self._db.execute(
                "SELECT MAX(version) FROM schema_version"
            ) as cursor:
                row = await cursor.fetchone()
            return row[0] if row[0] is not None else 0
        except aiosqlite.OperationalError:
            return 0

    async def _apply_migrations(self, current_version: int) -> None:
        for version in sorted(self._MIGRATIONS.keys()):
            if version <= current_version:
                continue
            desc, statements = self._MIGRATIONS[version]
            logger.info("Applying migration %d: %s", version, desc)
            for sql in statements:
                await self._db.execute(sql)
            await self._db.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )

    # --- Key-Value Operations ---

    def _connection(self, operation: str, key: str) -> aiosqlite.Connection:
        if self._db is None:
            raise StorageError(
                "Store is not initialized",
                context={"operation": operation, "key": key},
            )
        return self._db

    async def get(self, key: str) -> Any | None:
        db = self._connection("get", key)
        try:
            async with db.execute(
                "SELECT value FROM kv WHERE namespace = ? AND key = ?",
                (self._namespace, key),
            ) as cursor:
                row = await cursor.fetchone()
            if row is None:
                return None
            return json.loads(row[0])
        except Exception as e:
            raise StorageError(
                f"Failed to read {key!r}: {e}",
                context={"operation": "get", "key": key},
            ) from e

    async def set(self, key: str, value: Any) -> None:
        db = self._connection("set", key)
        try:
            await db.execute(
                """INSERT OR REPLACE INTO kv (namespace, key, value, updated_at)
                   VALUES (?, ?, ?, datetime('now'))""",
                (self._namespace, key, json.dumps(value)),
            )
            await db.commit()
        except Exception as e:
            raise StoreWriteError(
                f"Failed to write {key!r}: {e}",
                context={"operation": "set", "key": key},
            ) from e


async def create_store(config: StorageConfig) -> SqliteKeyValueStore:
    """Create and initialize a store backend based on configuration."""
    if config.backend == StorageBackend.SQLITE:
        store = SqliteKeyValueStore(config)
        await store.initialize()
        return store
    raise StorageError(
        f"Unsupported storage backend: {config.backend}",
        context={"operation": "create_store", "backend": str(config.backend)},
    )
