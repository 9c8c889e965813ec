"""Persistent store and the typed repository on top of it."""

from pricewatch.storage.repository import PortfolioRepository
from pricewatch.storage.store import KeyValueStore, SqliteKeyValueStore, create_store

__all__ = [
    "KeyValueStore",
    "PortfolioRepository",
    "SqliteKeyValueStore",
    "create_store",
]
