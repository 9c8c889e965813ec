"""pricewatch.core — Foundation types, config, and exceptions."""

from pricewatch.core.config import (
    APIConfig,
    PriceSourceConfig,
    PricewatchConfig,
    SchedulerConfig,
    SnapshotConfig,
    StorageConfig,
    SyncConfig,
    load_config,
)
from pricewatch.core.exceptions import (
    ConfigError,
    PriceSourceError,
    PricewatchError,
    RateLimitError,
    SourceUnavailableError,
    StorageError,
    StoreWriteError,
    SyncError,
)
from pricewatch.core.models import (
    DASHBOARD_LIST,
    DASHBOARD_SCOPE,
    Catalog,
    Group,
    Item,
    ItemList,
    ItemName,
    ListName,
    PortfolioState,
    RefreshStatus,
    RefreshTarget,
    SchedulerPhase,
    Scope,
    Settings,
    SnapshotRecord,
    StatusReport,
    StorageBackend,
)

__all__ = [
    # Constants
    "DASHBOARD_LIST",
    "DASHBOARD_SCOPE",
    # Type aliases
    "ItemName",
    "ListName",
    "Scope",
    # Enums
    "RefreshStatus",
    "SchedulerPhase",
    "StorageBackend",
    # Catalog models
    "Item",
    "ItemList",
    "Group",
    "Catalog",
    "RefreshTarget",
    # Snapshot, settings, status
    "SnapshotRecord",
    "Settings",
    "StatusReport",
    "PortfolioState",
    # Config
    "PricewatchConfig",
    "PriceSourceConfig",
    "SchedulerConfig",
    "SnapshotConfig",
    "StorageConfig",
    "SyncConfig",
    "APIConfig",
    "load_config",
    # Exceptions
    "PricewatchError",
    "ConfigError",
    "PriceSourceError",
    "RateLimitError",
    "SourceUnavailableError",
    "StorageError",
    "StoreWriteError",
    "SyncError",
]
