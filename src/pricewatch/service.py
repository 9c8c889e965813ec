"""Process-level wiring: one store, one scheduler, one snapshot coordinator."""

from __future__ import annotations

import asyncio
import logging

from pricewatch.core.config import PricewatchConfig
from pricewatch.core.exceptions import PricewatchError
from pricewatch.prices.provider import PriceSource
from pricewatch.prices.steam import SteamMarketPriceSource
from pricewatch.scheduler.refresh import RefreshScheduler
from pricewatch.scheduler.snapshot import SnapshotCoordinator
from pricewatch.storage.repository import PortfolioRepository
from pricewatch.storage.store import KeyValueStore, create_store
from pricewatch.sync import HttpSyncRemote, SyncPublisher, SyncRemote

logger = logging.getLogger(__name__)


class PortfolioService:
    """Owns the refresh scheduler and the snapshot coordinator.

    Exactly one scheduler exists per service. Calling `run()` a second time
    while the first is active raises PricewatchError.
    """

    def __init__(
        self,
        config: PricewatchConfig,
        store: KeyValueStore,
        source: PriceSource,
        remote: SyncRemote | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.source = source
        self.remote = remote
        self.repository = PortfolioRepository(store, defaults=config.defaults)
        self.scheduler: RefreshScheduler | None = None
        self.coordinator: SnapshotCoordinator | None = None
        self.publisher: SyncPublisher | None = None
        self._started = False

    @classmethod
    async def create(cls, config: PricewatchConfig) -> PortfolioService:
        """Build the production service: SQLite store, Steam market, HTTP sync."""
        store = await create_store(config.storage)
        source = SteamMarketPriceSource(config.price_source)
        remote = HttpSyncRemote(config.sync) if config.sync.enabled else None
        return cls(config, store, source, remote)

    async def build(self) -> RefreshScheduler:
        """Create the scheduler and coordinator without starting their loops."""
        if self.scheduler is not None:
            return self.scheduler
        if self.remote is not None:
            installation_id = await self.repository.installation_id()
            self.publisher = SyncPublisher(self.remote, installation_id)
        self.scheduler = RefreshScheduler(
            self.repository,
            self.source,
            self.config.scheduler,
            self.publisher,
        )
        self.coordinator = SnapshotCoordinator(
            self.repository,
            self.scheduler,
            self.config.snapshot,
        )
        await self.scheduler.resume()
        return self.scheduler

    async def run(self) -> None:
        """Run both loops until cancelled."""
        if self._started:
            raise PricewatchError("Service is already running")
        self._started = True
        try:
            await self.build()
            logger.info(
                "Service started (sync %s)",
                "enabled" if self.publisher else "disabled",
            )
            await asyncio.gather(
                self.scheduler.run_forever(),
                self.coordinator.run_forever(),
            )
        finally:
            self._started = False
            if self.scheduler is not None:
                await self.scheduler.drain()

    async def close(self) -> None:
        for resource in (self.source, self.remote, self.store):
            closer = getattr(resource, "close", None)
            if closer is not None:
                await closer()
