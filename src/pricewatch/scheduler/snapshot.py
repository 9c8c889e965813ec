"""Daily snapshot of the portfolio's total value.

The snapshot is taken once per calendar date (in the configured time zone),
at or after the configured local time of day, and never while a refresh
cycle is in flight. The existence check makes every tick idempotent, so a
failed write is simply retried on the next tick.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import date, datetime, timezone
from typing import Protocol

from pricewatch.core.config import SnapshotConfig
from pricewatch.core.exceptions import StorageError
from pricewatch.core.models import DASHBOARD_SCOPE, SnapshotRecord
from pricewatch.storage.repository import PortfolioRepository

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RefreshGuard(Protocol):
    """Anything exposing the refresh-in-progress flag."""

    @property
    def is_running(self) -> bool: ...


class SnapshotCoordinator:
    """Captures the dashboard total once per day."""

    def __init__(
        self,
        repository: PortfolioRepository,
        guard: RefreshGuard,
        config: SnapshotConfig,
        *,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._repository = repository
        self._guard = guard
        self._config = config
        self._tz = config.tzinfo
        self._clock = clock
        self._sleep = sleep

    def today(self) -> date:
        """Current calendar date in the reference time zone."""
        return self._clock().astimezone(self._tz).date()

    async def tick(self) -> SnapshotRecord | None:
        """Capture today's snapshot if it is due and not yet taken.

        Returns:
            The new record, or None if nothing was written.

        Raises:
            StorageError: Reading or writing the store failed.
        """
        local_now = self._clock().astimezone(self._tz)
        today = local_now.date()

        if await self._repository.has_snapshot(DASHBOARD_SCOPE, today):
            return None

        settings = await self._repository.load_settings()
        if local_now.time() < settings.snapshot_time:
            return None

        await self._wait_for_idle()
        if self.today() != today:
            logger.info("Day changed while waiting for the refresh cycle, skipping %s", today)
            return None

        catalog = await self._repository.load_catalog()
        record = SnapshotRecord(
            scope=DASHBOARD_SCOPE,
            date_key=today,
            value=catalog.total_value(),
            captured_at=self._clock(),
        )
        if not await self._repository.add_snapshot(record):
            return None

        logger.info("Captured %s snapshot for %s: %s", record.scope, today, record.value)
        return record

    async def _wait_for_idle(self) -> None:
        if not self._guard.is_running:
            return
        logger.info("Snapshot due, waiting for the refresh cycle to finish")
        while self._guard.is_running:
            await self._sleep(self._config.idle_poll_seconds)

    async def run_forever(self) -> None:
        """Evaluate `tick()` on a fixed period. Never raises."""
        logger.info(
            "Snapshot coordinator started (timezone %s, every %.0fs)",
            self._config.timezone,
            self._config.tick_seconds,
        )
        while True:
            try:
                await self.tick()
            except StorageError as e:
                logger.warning("Snapshot attempt failed, retrying next tick: %s", e)
            except Exception:
                logger.exception("Snapshot tick failed")
            await self._sleep(self._config.tick_seconds)
