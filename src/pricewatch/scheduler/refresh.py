"""Refresh scheduler: one paced, sequential pass over every item per interval.

State machine::

    Idle -> Waiting -> Running <-> Backoff -> Idle

Only one cycle runs at a time. ``run_cycle()`` while a cycle is in flight
returns None immediately. The guard is checked and set without an
intervening await, so it holds under cooperative scheduling.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from decimal import Decimal
from itertools import groupby
from operator import attrgetter

from pricewatch.core.config import SchedulerConfig
from pricewatch.core.exceptions import PriceSourceError, RateLimitError, StorageError
from pricewatch.core.models import (
    Item,
    ListName,
    RefreshStatus,
    RefreshTarget,
    SchedulerPhase,
    Settings,
    StatusReport,
)
from pricewatch.prices.provider import PriceSource
from pricewatch.scheduler.state import CycleReport, SchedulerState
from pricewatch.storage.repository import PortfolioRepository
from pricewatch.sync import SyncPublisher

logger = logging.getLogger(__name__)

FLUCTUATION_CLAMP = Decimal(300)

Sleep = Callable[[float], Awaitable[None]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def compute_fluctuation(new_price: Decimal, base: Decimal) -> Decimal:
    """Percent change from `base` to `new_price`, clamped to +/-300.

    A non-positive base yields 0.
    """
    if base <= 0:
        return Decimal(0)
    percent = (new_price - base) / base * 100
    return max(-FLUCTUATION_CLAMP, min(FLUCTUATION_CLAMP, percent))


def apply_price(item: Item, new_price: Decimal) -> Item:
    """Record a freshly fetched price on an item.

    The baseline is the previous price, else the current price, else the
    new price itself. An item that never had a price keeps a null
    fluctuation until its second successful fetch.
    """
    if item.previous_price is not None:
        base = item.previous_price
    elif item.current_price is not None:
        base = item.current_price
    else:
        base = new_price

    had_price = item.previous_price is not None or item.current_price is not None
    fluctuation = compute_fluctuation(new_price, base) if had_price else None

    return item.model_copy(
        update={
            "previous_price": base,
            "current_price": new_price,
            "fluctuation_percent": fluctuation,
        }
    )


class RefreshScheduler:
    """Keeps item prices fresh within the configured refresh interval.

    Parameters
    ----------
    repository : PortfolioRepository
        Source of the catalog and settings; target of incremental writes.
    source : PriceSource
        Resolves item names to prices.
    config : SchedulerConfig
        Request spacing, throttle cooldown, retry bound, poll granularity.
    publisher : SyncPublisher | None
        Fired in the background after each completed cycle.
    state : SchedulerState | None
        Starting state. A fresh idle state if None.
    clock, sleep
        Injected time sources, so tests never wait.
    """

    def __init__(
        self,
        repository: PortfolioRepository,
        source: PriceSource,
        config: SchedulerConfig,
        publisher: SyncPublisher | None = None,
        *,
        state: SchedulerState | None = None,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._repository = repository
        self._source = source
        self._config = config
        self._publisher = publisher
        self._state = state or SchedulerState()
        self._clock = clock
        self._sleep = sleep
        self._settings = Settings()
        self._background: set[asyncio.Task] = set()

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state.is_running

    async def resume(self) -> None:
        """Pick up the persisted completion time of the last cycle."""
        try:
            last = await self._repository.load_last_refresh()
        except StorageError as e:
            logger.warning("Could not read last refresh time, refreshing now: %s", e)
            return
        if last is not None:
            self._state.last_cycle_completed_at = last
            logger.info("Last refresh cycle completed at %s", last.isoformat())

    # --- Main loop ---

    async def run_forever(self) -> None:
        """Alternate waiting for the interval and running cycles. Never raises."""
        logger.info("Refresh scheduler started")
        while True:
            try:
                await self.wait_until_due()
                report = await self.run_cycle()
            except Exception:
                logger.exception("Refresh loop iteration failed")
                report = None
            if report is None:
                # aborted or refused
                await self._sleep(self._config.poll_seconds)

    async def time_until_due(self) -> float:
        """Seconds until the next cycle is due (<= 0 means now)."""
        last = self._state.last_cycle_completed_at
        if last is None:
            return 0.0
        try:
            self._settings = await self._repository.load_settings()
        except StorageError as e:
            logger.warning("Could not read settings, keeping previous interval: %s", e)
        elapsed = (self._clock() - last).total_seconds()
        return self._settings.refresh_interval.total_seconds() - elapsed

    async def wait_until_due(self) -> None:
        """Sleep in coarse steps until the refresh interval has elapsed.

        Re-checking every poll interval tolerates suspend/resume of the
        process and picks up interval changes made in the settings.
        """
        while True:
            remaining = await self.time_until_due()
            if remaining <= 0:
                return
            self._state.phase = SchedulerPhase.WAITING
            await self._sleep(min(remaining, self._config.poll_seconds))

    # --- Cycle ---

    async def run_cycle(self) -> CycleReport | None:
        """Run one full refresh pass now.

        Returns:
            The cycle report, or None if a cycle was already running or the
            catalog could not be read at cycle start.
        """
        if self._state.is_running:
            logger.debug("Refresh cycle already running, ignoring start request")
            return None
        self._state.phase = SchedulerPhase.RUNNING
        try:
            return await self._run_cycle()
        finally:
            self._state.phase = SchedulerPhase.IDLE

    async def _run_cycle(self) -> CycleReport | None:
        report = CycleReport(started_at=self._clock())
        try:
            catalog = await self._repository.load_catalog()
        except StorageError as e:
            logger.error("Refresh cycle aborted, catalog unreadable: %s", e)
            return None

        await self._save_status()
        targets = catalog.refresh_targets()
        logger.info("Refresh cycle started: %d items", len(targets))

        for list_name, group in groupby(targets, key=attrgetter("list_name")):
            await self._refresh_list(list_name, list(group), report)

        return await self._finish_cycle(report)

    async def _refresh_list(
        self,
        list_name: ListName,
        targets: list[RefreshTarget],
        report: CycleReport,
    ) -> None:
        # Re-read at every list boundary so edits made mid-cycle are seen.
        try:
            catalog = await self._repository.load_catalog()
        except StorageError as e:
            logger.warning("Skipping list %r, catalog unreadable: %s", list_name, e)
            report.lists_skipped += 1
            return

        current = catalog.find_list(list_name)
        if current is None:
            logger.info("List %r was removed mid-cycle, skipping", list_name)
            report.lists_skipped += 1
            return
        report.lists_visited += 1

        updates: dict[int, Item] = {}
        for target in targets:
            item = current.items[target.index] if target.index < len(current.items) else None
            if item is None or item.name != target.name or not item.is_refreshable:
                report.items_skipped += 1
                continue

            price = await self._fetch_price(item.name, report)
            if price is not None:
                updates[target.index] = apply_price(item, price)
                report.items_updated += 1

            await self._sleep(self._config.request_spacing_seconds)

        if not updates:
            return
        try:
            await self._repository.save_list_prices(list_name, updates)
        except StorageError as e:
            report.store_failures += 1
            logger.error("Could not persist prices for list %r: %s", list_name, e)

    async def _fetch_price(self, name: str, report: CycleReport) -> Decimal | None:
        """Look up one item, cooling down and retrying while throttled."""
        report.items_attempted += 1
        retries = 0
        while True:
            try:
                quote = await self._source.lookup(name)
            except RateLimitError as e:
                report.throttle_events += 1
                self._state.status = RefreshStatus.RATE_LIMITED
                if retries >= self._config.max_throttle_retries:
                    logger.warning(
                        "Giving up on %r for this cycle after %d throttled retries",
                        name,
                        retries,
                    )
                    report.items_failed += 1
                    return None
                retries += 1
                cooldown = min(
                    max(
                        self._config.throttle_cooldown_seconds,
                        e.context.get("retry_after") or 0,
                    ),
                    self._config.max_cooldown_seconds,
                )
                logger.warning(
                    "Throttled on %r, cooling down %.0fs (retry %d/%d)",
                    name,
                    cooldown,
                    retries,
                    self._config.max_throttle_retries,
                )
                self._state.phase = SchedulerPhase.BACKOFF
                try:
                    await self._sleep(cooldown)
                finally:
                    self._state.phase = SchedulerPhase.RUNNING
                continue
            except PriceSourceError as e:
                self._state.status = RefreshStatus.UNAVAILABLE
                report.items_failed += 1
                logger.warning("Price source unavailable for %r: %s", name, e)
                return None

            if quote.best_price is None:
                self._state.status = RefreshStatus.UNAVAILABLE
                report.items_failed += 1
                logger.warning("No price listed for %r", name)
                return None
            return quote.best_price

    async def _finish_cycle(self, report: CycleReport) -> CycleReport:
        now = self._clock()
        report.completed_at = now
        if report.clean:
            self._state.status = RefreshStatus.STABLE
        report.status = self._state.status

        self._state.last_cycle_completed_at = now
        self._state.cycles_completed += 1
        self._state.last_report = report

        try:
            await self._repository.save_last_refresh(now)
        except StorageError as e:
            logger.error("Could not persist refresh timestamp: %s", e)
        await self._save_status(SchedulerPhase.IDLE)

        logger.info(
            "Refresh cycle finished: %d/%d updated, %d failed, %d throttled, status=%s",
            report.items_updated,
            report.items_attempted,
            report.items_failed,
            report.throttle_events,
            report.status,
        )
        self._publish_in_background()
        return report

    # --- Status & sync ---

    def status_report(self, phase: SchedulerPhase | None = None) -> StatusReport:
        """Snapshot of the state for the user-facing layer."""
        last = self._state.last_report
        return StatusReport(
            status=self._state.status,
            phase=phase or self._state.phase,
            last_cycle_completed_at=self._state.last_cycle_completed_at,
            items_updated=last.items_updated if last else 0,
            items_failed=last.items_failed if last else 0,
            cycles_completed=self._state.cycles_completed,
            last_sync_ok=self._publisher.last_ok if self._publisher else None,
            last_sync_at=self._publisher.last_attempt_at if self._publisher else None,
            last_sync_error=self._publisher.last_error if self._publisher else None,
        )

    async def _save_status(self, phase: SchedulerPhase | None = None) -> None:
        try:
            await self._repository.save_status(self.status_report(phase))
        except StorageError as e:
            logger.warning("Could not persist scheduler status: %s", e)

    def _publish_in_background(self) -> None:
        if self._publisher is None:
            return
        task = asyncio.create_task(self._publish_and_record())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _publish_and_record(self) -> None:
        try:
            await self._publisher.publish_current(self._repository)
        except Exception:
            logger.exception("Sync publish crashed")
        await self._save_status()

    async def drain(self) -> None:
        """Wait for in-flight background publishes to finish."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
