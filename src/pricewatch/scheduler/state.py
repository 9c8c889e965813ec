"""Explicit scheduler state, owned by one RefreshScheduler instance."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from pricewatch.core.models import RefreshStatus, SchedulerPhase


@dataclass
class CycleReport:
    """What one refresh cycle did."""

    started_at: datetime
    completed_at: datetime | None = None
    lists_visited: int = 0
    lists_skipped: int = 0
    items_attempted: int = 0
    items_updated: int = 0
    items_failed: int = 0
    items_skipped: int = 0
    throttle_events: int = 0
    store_failures: int = 0
    status: RefreshStatus = RefreshStatus.STABLE

    @property
    def clean(self) -> bool:
        """True when the price source neither throttled nor failed."""
        return self.throttle_events == 0 and self.items_failed == 0


@dataclass
class SchedulerState:
    """Mutable state of the refresh state machine.

    Tests construct one directly to start a scheduler in a known state.
    """

    phase: SchedulerPhase = SchedulerPhase.IDLE
    status: RefreshStatus = RefreshStatus.STABLE
    last_cycle_completed_at: datetime | None = None
    cycles_completed: int = 0
    last_report: CycleReport | None = field(default=None, repr=False)

    @property
    def is_running(self) -> bool:
        return self.phase in (SchedulerPhase.RUNNING, SchedulerPhase.BACKOFF)
