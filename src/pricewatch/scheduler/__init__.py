"""The two periodic jobs: price refresh and daily snapshot."""

from pricewatch.scheduler.refresh import (
    FLUCTUATION_CLAMP,
    RefreshScheduler,
    apply_price,
    compute_fluctuation,
)
from pricewatch.scheduler.snapshot import RefreshGuard, SnapshotCoordinator
from pricewatch.scheduler.state import CycleReport, SchedulerState

__all__ = [
    "FLUCTUATION_CLAMP",
    "CycleReport",
    "RefreshGuard",
    "RefreshScheduler",
    "SchedulerState",
    "SnapshotCoordinator",
    "apply_price",
    "compute_fluctuation",
]
