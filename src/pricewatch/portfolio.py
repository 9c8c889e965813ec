"""Portfolio totals and the dashboard change against the daily baseline."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from pricewatch.core.models import DASHBOARD_SCOPE, Catalog, Group, SnapshotRecord
from pricewatch.scheduler.refresh import compute_fluctuation


class ListSummary(BaseModel):
    """Value of one list."""

    model_config = ConfigDict(frozen=True)

    name: str
    group: str | None = None
    total: Decimal
    item_count: int
    priced_count: int


class PortfolioSummary(BaseModel):
    """Aggregate view shown on the dashboard."""

    model_config = ConfigDict(frozen=True)

    total: Decimal
    item_count: int
    lists: list[ListSummary]
    baseline: SnapshotRecord | None = None
    change: Decimal | None = None
    change_percent: Decimal | None = None


def pick_baseline(
    snapshots: Iterable[SnapshotRecord], today: date
) -> SnapshotRecord | None:
    """Latest dashboard snapshot dated on or before `today`."""
    candidates = [
        s for s in snapshots if s.scope == DASHBOARD_SCOPE and s.date_key <= today
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda s: s.date_key)


def summarize(
    catalog: Catalog,
    snapshots: Iterable[SnapshotRecord],
    today: date,
) -> PortfolioSummary:
    """Compute totals per list and the change since the baseline snapshot."""
    lists: list[ListSummary] = []
    for node in catalog.nodes:
        group = node.name if isinstance(node, Group) else None
        members = node.lists if isinstance(node, Group) else [node]
        for item_list in members:
            if item_list.is_dashboard:
                continue
            lists.append(
                ListSummary(
                    name=item_list.name,
                    group=group,
                    total=item_list.total_value(),
                    item_count=len(item_list.items),
                    priced_count=sum(
                        1 for i in item_list.items if i.current_price is not None
                    ),
                )
            )

    total = sum((s.total for s in lists), Decimal(0))
    baseline = pick_baseline(snapshots, today)
    change = change_percent = None
    if baseline is not None:
        change = total - baseline.value
        change_percent = compute_fluctuation(total, baseline.value)

    return PortfolioSummary(
        total=total,
        item_count=sum(s.item_count for s in lists),
        lists=lists,
        baseline=baseline,
        change=change,
        change_percent=change_percent,
    )
