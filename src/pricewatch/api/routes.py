"""FastAPI route definitions for the pricewatch status API."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query

import pricewatch
from pricewatch.api.deps import AppState, get_app_state, get_config, get_repository
from pricewatch.api.schemas import HealthResponse, SnapshotListResponse
from pricewatch.core.config import PricewatchConfig
from pricewatch.core.models import StatusReport
from pricewatch.portfolio import PortfolioSummary, summarize
from pricewatch.storage.repository import PortfolioRepository

router = APIRouter()


# -- Health --


@router.get("/health", response_model=HealthResponse)
async def health_check(state: AppState = Depends(get_app_state)):
    """Process liveness and store reachability."""
    check = getattr(state.store, "health_check", None)
    healthy = await check() if check is not None else True
    return HealthResponse(
        status="ok" if healthy else "degraded",
        version=pricewatch.__version__,
        storage_backend=str(state.config.storage.backend),
        scheduler_running=state.scheduler_running,
    )


# -- Status --


@router.get("/status", response_model=StatusReport)
async def get_status(
    state: AppState = Depends(get_app_state),
    repository: PortfolioRepository = Depends(get_repository),
):
    """Refresh status. Live when the scheduler runs in this process."""
    if state.service is not None and state.service.scheduler is not None:
        return state.service.scheduler.status_report()
    return await repository.load_status()


# -- Portfolio --


@router.get("/portfolio", response_model=PortfolioSummary)
async def get_portfolio(
    repository: PortfolioRepository = Depends(get_repository),
    config: PricewatchConfig = Depends(get_config),
):
    """Totals per list and the change against the last daily snapshot."""
    catalog = await repository.load_catalog()
    snapshots = await repository.load_snapshots()
    today = datetime.now(config.snapshot.tzinfo).date()
    return summarize(catalog, snapshots, today)


# -- Snapshots --


@router.get("/snapshots", response_model=SnapshotListResponse)
async def list_snapshots(
    scope: str | None = Query(None, description="Filter by scope, e.g. 'dashboard'"),
    repository: PortfolioRepository = Depends(get_repository),
):
    """Stored daily snapshots, oldest first."""
    records = await repository.load_snapshots(scope)
    return SnapshotListResponse(total=len(records), scope=scope, items=records)
