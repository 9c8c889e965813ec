"""API-specific response schemas (Pydantic v2)."""

from __future__ import annotations

from pydantic import BaseModel

from pricewatch.core.models import SnapshotRecord


class ErrorResponse(BaseModel):
    """Standard error envelope."""

    error: str
    detail: str | None = None


class HealthResponse(BaseModel):
    """Liveness plus a few cheap facts about the process."""

    status: str
    version: str
    storage_backend: str
    scheduler_running: bool


class SnapshotListResponse(BaseModel):
    """Stored snapshots, oldest first."""

    total: int
    scope: str | None = None
    items: list[SnapshotRecord]
