"""Dependency injection for FastAPI routes."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from fastapi import Request
from fastapi.responses import JSONResponse

from pricewatch.core.config import PricewatchConfig
from pricewatch.service import PortfolioService
from pricewatch.storage.repository import PortfolioRepository
from pricewatch.storage.store import KeyValueStore


@dataclass
class AppState:
    """Shared application state, attached to app.state during lifespan."""

    config: PricewatchConfig
    store: KeyValueStore
    repository: PortfolioRepository
    service: PortfolioService | None = None
    service_task: asyncio.Task | None = None

    @property
    def scheduler_running(self) -> bool:
        return self.service_task is not None and not self.service_task.done()


def get_app_state(request: Request) -> AppState:
    """Dependency: retrieve AppState from the request."""
    return request.app.state.app_state


def get_config(request: Request) -> PricewatchConfig:
    """Dependency: retrieve config."""
    return request.app.state.app_state.config


def get_repository(request: Request) -> PortfolioRepository:
    """Dependency: retrieve the portfolio repository."""
    return request.app.state.app_state.repository


EXEMPT_PATHS = {"/api/health"}


async def api_key_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Middleware: validate X-API-Key header when authentication is enabled."""
    if request.url.path in EXEMPT_PATHS:
        return await call_next(request)

    config = request.app.state.app_state.config
    if config.api.api_key:
        api_key = request.headers.get("X-API-Key")
        if api_key != config.api.api_key:
            return JSONResponse(
                status_code=401,
                content={"error": "Unauthorized", "detail": "Invalid or missing API key"},
            )
    return await call_next(request)
