"""FastAPI application factory."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pricewatch.api.deps import AppState, api_key_middleware
from pricewatch.api.routes import router
from pricewatch.core.config import PricewatchConfig, load_config
from pricewatch.core.exceptions import ConfigError, PricewatchError, StorageError
from pricewatch.prices.steam import SteamMarketPriceSource
from pricewatch.service import PortfolioService
from pricewatch.storage.repository import PortfolioRepository
from pricewatch.storage.store import create_store
from pricewatch.sync import HttpSyncRemote

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown lifecycle."""
    config = app.state._pending_config or load_config()
    store = await create_store(config.storage)
    repository = PortfolioRepository(store, defaults=config.defaults)
    state = AppState(config=config, store=store, repository=repository)

    if config.api.run_scheduler:
        remote = HttpSyncRemote(config.sync) if config.sync.enabled else None
        state.service = PortfolioService(
            config, store, SteamMarketPriceSource(config.price_source), remote
        )
        state.service_task = asyncio.create_task(state.service.run())
        logger.info("Background scheduler started with the API")

    app.state.app_state = state

    yield

    if state.service is not None:
        state.service_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await state.service_task
        await state.service.close()
    else:
        await store.close()


def create_app(config: PricewatchConfig | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    import pricewatch

    if config is None:
        config = load_config()

    app = FastAPI(
        title="pricewatch API",
        description="Market price refresh status and portfolio totals",
        version=pricewatch.__version__,
        lifespan=lifespan,
    )

    # Stash config so lifespan can retrieve it
    app.state._pending_config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if config.api.api_key:
        app.middleware("http")(api_key_middleware)

    app.include_router(router, prefix="/api")

    @app.exception_handler(PricewatchError)
    async def pricewatch_exception_handler(request: Request, exc: PricewatchError):
        status_map = {
            ConfigError: 400,
            StorageError: 500,
        }
        status = status_map.get(type(exc), 500)
        return JSONResponse(
            status_code=status,
            content={"error": type(exc).__name__, "detail": str(exc)},
        )

    return app
