"""FastAPI application factory with lifespan, CORS, and routers."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from marketgate import __version__
from marketgate.marketdata import MarketDataGateway

logger = logging.getLogger(__name__)

_start_time: float = 0.0


def get_uptime() -> float:
    return time.time() - _start_time if _start_time else 0.0


def create_app(gateway: MarketDataGateway | None = None) -> FastAPI:
    """Build and return the fully-configured FastAPI application.

    The gateway (and with it the upstream cache and rate limiter) lives for
    the lifetime of the app. Tests may pass their own.
    """

    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        global _start_time
        _start_time = time.time()

        owned = gateway is None
        app.state.gateway = gateway or MarketDataGateway()
        logger.info("marketgate API v%s starting", __version__)
        yield
        if owned:
            await app.state.gateway.close()
        logger.info("marketgate API shutting down")

    app = FastAPI(
        title="marketgate",
        description="Market data gateway with live, sample and synthetic sources",
        version=__version__,
        lifespan=_lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
        expose_headers=[
            "x-market-source",
            "x-market-fallback",
            "x-market-token-preview",
            "x-market-chosen-key",
        ],
    )

    # Routers
    from marketgate.api.routes import market, system
    app.include_router(market.router, prefix="/api")
    app.include_router(system.router, prefix="/api")

    return app
