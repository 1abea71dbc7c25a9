"""System endpoints: health, credential diagnostics, config."""

from __future__ import annotations

from fastapi import APIRouter, Request

from marketgate import __version__
from marketgate.config import get_settings

router = APIRouter(tags=["system"])


@router.get("/health")
async def health(request: Request):
    from marketgate.api.app import get_uptime

    gateway = request.app.state.gateway
    credential = gateway.resolver.resolve()
    limiter = gateway.client.rate_limiter

    return {
        "status": "ok",
        "version": __version__,
        "uptime_seconds": round(get_uptime(), 1),
        "components": {
            "credential": credential.present,
            "cache": gateway.client.cache_stats(),
            "rate_limit": {
                "available": round(limiter.available, 2),
                "max_calls": limiter.max_calls,
                "period_seconds": limiter.period,
            },
        },
    }


@router.get("/env-check")
async def env_check(request: Request):
    """Which token variables are set and which one won; never the token itself."""
    resolver = request.app.state.gateway.resolver
    return {"meta": {"tiingo": resolver.describe()}}


@router.get("/config")
async def config():
    s = get_settings()
    return {
        "tiingo_base_url": s.tiingo_base_url,
        "upstream_timeout_seconds": s.upstream_timeout_seconds,
        "upstream_max_retries": s.upstream_max_retries,
        "rate_limit_max_requests": s.rate_limit_max_requests,
        "rate_limit_window_seconds": s.rate_limit_window_seconds,
        "cache_enabled": s.cache_enabled,
        "log_level": s.log_level,
    }
