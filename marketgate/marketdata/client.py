"""Tiingo REST client with per-attempt timeout, retry, TTL cache and rate limiting.

One client owns one cache and one rate limiter. Build it once per process
(the API lifespan does this) and share it; independent clients do not share
admission budget or cached responses.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable
from urllib.parse import quote

import httpx

from marketgate import __version__
from marketgate.config import get_settings
from marketgate.marketdata.cache import TTLCache, cache_key
from marketgate.marketdata.errors import (
    CredentialAbsent,
    LiveUnsupported,
    UpstreamClientError,
    UpstreamPayloadEmpty,
    UpstreamTransportError,
)
from marketgate.marketdata.kinds import Kind, RequestParams
from marketgate.utils import RateLimiter, preview_token, retry, utc_now

logger = logging.getLogger(__name__)

MINUTES_PER_TRADING_DAY = 390
MAX_INTRADAY_LOOKBACK_DAYS = 10

# Quotes go stale quickly; reference data barely moves within a session.
KIND_TTL_SECONDS: dict[Kind, float] = {
    Kind.INTRADAY_LATEST: 15,
    Kind.INTRADAY: 30,
    Kind.EOD: 300,
    Kind.NEWS: 180,
    Kind.FUNDAMENTALS: 3600,
    Kind.STATEMENTS: 3600,
    Kind.OVERVIEW: 3600,
    Kind.ACTIONS: 3600,
}
_DEFAULT_TTL_SECONDS = 60.0
_CROSS_ASSET_PRICES_TTL_SECONDS = 300.0
_CROSS_ASSET_QUOTE_TTL_SECONDS = 30.0

_NO_RETRY_STATUSES = frozenset({400, 401, 403, 404})


def intraday_lookback_days(limit: int, interval_minutes: int) -> int:
    """Calendar days of intraday history needed to cover ``limit`` bars."""
    required_minutes = max(1, limit) * max(1, interval_minutes)
    minimum_days = max(1, math.ceil(required_minutes / MINUTES_PER_TRADING_DAY))
    return min(MAX_INTRADAY_LOOKBACK_DAYS, max(minimum_days + 2, 3))


def _error_detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("message") or body.get("error") or "")
    return ""


class TiingoClient:
    """Thin async wrapper around the Tiingo REST API."""

    def __init__(
        self,
        token: str | None = None,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
        cache: TTLCache | None = None,
        rate_limiter: RateLimiter | None = None,
        enable_cache: bool | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        settings = get_settings()
        self.token = (token or "").strip()
        self.base_url = (base_url or settings.tiingo_base_url).rstrip("/")
        self.timeout = settings.upstream_timeout_seconds if timeout is None else timeout
        self.max_retries = settings.upstream_max_retries if max_retries is None else max_retries
        self.retry_delay = settings.upstream_retry_delay_seconds if retry_delay is None else retry_delay
        self.enable_cache = settings.cache_enabled if enable_cache is None else enable_cache

        self._cache = cache if cache is not None else TTLCache(default_ttl=_DEFAULT_TTL_SECONDS)
        self._limiter = rate_limiter or RateLimiter(
            max_calls=settings.rate_limit_max_requests,
            period=settings.rate_limit_window_seconds,
        )
        self._now = now
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout),
            transport=transport,
            headers={"Accept": "application/json", "User-Agent": f"marketgate/{__version__}"},
        )
        self._request_with_retry = retry(
            max_attempts=self.max_retries + 1,
            base_delay=self.retry_delay,
            exceptions=(UpstreamTransportError,),
            sleep=sleep,
        )(self._request_once)

    @property
    def cache(self) -> TTLCache:
        return self._cache

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._limiter

    async def close(self) -> None:
        await self._http.aclose()

    # ── core request ───────────────────────────────────────────────────
    async def request(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
        *,
        ttl: float | None = None,
        token: str | None = None,
        skip_cache: bool = False,
    ) -> Any:
        """GET ``endpoint`` and return decoded JSON, serving from cache when fresh."""
        token = (token or self.token).strip()
        if not token:
            raise CredentialAbsent("Token not configured")

        clean = {k: v for k, v in (params or {}).items() if v is not None and v != ""}
        key = cache_key(endpoint, clean)
        use_cache = self.enable_cache and not skip_cache
        if use_cache:
            cached = self._cache.entry(key)
            if cached is not None:
                return cached.value

        data = await self._request_with_retry(endpoint, clean, token)
        if use_cache:
            self._cache.set(key, data, ttl)
        return data

    async def _request_once(self, endpoint: str, params: dict[str, Any], token: str) -> Any:
        await self._limiter.acquire()
        try:
            resp = await self._http.get(endpoint, params={"token": token, **params})
        except httpx.TimeoutException as exc:
            raise UpstreamTransportError(f"Timed out after {self.timeout:g}s") from exc
        except httpx.HTTPError as exc:
            message = f"{type(exc).__name__}: {exc}".replace(token, preview_token(token))
            raise UpstreamTransportError(message) from exc

        status = resp.status_code
        if status in _NO_RETRY_STATUSES:
            detail = _error_detail(resp)
            raise UpstreamClientError(f"Tiingo API error {status}: {detail}".rstrip(": "), status=status)
        if status >= 400:
            raise UpstreamTransportError(f"Tiingo API error {status}", status=status)

        try:
            return resp.json()
        except ValueError as exc:
            raise UpstreamPayloadEmpty("Malformed JSON payload") from exc

    # ── per-kind endpoints ─────────────────────────────────────────────
    async def fetch_kind(
        self,
        kind: Kind,
        symbol: str,
        params: RequestParams,
        *,
        token: str | None = None,
    ) -> Any:
        """Raw provider payload for ``kind``; raises a MarketDataError on failure."""
        sym = quote(symbol, safe=".-")
        ttl = KIND_TTL_SECONDS.get(kind, _DEFAULT_TTL_SECONDS)
        today = self._now()

        if kind is Kind.INTRADAY_LATEST:
            return await self.request("/iex", {"tickers": symbol}, ttl=ttl, token=token)

        if kind is Kind.INTRADAY:
            days = intraday_lookback_days(params.limit, params.interval_minutes)
            return await self.request(
                f"/iex/{sym}/prices",
                {"startDate": _date_str(today - timedelta(days=days)), "resampleFreq": params.interval},
                ttl=ttl,
                token=token,
            )

        if kind is Kind.EOD:
            return await self.request(
                f"/tiingo/daily/{sym}/prices",
                {"startDate": _date_str(today - timedelta(days=params.limit))},
                ttl=ttl,
                token=token,
            )

        if kind is Kind.NEWS:
            return await self.request(
                "/tiingo/news",
                {"tickers": symbol, "limit": params.limit, "sortBy": "publishedDate"},
                ttl=ttl,
                token=token,
            )

        if kind is Kind.FUNDAMENTALS:
            return await self.request(f"/tiingo/fundamentals/{sym}/daily", ttl=ttl, token=token)

        if kind is Kind.STATEMENTS:
            return await self.request(f"/tiingo/fundamentals/{sym}/statements", ttl=ttl, token=token)

        if kind is Kind.OVERVIEW:
            return await self.request(f"/tiingo/daily/{sym}", ttl=ttl, token=token)

        if kind is Kind.ACTIONS:
            dividends = await self.request(f"/tiingo/corporate-actions/{sym}/distributions", ttl=ttl, token=token)
            splits = await self.request(f"/tiingo/corporate-actions/{sym}/splits", ttl=ttl, token=token)
            return {"dividends": dividends, "splits": splits}

        raise LiveUnsupported(f"{kind.value} has no live endpoint")

    # ── crypto · forex ─────────────────────────────────────────────────
    async def fetch_crypto_prices(
        self,
        ticker: str,
        *,
        start_date: str | None = None,
        end_date: str | None = None,
        resample_freq: str = "1day",
        token: str | None = None,
    ) -> Any:
        return await self.request(
            "/tiingo/crypto/prices",
            {"tickers": ticker, "startDate": start_date, "endDate": end_date, "resampleFreq": resample_freq},
            ttl=_CROSS_ASSET_PRICES_TTL_SECONDS,
            token=token,
        )

    async def fetch_crypto_quote(self, ticker: str, *, token: str | None = None) -> Any:
        return await self.request(
            "/tiingo/crypto/top", {"tickers": ticker}, ttl=_CROSS_ASSET_QUOTE_TTL_SECONDS, token=token
        )

    async def fetch_forex_prices(
        self,
        ticker: str,
        *,
        start_date: str | None = None,
        end_date: str | None = None,
        resample_freq: str = "1day",
        token: str | None = None,
    ) -> Any:
        return await self.request(
            f"/tiingo/fx/{quote(ticker, safe='')}/prices",
            {"startDate": start_date, "endDate": end_date, "resampleFreq": resample_freq},
            ttl=_CROSS_ASSET_PRICES_TTL_SECONDS,
            token=token,
        )

    async def fetch_forex_quote(self, ticker: str, *, token: str | None = None) -> Any:
        return await self.request(
            "/tiingo/fx/top", {"tickers": ticker}, ttl=_CROSS_ASSET_QUOTE_TTL_SECONDS, token=token
        )

    # ── utility ────────────────────────────────────────────────────────
    async def api_usage(self) -> dict[str, Any]:
        """Account usage and limits from ``/api/account``; never cached."""
        try:
            data = await self.request("/api/account", skip_cache=True)
            return {"success": True, "data": data}
        except (CredentialAbsent, UpstreamClientError, UpstreamTransportError, UpstreamPayloadEmpty) as exc:
            return {"success": False, "error": str(exc), "code": exc.code}

    async def test_connection(self) -> dict[str, Any]:
        """Probe ``/api/test`` to check connectivity and token validity."""
        try:
            data = await self.request("/api/test", skip_cache=True)
            return {"success": True, "data": data}
        except (CredentialAbsent, UpstreamClientError, UpstreamTransportError, UpstreamPayloadEmpty) as exc:
            return {"success": False, "error": str(exc), "code": exc.code}

    def clear_cache(self) -> None:
        self._cache.clear()

    def cache_stats(self) -> dict[str, Any]:
        return {
            "size": self._cache.size(),
            "maxSize": None,
            "defaultTtl": self._cache.default_ttl,
            "enabled": self.enable_cache,
        }


def _date_str(ts: datetime) -> str:
    return ts.date().isoformat()
