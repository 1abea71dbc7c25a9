from __future__ import annotations

from datetime import datetime, timezone

import httpx
import pytest

from marketgate.marketdata.cache import TTLCache
from marketgate.marketdata.client import TiingoClient, intraday_lookback_days
from marketgate.marketdata.errors import (
    CredentialAbsent,
    LiveUnsupported,
    UpstreamClientError,
    UpstreamTransportError,
)
from marketgate.marketdata.kinds import Kind, RequestParams
from marketgate.utils import RateLimiter

TOKEN = "t" * 20 + "9999"
FIXED_NOW = datetime(2024, 6, 14, 15, 30, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _client(handler, **kwargs) -> tuple[TiingoClient, list[float]]:  # noqa: ANN001, ANN003
    sleeps: list[float] = []

    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)

    kwargs.setdefault("token", TOKEN)
    client = TiingoClient(
        base_url="https://tiingo.test",
        max_retries=2,
        retry_delay=0.25,
        rate_limiter=RateLimiter(max_calls=1000, period=60),
        transport=httpx.MockTransport(handler),
        sleep=_sleep,
        now=lambda: FIXED_NOW,
        **kwargs,
    )
    return client, sleeps


@pytest.mark.asyncio
async def test_identical_request_is_served_from_cache() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[{"ticker": "AAPL", "last": 101.5}])

    client, _ = _client(handler)
    first = await client.request("/iex", {"tickers": "AAPL"}, ttl=15)
    second = await client.request("/iex", {"tickers": "AAPL"}, ttl=15)
    await client.close()

    assert first == second
    assert len(seen) == 1
    assert seen[0].url.params["token"] == TOKEN
    assert seen[0].url.params["tickers"] == "AAPL"


@pytest.mark.asyncio
async def test_expired_entry_is_refetched() -> None:
    calls = {"n": 0}
    clock = FakeClock()

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(200, json={"n": calls["n"]})

    client, _ = _client(handler, cache=TTLCache(clock=clock))
    assert await client.request("/x", ttl=10) == {"n": 1}
    clock.now = 5
    assert await client.request("/x", ttl=10) == {"n": 1}
    clock.now = 11
    assert await client.request("/x", ttl=10) == {"n": 2}
    await client.close()


@pytest.mark.asyncio
async def test_none_and_empty_params_are_dropped() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[])

    client, _ = _client(handler)
    await client.request("/tiingo/news", {"tickers": "AAPL", "limit": None, "sortBy": ""})
    await client.close()

    assert set(seen[0].url.params.keys()) == {"token", "tickers"}


@pytest.mark.asyncio
async def test_not_found_is_not_retried() -> None:
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(404, json={"detail": "Not found."})

    client, sleeps = _client(handler)
    with pytest.raises(UpstreamClientError) as excinfo:
        await client.request("/tiingo/daily/NOPE/prices")
    await client.close()

    assert calls["n"] == 1
    assert sleeps == []
    assert excinfo.value.status == 404
    assert excinfo.value.code == "CLIENT_ERROR"
    assert "404" in str(excinfo.value)


@pytest.mark.asyncio
async def test_unauthorized_maps_to_auth_fail() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"detail": "Invalid token."})

    client, _ = _client(handler)
    with pytest.raises(UpstreamClientError) as excinfo:
        await client.request("/iex", {"tickers": "AAPL"})
    await client.close()
    assert excinfo.value.code == "AUTH_FAIL"


@pytest.mark.asyncio
async def test_server_error_is_retried_with_backoff() -> None:
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        if calls["n"] == 1:
            return httpx.Response(503, text="unavailable")
        return httpx.Response(200, json={"ok": True})

    client, sleeps = _client(handler)
    assert await client.request("/api/test") == {"ok": True}
    await client.close()

    assert calls["n"] == 2
    assert sleeps == [0.25]


@pytest.mark.asyncio
async def test_timeouts_exhaust_retries() -> None:
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        raise httpx.ReadTimeout("timed out", request=request)

    client, sleeps = _client(handler)
    with pytest.raises(UpstreamTransportError):
        await client.request("/iex", {"tickers": "AAPL"})
    await client.close()

    assert calls["n"] == 3
    assert sleeps == [0.25, 0.5]


@pytest.mark.asyncio
async def test_missing_token_fails_before_network() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    client, _ = _client(handler, token="")
    with pytest.raises(CredentialAbsent):
        await client.request("/iex")
    result = await client.test_connection()
    await client.close()

    assert result["success"] is False
    assert result["code"] == "CREDENTIAL_ABSENT"


@pytest.mark.asyncio
async def test_fetch_eod_builds_dated_request() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[{"date": "2024-06-13", "close": 10.0}])

    client, _ = _client(handler)
    payload = await client.fetch_kind(Kind.EOD, "WOW.AX", RequestParams(limit=5))
    await client.close()

    assert payload == [{"date": "2024-06-13", "close": 10.0}]
    assert seen[0].url.path == "/tiingo/daily/WOW.AX/prices"
    assert seen[0].url.params["startDate"] == "2024-06-09"


@pytest.mark.asyncio
async def test_fetch_actions_combines_both_endpoints() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/distributions"):
            return httpx.Response(200, json=[{"exDate": "2024-05-10"}])
        return httpx.Response(200, json=[])

    client, _ = _client(handler)
    payload = await client.fetch_kind(Kind.ACTIONS, "AAPL", RequestParams(limit=10))
    await client.close()
    assert payload == {"dividends": [{"exDate": "2024-05-10"}], "splits": []}


@pytest.mark.asyncio
async def test_documents_have_no_live_endpoint() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    client, _ = _client(handler)
    with pytest.raises(LiveUnsupported):
        await client.fetch_kind(Kind.DOCUMENTS, "AAPL", RequestParams(limit=10))
    await client.close()


def test_intraday_lookback_window() -> None:
    assert intraday_lookback_days(10, 5) == 3
    assert intraday_lookback_days(150, 5) == 4
    assert intraday_lookback_days(300, 60) == 10


@pytest.mark.asyncio
async def test_cached_null_payload_is_a_hit() -> None:
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(200, content=b"null", headers={"content-type": "application/json"})

    client, _ = _client(handler)
    assert await client.request("/tiingo/daily/AAPL") is None
    assert await client.request("/tiingo/daily/AAPL") is None
    await client.close()
    assert calls["n"] == 1


@pytest.mark.asyncio
async def test_crypto_and_forex_endpoints() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[{"ticker": "x"}])

    client, _ = _client(handler)
    await client.fetch_crypto_prices("btcusd", start_date="2024-06-01")
    await client.fetch_crypto_quote("btcusd")
    await client.fetch_forex_prices("audusd", resample_freq="1hour")
    await client.fetch_forex_quote("audusd")
    await client.close()

    crypto_prices, crypto_top, fx_prices, fx_top = seen
    assert crypto_prices.url.path == "/tiingo/crypto/prices"
    assert dict(crypto_prices.url.params) == {
        "token": TOKEN,
        "tickers": "btcusd",
        "startDate": "2024-06-01",
        "resampleFreq": "1day",
    }
    assert crypto_top.url.path == "/tiingo/crypto/top"
    assert crypto_top.url.params["tickers"] == "btcusd"
    assert fx_prices.url.path == "/tiingo/fx/audusd/prices"
    assert fx_prices.url.params["resampleFreq"] == "1hour"
    assert "endDate" not in fx_prices.url.params
    assert fx_top.url.path == "/tiingo/fx/top"
    assert fx_top.url.params["tickers"] == "audusd"


@pytest.mark.asyncio
async def test_api_usage_is_never_cached() -> None:
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        assert request.url.path == "/api/account"
        return httpx.Response(200, json={"requestsThisHour": calls["n"]})

    client, _ = _client(handler)
    first = await client.api_usage()
    second = await client.api_usage()
    await client.close()

    assert first == {"success": True, "data": {"requestsThisHour": 1}}
    assert second["data"] == {"requestsThisHour": 2}


@pytest.mark.asyncio
async def test_api_usage_reports_auth_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, json={"detail": "Forbidden"})

    client, _ = _client(handler)
    result = await client.api_usage()
    await client.close()
    assert result["success"] is False
    assert result["code"] == "AUTH_FAIL"
