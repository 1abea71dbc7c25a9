from __future__ import annotations

import pytest

from marketgate.marketdata.cache import TTLCache, cache_key
from marketgate.utils import RateLimiter, retry


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def test_cache_key_sorts_params() -> None:
    assert cache_key("/iex", {"tickers": "AAPL", "b": 2, "a": 1}) == "/iex?a=1&b=2&tickers=AAPL"
    assert cache_key("/api/test") == "/api/test?"


def test_cache_entry_expires_after_ttl() -> None:
    clock = FakeClock()
    cache = TTLCache(default_ttl=60, clock=clock)
    cache.set("k", {"v": 1}, ttl=10)
    assert cache.get("k") == {"v": 1}
    assert "k" in cache

    clock.now += 10.5
    assert cache.get("k") is None
    assert len(cache) == 0


def test_cache_default_ttl_and_clear() -> None:
    clock = FakeClock()
    cache = TTLCache(default_ttl=30, clock=clock)
    cache.set("a", 1)
    cache.set("b", 2, ttl=100)
    clock.now += 31
    assert cache.size() == 1
    assert cache.delete("b") is True
    assert cache.delete("b") is False
    cache.set("c", 3)
    cache.clear()
    assert cache.size() == 0


@pytest.mark.asyncio
async def test_rate_limiter_admits_burst_then_waits() -> None:
    clock = FakeClock()
    limiter = RateLimiter(max_calls=3, period=6.0, clock=clock, sleep=clock.sleep)

    for _ in range(3):
        await limiter.acquire()
    assert clock.sleeps == []
    assert limiter.try_acquire() is False

    await limiter.acquire()
    assert clock.sleeps == [2.0]


@pytest.mark.asyncio
async def test_rate_limiter_refills_over_time() -> None:
    clock = FakeClock()
    limiter = RateLimiter(max_calls=2, period=10.0, clock=clock, sleep=clock.sleep)
    async with limiter:
        pass
    async with limiter:
        pass
    assert limiter.available < 1.0

    clock.now += 100
    assert limiter.available == 2.0


@pytest.mark.asyncio
async def test_retry_backs_off_exponentially_and_reraises() -> None:
    delays: list[float] = []
    calls = {"n": 0}

    async def _sleep(seconds: float) -> None:
        delays.append(seconds)

    @retry(max_attempts=3, base_delay=0.5, exceptions=(ValueError,), sleep=_sleep)
    async def flaky() -> None:
        calls["n"] += 1
        raise ValueError("boom")

    with pytest.raises(ValueError):
        await flaky()
    assert calls["n"] == 3
    assert delays == [0.5, 1.0]


@pytest.mark.asyncio
async def test_retry_does_not_retry_unlisted_exceptions() -> None:
    calls = {"n": 0}

    async def _sleep(seconds: float) -> None:
        raise AssertionError("should not sleep")

    @retry(max_attempts=5, exceptions=(ValueError,), sleep=_sleep)
    async def fails() -> None:
        calls["n"] += 1
        raise KeyError("nope")

    with pytest.raises(KeyError):
        await fails()
    assert calls["n"] == 1


def test_cached_none_is_distinguished_from_miss() -> None:
    cache = TTLCache(clock=FakeClock())
    cache.set("null", None)
    entry = cache.entry("null")
    assert entry is not None
    assert entry.value is None
    assert "null" in cache
    assert cache.entry("missing") is None
    assert cache.get("missing", "default") == "default"
