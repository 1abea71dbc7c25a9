"""Synthetic quotes and price series for when neither live nor sample data exists.

Output is plausible, not real: callers must flag it as fallback data. Pass a
seeded ``random.Random`` and a fixed clock to get reproducible output.
"""

from __future__ import annotations

import math
import random
from datetime import datetime, timedelta
from typing import Any, Callable

from marketgate.marketdata.normalize import ensure_number
from marketgate.marketdata.symbols import detect_currency, detect_exchange
from marketgate.utils import utc_now

BASE_PRICE_MAP: dict[str, float] = {
    "AAPL": 258.0,
    "MSFT": 415.0,
    "GOOGL": 167.0,
    "TSLA": 240.0,
    "WOW": 26.55,
    "WOW.AX": 26.55,
    "CBA": 130.5,
    "CBA.AX": 130.5,
    "BHP": 42.8,
    "BHP.AX": 42.8,
    "CSL": 280.0,
    "CSL.AX": 280.0,
    "WES": 52.3,
    "WES.AX": 52.3,
    "ANZ": 29.45,
    "ANZ.AX": 29.45,
    "NAB": 37.2,
    "NAB.AX": 37.2,
    "WBC": 26.8,
    "WBC.AX": 26.8,
    "RIO": 118.5,
    "RIO.AX": 118.5,
    "TLS": 4.12,
    "TLS.AX": 4.12,
    "DEFAULT": 100.0,
}

PRICE_FLOOR = 0.5


def _iso(ts: datetime) -> str:
    return ts.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class SyntheticGenerator:
    """Random-walk market data anchored on a static base-price table."""

    def __init__(
        self,
        rng: random.Random | None = None,
        *,
        now: Callable[[], datetime] = utc_now,
        base_prices: dict[str, float] | None = None,
    ) -> None:
        self._rng = rng or random.Random()
        self._now = now
        self._base_prices = base_prices or BASE_PRICE_MAP

    def base_price(self, symbol: str, mapped_symbol: str | None = None) -> float:
        for key in (mapped_symbol, symbol):
            if key and key.upper() in self._base_prices:
                return ensure_number(self._base_prices[key.upper()], self._base_prices["DEFAULT"])
        return self._base_prices["DEFAULT"]

    def _uniform(self, low: float, high: float) -> float:
        return low + self._rng.random() * (high - low)

    def synthetic_quote(self, symbol: str, mapped_symbol: str | None = None) -> dict[str, Any]:
        mapped = (mapped_symbol or symbol or "").upper()
        base = self.base_price(symbol, mapped)
        last = round(base * self._uniform(0.99, 1.01), 2)
        prev_close = round(last * self._uniform(0.995, 1.005), 2)
        open_ = round(last * self._uniform(0.995, 1.005), 2)
        high = round(max(open_, last) * self._uniform(1.0, 1.01), 2)
        low = round(min(open_, last) * self._uniform(0.99, 1.0), 2)
        change = round(last - prev_close, 2)
        change_percent = round(change / prev_close * 100, 2) if prev_close else 0.0
        exchange = detect_exchange(mapped)

        return {
            "symbol": (symbol or "").upper(),
            "last": last,
            "close": last,
            "price": last,
            "prevClose": prev_close,
            "previousClose": prev_close,
            "open": open_,
            "high": high,
            "low": low,
            "volume": self._rng.randint(250_000, 1_749_999),
            "change": change,
            "changePercent": change_percent,
            "exchange": exchange,
            "exchangeCode": exchange,
            "currency": detect_currency(mapped),
            "timestamp": _iso(self._now()),
            "source": "synthetic",
        }

    def synthetic_series(
        self,
        symbol: str,
        mapped_symbol: str | None,
        limit: int,
        interval_minutes: int | None = None,
    ) -> list[dict[str, Any]]:
        """Exactly ``limit`` bars ending now; minute bars when ``interval_minutes`` is set, else daily."""
        base = self.base_price(symbol, mapped_symbol)
        intraday = interval_minutes is not None
        step = timedelta(minutes=interval_minutes) if intraday else timedelta(days=1)
        drift_period, drift_scale, noise = (10, 0.005, 0.02) if intraday else (14, 0.01, 0.03)
        now = self._now()
        price = base
        bars: list[dict[str, Any]] = []

        for i in range(limit - 1, -1, -1):
            ts = now - step * i
            drift = math.sin((limit - i) / drift_period) * drift_scale
            shock = (self._rng.random() - 0.5) * noise
            price = max(PRICE_FLOOR, price * (1 + drift + shock))
            if intraday:
                open_ = price * self._uniform(0.995, 1.005)
                wick = 0.005
            else:
                open_ = price * self._uniform(0.98, 1.01)
                wick = 0.015
            close = price
            high = max(open_, close) * (1 + self._rng.random() * wick)
            low = min(open_, close) * (1 - self._rng.random() * wick)
            bar: dict[str, Any] = {
                "open": round(open_, 2),
                "high": round(high, 2),
                "low": round(low, 2),
                "close": round(close, 2),
            }
            if intraday:
                bar = {"timestamp": _iso(ts), **bar, "volume": self._rng.randint(20_000, 139_999)}
            else:
                bar = {
                    "date": ts.date().isoformat(),
                    **bar,
                    "volume": self._rng.randint(300_000, 1_799_999),
                    "adjClose": round(close, 2),
                }
            bars.append(bar)

        return bars
