"""Shape provider and sample payloads into the gateway's per-kind schema."""

from __future__ import annotations

import math
from typing import Any

from marketgate.marketdata.errors import UpstreamPayloadEmpty
from marketgate.marketdata.symbols import detect_currency, detect_exchange
from marketgate.utils import iso_now


def ensure_number(value: Any, fallback: float = 0.0) -> float:
    try:
        num = float(value)
    except (TypeError, ValueError):
        return fallback
    return num if math.isfinite(num) else fallback


def _first_present(raw: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def build_quote(raw: dict[str, Any], mapped_symbol: str, original_symbol: str) -> dict[str, Any]:
    """Quote from a provider quote, a sample quote or the last price bar.

    ``high``/``low`` are widened when needed so that
    ``high >= max(open, last)`` and ``low <= min(open, last)`` always hold.
    """
    last = ensure_number(_first_present(raw, "last", "tngoLast", "price", "close"), 0.0)
    prev_close = ensure_number(_first_present(raw, "prevClose", "previousClose"), last)
    open_ = ensure_number(raw.get("open"), last)
    high = ensure_number(raw.get("high"), max(open_, last))
    low = ensure_number(raw.get("low"), min(open_, last))
    high = max(high, open_, last)
    low = min(low, open_, last)
    change = last - prev_close
    change_percent = (change / prev_close) * 100 if prev_close else 0.0
    timestamp = (
        _first_present(raw, "timestamp", "lastSaleTimestamp", "date")
        or iso_now()
    )
    exchange = detect_exchange(mapped_symbol)

    return {
        "symbol": (original_symbol or "").upper(),
        "last": last,
        "close": last,
        "price": last,
        "prevClose": prev_close,
        "previousClose": prev_close,
        "open": open_,
        "high": high,
        "low": low,
        "volume": ensure_number(raw.get("volume"), 0.0),
        "change": change,
        "changePercent": change_percent,
        "exchange": exchange,
        "exchangeCode": exchange,
        "currency": detect_currency(mapped_symbol),
        "timestamp": timestamp,
    }


def live_quote(payload: Any, mapped_symbol: str, original_symbol: str) -> dict[str, Any]:
    quote = payload[0] if isinstance(payload, list) and payload else payload
    if not isinstance(quote, dict):
        raise UpstreamPayloadEmpty("No quote returned")
    price = ensure_number(_first_present(quote, "last", "tngoLast"), 0.0)
    if price <= 0:
        raise UpstreamPayloadEmpty("No quote returned")
    return build_quote(quote, mapped_symbol, original_symbol)


def intraday_bar(item: dict[str, Any]) -> dict[str, Any]:
    return {
        "timestamp": item.get("date") or item.get("timestamp"),
        "open": ensure_number(item.get("open")),
        "high": ensure_number(item.get("high")),
        "low": ensure_number(item.get("low")),
        "close": ensure_number(item.get("close")),
        "volume": ensure_number(item.get("volume")),
    }


def daily_bar(item: dict[str, Any]) -> dict[str, Any]:
    close = ensure_number(item.get("close"))
    return {
        "date": item.get("date"),
        "open": ensure_number(item.get("open")),
        "high": ensure_number(item.get("high")),
        "low": ensure_number(item.get("low")),
        "close": close,
        "volume": ensure_number(item.get("volume")),
        "adjClose": ensure_number(item.get("adjClose"), close),
    }


def live_series(payload: Any, limit: int, *, daily: bool) -> list[dict[str, Any]]:
    """Most recent ``limit`` bars, oldest first."""
    label = "EOD" if daily else "intraday"
    if not isinstance(payload, list) or not payload:
        raise UpstreamPayloadEmpty(f"No {label} data returned.")
    shape = daily_bar if daily else intraday_bar
    bars = [shape(item) for item in payload if isinstance(item, dict)]
    if not bars:
        raise UpstreamPayloadEmpty(f"Malformed {label} data returned.")
    return slice_limit(bars, limit, from_end=True)


def slice_limit(items: Any, limit: int | None, *, from_end: bool = False) -> list[Any]:
    if not isinstance(items, list):
        return []
    if not limit or limit <= 0:
        return list(items)
    return items[-limit:] if from_end else items[:limit]


def live_list(payload: Any, limit: int) -> list[Any]:
    if not isinstance(payload, list):
        raise UpstreamPayloadEmpty("Expected a list payload")
    return slice_limit(payload, limit)


def live_actions(payload: Any, limit: int) -> dict[str, list[Any]]:
    payload = payload if isinstance(payload, dict) else {}
    return {
        "dividends": slice_limit(payload.get("dividends"), limit),
        "splits": slice_limit(payload.get("splits"), limit),
    }


def live_object(payload: Any) -> Any:
    if payload is None or payload == {} or payload == []:
        raise UpstreamPayloadEmpty("Empty payload")
    return payload


def is_empty(data: Any) -> bool:
    if data is None:
        return True
    if isinstance(data, list):
        return len(data) == 0
    if isinstance(data, dict) and set(data) == {"dividends", "splits"}:
        return not data["dividends"] and not data["splits"]
    return False
