"""Valuation snapshot derived from a quote and fundamentals.

Live, sample and synthetic paths all go through :func:`compute_valuation`,
so the same inputs always yield the same numbers.
"""

from __future__ import annotations

from typing import Any

from marketgate.marketdata.normalize import ensure_number
from marketgate.utils import iso_now

FAIR_VALUE_PREMIUM = 1.05
ENTRY_DISCOUNT = 0.95
BULL_MULTIPLIER = 1.15
BEAR_MULTIPLIER = 0.85


def _metrics(fundamentals: Any) -> dict[str, Any]:
    """Flatten the metric sources a fundamentals payload may carry.

    Sample records nest per-share figures under ``metrics`` or ``latest``;
    the provider's daily fundamentals endpoint returns a list of rows.
    """
    if isinstance(fundamentals, list):
        fundamentals = fundamentals[-1] if fundamentals else {}
    if not isinstance(fundamentals, dict):
        return {}
    merged: dict[str, Any] = dict(fundamentals)
    for section in ("latest", "metrics"):
        nested = fundamentals.get(section)
        if isinstance(nested, dict):
            merged.update(nested)
    return merged


def _per_share(metrics: dict[str, Any], *keys: str) -> float:
    for key in keys:
        value = ensure_number(metrics.get(key), 0.0)
        if value:
            return value
    return 0.0


def _ratio(price: float | None, divisor: float) -> float | None:
    if not price or not divisor:
        return None
    return round(price / divisor, 2)


def quote_price(quote: dict[str, Any] | None) -> float | None:
    if not isinstance(quote, dict):
        return None
    for key in ("price", "last", "close"):
        value = ensure_number(quote.get(key), 0.0)
        if value:
            return value
    return None


def compute_valuation(
    symbol: str,
    quote: dict[str, Any] | None,
    fundamentals: Any,
    *,
    narrative: str | None = None,
) -> dict[str, Any]:
    price = quote_price(quote)
    metrics = _metrics(fundamentals)

    eps = _per_share(metrics, "earningsPerShare", "eps")
    revenue_per_share = _per_share(metrics, "revenuePerShare")
    book_per_share = _per_share(metrics, "bookValuePerShare")
    fcf_per_share = _per_share(metrics, "freeCashFlowPerShare")

    fair_value = round(price * FAIR_VALUE_PREMIUM, 2) if price else None
    suggested_entry = round(price * ENTRY_DISCOUNT, 2) if price else None
    upside = round(fair_value / price - 1, 4) if fair_value and price else None

    return {
        "symbol": symbol,
        "price": price,
        "quote": quote or {},
        "fundamentals": fundamentals,
        "valuation": {
            "price": price,
            "fairValue": fair_value,
            "suggestedEntry": suggested_entry,
            "upside": upside,
            "pe": _ratio(price, eps),
            "priceToSales": _ratio(price, revenue_per_share),
            "priceToBook": _ratio(price, book_per_share),
            "priceToFcf": _ratio(price, fcf_per_share),
            "dividendYield": metrics.get("dividendYield"),
            "scenarios": {
                "bull": round(fair_value * BULL_MULTIPLIER, 2) if fair_value else None,
                "base": fair_value,
                "bear": round(fair_value * BEAR_MULTIPLIER, 2) if fair_value else None,
            },
        },
        "narrative": narrative or f"{symbol or 'Sample'} valuation generated from {'quote and fundamentals' if metrics else 'quote data'}.",
        "generatedAt": iso_now(),
    }
