"""Symbol mapping, venue detection and interval parsing."""

from __future__ import annotations

import re

ASX_SYMBOL_MAP: dict[str, str] = {
    "WOW": "WOW.AX",
    "CBA": "CBA.AX",
    "BHP": "BHP.AX",
    "CSL": "CSL.AX",
    "WES": "WES.AX",
    "ANZ": "ANZ.AX",
    "NAB": "NAB.AX",
    "WBC": "WBC.AX",
    "RIO": "RIO.AX",
    "TLS": "TLS.AX",
}

DEFAULT_INTERVAL_MINUTES = 5

_INTERVAL_RE = re.compile(r"(\d+)")


def map_symbol(raw: str | None) -> str:
    """Provider symbol for a user-supplied ticker (``WOW`` → ``WOW.AX``)."""
    symbol = str(raw or "").strip().upper()
    if not symbol:
        return ""
    if ".AX" in symbol:
        return symbol
    return ASX_SYMBOL_MAP.get(symbol, symbol)


def detect_currency(symbol: str) -> str:
    upper = (symbol or "").upper()
    if upper.endswith(".AX"):
        return "AUD"
    if upper.endswith(".L") or ".LON" in upper:
        return "GBP"
    if upper.endswith(".TO") or upper.endswith(".TSE"):
        return "CAD"
    return "USD"


def detect_exchange(symbol: str) -> str:
    upper = (symbol or "").upper()
    if upper.endswith(".AX"):
        return "ASX"
    if upper.endswith(".L") or ".LON" in upper:
        return "LSE"
    if upper.endswith(".TO") or upper.endswith(".TSE"):
        return "TSE"
    return "NASDAQ/NYSE"


def parse_interval_minutes(interval: str | None) -> int:
    """Leading integer of an interval like ``15min``; 5 when absent."""
    match = _INTERVAL_RE.search(str(interval or "").strip().lower())
    if match:
        value = int(match.group(1))
        if value > 0:
            return value
    return DEFAULT_INTERVAL_MINUTES
