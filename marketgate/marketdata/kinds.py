"""Requested data kinds, their aliases and per-kind request limits."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from marketgate.marketdata.symbols import DEFAULT_INTERVAL_MINUTES, parse_interval_minutes


class Kind(str, Enum):
    INTRADAY_LATEST = "intraday_latest"
    INTRADAY = "intraday"
    EOD = "eod"
    NEWS = "news"
    DOCUMENTS = "documents"
    FILINGS = "filings"
    ACTIONS = "actions"
    FUNDAMENTALS = "fundamentals"
    STATEMENTS = "statements"
    OVERVIEW = "overview"
    VALUATION = "valuation"
    UNSUPPORTED = "unsupported"

    @classmethod
    def parse(cls, raw: str | None) -> Kind:
        """Canonical kind for a query value; blank means ``eod``."""
        key = str(raw or "").strip().lower()
        if not key:
            return cls.EOD
        return KIND_ALIASES.get(key, cls.UNSUPPORTED)

    @property
    def is_series(self) -> bool:
        return self in (Kind.INTRADAY, Kind.EOD)


KIND_ALIASES: dict[str, Kind] = {
    "quote": Kind.INTRADAY_LATEST,
    "quotes": Kind.INTRADAY_LATEST,
    "latest": Kind.INTRADAY_LATEST,
    "intraday_latest": Kind.INTRADAY_LATEST,
    "intraday": Kind.INTRADAY,
    "eod": Kind.EOD,
    "daily": Kind.EOD,
    "news": Kind.NEWS,
    "documents": Kind.DOCUMENTS,
    "filings": Kind.FILINGS,
    "actions": Kind.ACTIONS,
    "fundamentals": Kind.FUNDAMENTALS,
    "statements": Kind.STATEMENTS,
    "overview": Kind.OVERVIEW,
    "meta": Kind.OVERVIEW,
    "info": Kind.OVERVIEW,
    "valuation": Kind.VALUATION,
}


@dataclass(frozen=True)
class KindLimits:
    default: int
    maximum: int


_KIND_LIMITS: dict[Kind, KindLimits] = {
    Kind.INTRADAY: KindLimits(default=150, maximum=300),
    Kind.EOD: KindLimits(default=180, maximum=365),
    Kind.NEWS: KindLimits(default=20, maximum=100),
}
_DEFAULT_LIMITS = KindLimits(default=50, maximum=200)


def limits_for(kind: Kind) -> KindLimits:
    return _KIND_LIMITS.get(kind, _DEFAULT_LIMITS)


def clamp_limit(kind: Kind, raw: Any) -> int:
    """Parse ``raw`` as a positive integer and clamp it to the kind's maximum."""
    limits = limits_for(kind)
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        return limits.default
    if value <= 0:
        return limits.default
    return min(value, limits.maximum)


@dataclass(frozen=True)
class RequestParams:
    """Query parameters after parsing and clamping."""

    limit: int
    interval: str = f"{DEFAULT_INTERVAL_MINUTES}min"
    interval_minutes: int = DEFAULT_INTERVAL_MINUTES

    @classmethod
    def from_query(cls, kind: Kind, query: Mapping[str, Any] | None) -> RequestParams:
        query = query or {}
        interval = str(query.get("interval") or "").strip()
        return cls(
            limit=clamp_limit(kind, query.get("limit")),
            interval=interval or f"{DEFAULT_INTERVAL_MINUTES}min",
            interval_minutes=parse_interval_minutes(interval),
        )
