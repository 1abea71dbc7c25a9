"""Bundled per-symbol sample datasets used when live data is unavailable."""

from __future__ import annotations

import asyncio
import functools
import json
import logging
import re
from pathlib import Path
from typing import Any

from marketgate.config import get_settings
from marketgate.marketdata.kinds import Kind
from marketgate.marketdata.normalize import slice_limit
from marketgate.marketdata.valuation import compute_valuation

logger = logging.getLogger(__name__)

FALLBACK_SYMBOL = "GENERIC"

_SAFE_NAME_RE = re.compile(r"^[A-Z0-9][A-Z0-9.\-^=]{0,19}$")


def latest_quote(record: dict[str, Any] | None) -> dict[str, Any] | None:
    """Explicit ``quote``, else the last intraday bar, else the last EOD bar."""
    if not isinstance(record, dict):
        return None
    if isinstance(record.get("quote"), dict):
        return record["quote"]
    for section in ("intraday", "eod"):
        rows = record.get(section)
        if isinstance(rows, list) and rows:
            return rows[-1]
    return None


class MockRecordLoader:
    """Load ``<SYMBOL>.json`` files from a directory, caching successful loads."""

    def __init__(self, directory: Path | str | None = None) -> None:
        self.directory = Path(directory) if directory is not None else Path(get_settings().mock_data_dir)
        self._cache: dict[str, dict[str, Any]] = {}

    def _path_for(self, symbol: str) -> Path | None:
        name = (symbol or "").strip().upper()
        if not _SAFE_NAME_RE.match(name) or ".." in name:
            return None
        return self.directory / f"{name}.json"

    def _read(self, path: Path) -> dict[str, Any] | None:
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Could not read sample data %s: %s", path, exc)
            return None
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Malformed sample data %s: %s", path, exc)
            return None
        return payload if isinstance(payload, dict) else None

    async def load(self, symbol: str) -> dict[str, Any] | None:
        """Record for exactly ``symbol``; ``None`` when there is no usable file."""
        key = (symbol or "").strip().upper()
        if key in self._cache:
            return self._cache[key]
        path = self._path_for(key)
        if path is None:
            return None
        record = await asyncio.to_thread(self._read, path)
        if record is not None:
            self._cache[key] = record
        return record

    def clear_cache(self) -> None:
        self._cache.clear()

    @property
    def cached_symbols(self) -> list[str]:
        return sorted(self._cache)


def extract(record: dict[str, Any], kind: Kind, limit: int | None, symbol: str) -> tuple[Any, str]:
    """Per-kind data from a sample record, plus the record section it came from."""
    if kind is Kind.INTRADAY_LATEST:
        quote = latest_quote(record)
        section = "quote" if isinstance(record.get("quote"), dict) else "intraday"
        return ([quote] if quote else []), section

    if kind is Kind.INTRADAY:
        return slice_limit(record.get("intraday"), limit, from_end=True), "intraday"

    if kind is Kind.EOD:
        return slice_limit(record.get("eod"), limit, from_end=True), "eod"

    if kind is Kind.NEWS:
        return slice_limit(record.get("news"), limit), "news"

    if kind is Kind.DOCUMENTS:
        if isinstance(record.get("documents"), list) and record["documents"]:
            return slice_limit(record["documents"], limit), "documents"
        return slice_limit(record.get("filings"), limit), "filings"

    if kind is Kind.FILINGS:
        data = slice_limit(record.get("filings"), limit)
        if data:
            return data, "filings"
        return extract(record, Kind.DOCUMENTS, limit, symbol)

    if kind is Kind.ACTIONS:
        actions = record.get("actions") if isinstance(record.get("actions"), dict) else {}
        return {
            "dividends": slice_limit(actions.get("dividends"), limit),
            "splits": slice_limit(actions.get("splits"), limit),
        }, "actions"

    if kind in (Kind.FUNDAMENTALS, Kind.STATEMENTS, Kind.OVERVIEW):
        return record.get(kind.value) or None, kind.value

    if kind is Kind.VALUATION:
        name = symbol or record.get("symbol") or ""
        snapshot = compute_valuation(
            name,
            latest_quote(record),
            record.get("fundamentals"),
            narrative=f"{name or 'Sample'} valuation generated from bundled data.",
        )
        return snapshot, "valuation"

    return None, ""


@functools.lru_cache(maxsize=1)
def get_mock_loader() -> MockRecordLoader:
    """Process-wide loader over the configured sample directory."""
    return MockRecordLoader()
