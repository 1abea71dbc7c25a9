"""In-process TTL cache for upstream responses."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


def cache_key(endpoint: str, params: Mapping[str, Any] | None = None) -> str:
    """``endpoint?a=1&b=2`` with parameters sorted by name."""
    parts = [f"{k}={v}" for k, v in sorted((params or {}).items())]
    return f"{endpoint}?{'&'.join(parts)}"


class TTLCache:
    """Dict-backed cache; expired entries are dropped when touched."""

    def __init__(self, default_ttl: float = 60.0, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def entry(self, key: str) -> CacheEntry | None:
        """Live entry for ``key``; distinguishes a cached ``None`` from a miss."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() > entry.expires_at:
            del self._entries[key]
            return None
        logger.debug("Cache hit: %s", key)
        return entry

    def get(self, key: str, default: Any = None) -> Any:
        entry = self.entry(key)
        return default if entry is None else entry.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def size(self) -> int:
        now = self._clock()
        for key in [k for k, e in self._entries.items() if now > e.expires_at]:
            del self._entries[key]
        return len(self._entries)

    def __len__(self) -> int:
        return self.size()

    def __contains__(self, key: str) -> bool:
        return self.entry(key) is not None
