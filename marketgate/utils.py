"""Shared utilities: logging, retry decorator, rate limiter, time helpers, token redaction."""

from __future__ import annotations

import asyncio
import functools
import json
import logging
import sys
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, TypeVar

T = TypeVar("T")


# ── Structured JSON logging ───────────────────────────────────────────

class _JSONFormatter(logging.Formatter):
    """Emit each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def setup_logging(level: str = "INFO") -> None:
    """Configure root logger with structured JSON output to stderr."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JSONFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


# ── Retry decorator with exponential backoff ──────────────────────────

def retry(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    exceptions: tuple[type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], Awaitable[Any]] | None = None,
) -> Callable:
    """Async retry decorator with exponential backoff.

    Only ``exceptions`` are retried; anything else propagates on the first
    attempt. After the final attempt the last exception is re-raised as is.

    Usage::

        @retry(max_attempts=5, base_delay=0.5)
        async def flaky_call():
            ...
    """

    def decorator(fn: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            pause = sleep or asyncio.sleep
            attempts = max(1, max_attempts)
            for attempt in range(1, attempts + 1):
                try:
                    return await fn(*args, **kwargs)
                except exceptions as exc:
                    if attempt >= attempts:
                        raise
                    wait = base_delay * (2 ** (attempt - 1))
                    logging.getLogger(fn.__module__).warning(
                        "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                        fn.__qualname__,
                        attempt,
                        attempts,
                        exc,
                        wait,
                    )
                    await pause(wait)
            raise RuntimeError(f"{fn.__qualname__} made no attempts")

        return wrapper

    return decorator


# ── Rate limiter ──────────────────────────────────────────────────────

class RateLimiter:
    """Token-bucket rate limiter for async code.

    The bucket starts full with ``max_calls`` tokens and refills continuously
    at ``max_calls`` per ``period`` seconds. A caller that finds the bucket
    empty sleeps for ``period / max_calls`` and polls again; there is no
    waiter queue, so whichever caller polls first after a refill wins.

    Usage::

        limiter = RateLimiter(max_calls=30, period=60)
        async with limiter:
            await do_api_call()
    """

    def __init__(
        self,
        max_calls: int,
        period: float = 60.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ) -> None:
        self._max_calls = max(1, int(max_calls))
        self._period = float(period)
        self._clock = clock
        self._sleep = sleep or asyncio.sleep
        self._tokens = float(self._max_calls)
        self._last_refill = clock()

    @property
    def max_calls(self) -> int:
        return self._max_calls

    @property
    def period(self) -> float:
        return self._period

    @property
    def available(self) -> float:
        self._refill()
        return self._tokens

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        if self._period > 0:
            self._tokens = min(
                float(self._max_calls),
                self._tokens + (elapsed / self._period) * self._max_calls,
            )
        else:
            self._tokens = float(self._max_calls)
        self._last_refill = now

    def try_acquire(self) -> bool:
        """Take a token if one is available right now."""
        self._refill()
        if self._tokens >= 1.0:
            self._tokens -= 1.0
            return True
        return False

    async def acquire(self) -> None:
        while not self.try_acquire():
            await self._sleep(self._period / self._max_calls)

    async def __aenter__(self) -> RateLimiter:
        await self.acquire()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        return None


# ── Timestamp helpers ─────────────────────────────────────────────────

def utc_now() -> datetime:
    """Return the current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def iso_now() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return utc_now().isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ── Secret redaction ──────────────────────────────────────────────────

def preview_token(token: str | None) -> str:
    """Redacted token: first and last four characters only."""
    trimmed = str(token or "").strip()
    if not trimmed:
        return ""
    if len(trimmed) <= 8:
        return f"{trimmed[:4]}***"
    return f"{trimmed[:4]}...{trimmed[-4:]}"
