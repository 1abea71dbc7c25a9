"""Market-data error taxonomy.

Every error carries a short ``code`` that ends up in ``meta.fallbackChain``.
Only :class:`InvalidRequest` ever reaches an HTTP caller; the rest are
absorbed by the gateway and turned into fallback metadata.
"""

from __future__ import annotations


class MarketDataError(RuntimeError):
    code = "PROVIDER_ERROR"

    def __init__(self, message: str = "", *, status: int | None = None) -> None:
        super().__init__(message or self.code)
        self.status = status


class InvalidRequest(MarketDataError):
    code = "INVALID_REQUEST"


class CredentialAbsent(MarketDataError):
    code = "CREDENTIAL_ABSENT"


class UpstreamTransportError(MarketDataError):
    """Timeout, connection failure, 5xx or throttling: worth retrying."""

    code = "PROVIDER_ERROR"


class UpstreamClientError(MarketDataError):
    """4xx response that a retry cannot fix."""

    code = "CLIENT_ERROR"

    def __init__(self, message: str = "", *, status: int | None = None) -> None:
        super().__init__(message, status=status)
        if status in (401, 403):
            self.code = "AUTH_FAIL"


class UpstreamPayloadEmpty(MarketDataError):
    code = "NO_DATA"


class LiveUnsupported(MarketDataError):
    code = "LIVE_UNSUPPORTED"


class UnsupportedKind(MarketDataError):
    code = "UNSUPPORTED_KIND"
