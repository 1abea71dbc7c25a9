"""Canonical market data gateway: live provider, then bundled samples, then synthetic data.

Every request resolves a credential, canonicalizes the kind, and walks the
source chain until one yields data::

    live (Tiingo) ──fail──▶ sample file ──miss──▶ synthetic

Whatever happens, :meth:`MarketDataGateway.handle` returns a complete
envelope. The only error it lets escape is :class:`InvalidRequest`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from marketgate.credentials import Credential, CredentialResolver
from marketgate.marketdata import normalize
from marketgate.marketdata.client import TiingoClient
from marketgate.marketdata.errors import (
    CredentialAbsent,
    InvalidRequest,
    MarketDataError,
    UnsupportedKind,
)
from marketgate.marketdata.kinds import Kind, RequestParams
from marketgate.marketdata.mock import FALLBACK_SYMBOL, MockRecordLoader, extract, get_mock_loader
from marketgate.marketdata.symbols import detect_currency, detect_exchange, map_symbol
from marketgate.marketdata.synthetic import SyntheticGenerator
from marketgate.marketdata.valuation import compute_valuation
from marketgate.utils import iso_now

logger = logging.getLogger(__name__)

SAMPLE_WARNING = "Live Tiingo data unavailable. Displaying bundled sample data."
SYNTHETIC_WARNING = "Live data unavailable. Showing synthetic fallback data."
MISSING_TOKEN_SAMPLE_WARNING = "Tiingo token missing. Showing bundled sample data."
MISSING_TOKEN_SYNTHETIC_WARNING = "Tiingo token missing. Showing synthetic sample data."
UNSUPPORTED_WARNING = "Requested data type is not implemented."


@dataclass
class SourcedData:
    """Data for one kind plus where it came from."""

    data: Any
    source: str
    reason: str = "ok"
    fallback: str = ""
    warning: str = ""
    message: str = ""
    fallback_chain: list[str] = field(default_factory=list)
    extra_meta: dict[str, Any] = field(default_factory=dict)


class MarketDataGateway:
    """Single entrypoint for market data requests."""

    def __init__(
        self,
        client: TiingoClient | None = None,
        resolver: CredentialResolver | None = None,
        mock_loader: MockRecordLoader | None = None,
        generator: SyntheticGenerator | None = None,
    ) -> None:
        self._client = client or TiingoClient()
        self._resolver = resolver or CredentialResolver()
        self._mock_loader = mock_loader or get_mock_loader()
        self._generator = generator or SyntheticGenerator()

    @property
    def client(self) -> TiingoClient:
        return self._client

    @property
    def resolver(self) -> CredentialResolver:
        return self._resolver

    async def close(self) -> None:
        await self._client.close()

    async def handle(
        self,
        kind: str | None,
        symbol: str | None,
        params: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Build the response envelope for one request."""
        raw_symbol = str(symbol or "").strip()
        if not raw_symbol:
            raise InvalidRequest("Missing symbol parameter")

        credential = self._resolver.resolve()
        resolved = Kind.parse(kind)
        query = RequestParams.from_query(resolved, params)
        original = raw_symbol.upper()
        mapped = map_symbol(raw_symbol)

        if resolved is Kind.UNSUPPORTED:
            sourced = self._unsupported(str(kind or "").strip(), original)
        else:
            sourced = await self._source(resolved, original, mapped, query, credential)

        meta: dict[str, Any] = {
            "source": sourced.source,
            "reason": sourced.reason,
            "fallback": sourced.fallback,
            "kind": resolved.value,
            "requestedKind": str(kind or "").strip().lower() or resolved.value,
            "timestamp": iso_now(),
            "currency": detect_currency(mapped),
            "exchange": detect_exchange(mapped),
            "chosenKey": credential.chosen_key,
            "tokenPreview": credential.preview,
            "fallbackChain": sourced.fallback_chain,
        }
        if sourced.message:
            meta["message"] = sourced.message
        meta.update(sourced.extra_meta)

        envelope: dict[str, Any] = {
            "symbol": original,
            "originalSymbol": original,
            "mappedSymbol": mapped,
            "data": sourced.data,
            "meta": meta,
        }
        if sourced.warning:
            envelope["warning"] = sourced.warning
        return envelope

    # ── source chain ───────────────────────────────────────────────────
    async def _source(
        self,
        kind: Kind,
        original: str,
        mapped: str,
        query: RequestParams,
        credential: Credential,
    ) -> SourcedData:
        chain: list[str] = []

        try:
            if not credential.present:
                raise CredentialAbsent("Token not configured")
            data = await self._live(kind, original, mapped, query, credential.token, chain)
            return SourcedData(data=data, source="live", fallback_chain=chain)
        except MarketDataError as exc:
            failure = exc
            chain.append(f"live:{exc.code}")
            if isinstance(exc, CredentialAbsent):
                logger.info("%s(%s): no Tiingo token, skipping live fetch", original, kind.value)
            else:
                logger.warning("%s(%s): live fetch failed (%s): %s", original, kind.value, exc.code, exc)

        token_missing = isinstance(failure, CredentialAbsent)

        sample = await self._from_sample(kind, original, mapped, query)
        if sample is not None:
            data, section, record_symbol = sample
            chain.append(f"mock:{record_symbol}")
            logger.warning(
                "%s(%s): using bundled sample data [file:%s]", original, kind.value, record_symbol
            )
            return SourcedData(
                data=data,
                source="mock",
                reason="fallback",
                fallback="mock-file",
                warning=MISSING_TOKEN_SAMPLE_WARNING if token_missing else SAMPLE_WARNING,
                message=str(failure),
                fallback_chain=chain,
                extra_meta={
                    "mockSection": section,
                    "mockSymbol": record_symbol,
                    "mockSource": f"file:{record_symbol}",
                },
            )
        chain.append("mock:missing")

        data = self._synthesize(kind, original, mapped, query)
        series_like = kind in (Kind.INTRADAY_LATEST, Kind.INTRADAY, Kind.EOD, Kind.VALUATION)
        chain.append("synthetic" if series_like else "empty")
        logger.warning("%s(%s): serving synthetic fallback data", original, kind.value)
        return SourcedData(
            data=data,
            source="synthetic",
            reason="fallback",
            fallback="synthetic" if series_like else "empty",
            warning=MISSING_TOKEN_SYNTHETIC_WARNING if token_missing else SYNTHETIC_WARNING,
            message=str(failure),
            fallback_chain=chain,
        )

    async def _live(
        self,
        kind: Kind,
        original: str,
        mapped: str,
        query: RequestParams,
        token: str,
        chain: list[str],
    ) -> Any:
        if kind is Kind.VALUATION:
            return await self._live_valuation(original, mapped, query, token, chain)

        payload = await self._client.fetch_kind(kind, mapped, query, token=token)

        if kind is Kind.INTRADAY_LATEST:
            return [normalize.live_quote(payload, mapped, original)]
        if kind is Kind.INTRADAY:
            return normalize.live_series(payload, query.limit, daily=False)
        if kind is Kind.EOD:
            return normalize.live_series(payload, query.limit, daily=True)
        if kind is Kind.NEWS:
            return normalize.live_list(payload, query.limit)
        if kind is Kind.ACTIONS:
            return normalize.live_actions(payload, query.limit)
        return normalize.live_object(payload)

    async def _live_valuation(
        self,
        original: str,
        mapped: str,
        query: RequestParams,
        token: str,
        chain: list[str],
    ) -> dict[str, Any]:
        payload = await self._client.fetch_kind(Kind.INTRADAY_LATEST, mapped, query, token=token)
        quote = normalize.live_quote(payload, mapped, original)
        try:
            fundamentals = normalize.live_object(
                await self._client.fetch_kind(Kind.FUNDAMENTALS, mapped, query, token=token)
            )
        except MarketDataError as exc:
            # A live quote alone still prices the snapshot; ratios stay null.
            chain.append(f"live:fundamentals:{exc.code}")
            fundamentals = None
        return compute_valuation(original, quote, fundamentals)

    async def _from_sample(
        self,
        kind: Kind,
        original: str,
        mapped: str,
        query: RequestParams,
    ) -> tuple[Any, str, str] | None:
        candidates: list[str] = []
        for name in (original, mapped, FALLBACK_SYMBOL):
            if name and name not in candidates:
                candidates.append(name)

        for name in candidates:
            record = await self._mock_loader.load(name)
            if record is None:
                continue
            data, section = extract(record, kind, query.limit, original)
            if kind is Kind.INTRADAY_LATEST:
                data = [normalize.build_quote(q, mapped, original) for q in data if isinstance(q, dict)]
            if normalize.is_empty(data):
                continue
            if kind is Kind.VALUATION and data.get("price") is None:
                continue
            return data, section, str(record.get("symbol") or name)
        return None

    def _synthesize(self, kind: Kind, original: str, mapped: str, query: RequestParams) -> Any:
        if kind is Kind.INTRADAY_LATEST:
            return [self._generator.synthetic_quote(original, mapped)]
        if kind is Kind.INTRADAY:
            return self._generator.synthetic_series(original, mapped, query.limit, query.interval_minutes)
        if kind is Kind.EOD:
            return self._generator.synthetic_series(original, mapped, query.limit)
        if kind is Kind.VALUATION:
            return compute_valuation(original, self._generator.synthetic_quote(original, mapped), None)
        if kind is Kind.ACTIONS:
            return {"dividends": [], "splits": []}
        if kind in (Kind.NEWS, Kind.DOCUMENTS, Kind.FILINGS):
            return []
        return None

    @staticmethod
    def _unsupported(requested: str, original: str) -> SourcedData:
        error = UnsupportedKind(f"{requested or 'unknown'} data not implemented")
        return SourcedData(
            data={"message": str(error), "symbol": original},
            source="mock",
            reason="unsupported",
            fallback="unsupported-kind",
            warning=UNSUPPORTED_WARNING,
            fallback_chain=[f"router:{error.code}"],
        )
