"""Market data endpoint: one symbol, one kind, one envelope."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Query, Request, Response
from fastapi.responses import JSONResponse

from marketgate.marketdata import MarketDataGateway
from marketgate.marketdata.errors import InvalidRequest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["market"])


def _gateway(request: Request) -> MarketDataGateway:
    return request.app.state.gateway


@router.get("/market")
@router.get("/tiingo", include_in_schema=False)
async def market_data(
    request: Request,
    symbol: str | None = Query(None),
    kind: str | None = Query(None),
    limit: str | None = Query(None),
    interval: str | None = Query(None),
):
    params = {"limit": limit, "interval": interval}
    try:
        envelope = await _gateway(request).handle(kind, symbol, params)
    except InvalidRequest as exc:
        return JSONResponse(status_code=400, content={"error": str(exc)})

    meta = envelope["meta"]
    headers = {
        "x-market-source": meta.get("source") or "",
        "x-market-fallback": meta.get("fallback") or "",
        "x-market-token-preview": meta.get("tokenPreview") or "",
        "x-market-chosen-key": meta.get("chosenKey") or "",
    }
    return JSONResponse(content=envelope, headers=headers)


@router.options("/market")
@router.options("/tiingo", include_in_schema=False)
async def market_preflight():
    return Response(status_code=204)
