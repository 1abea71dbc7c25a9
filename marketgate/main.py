"""marketgate CLI entrypoint.

Fetch one envelope and print it, or run the HTTP server::

    python -m marketgate.main AAPL eod --limit 5
    python -m marketgate.main WOW quote
    python -m marketgate.main --check      # test the Tiingo connection
    python -m marketgate.main --usage      # account usage and limits
    python -m marketgate.main --server
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from marketgate import __version__
from marketgate.config import get_settings
from marketgate.utils import setup_logging

logger = logging.getLogger("marketgate")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="marketgate",
        description="marketgate: market data gateway",
    )
    parser.add_argument("symbol", nargs="?", default="AAPL", help="Ticker symbol (default: AAPL)")
    parser.add_argument("kind", nargs="?", default="eod", help="Data kind: eod, intraday, quote, news, ... (default: eod)")
    parser.add_argument("--limit", help="Maximum number of rows")
    parser.add_argument("--interval", help="Intraday bar size, e.g. 5min")
    parser.add_argument("--raw", action="store_true", help="Print compact JSON")

    group = parser.add_argument_group("modes")
    group.add_argument("--server", action="store_true", help="Run the FastAPI server")
    group.add_argument("--check", action="store_true", help="Test the Tiingo connection and exit")
    group.add_argument("--usage", action="store_true", help="Show Tiingo account usage and exit")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _dump(payload: Any, raw: bool) -> str:
    if raw:
        return json.dumps(payload, default=str)
    return json.dumps(payload, indent=2, default=str)


async def _fetch(args: argparse.Namespace) -> int:
    from marketgate.marketdata import MarketDataGateway
    from marketgate.marketdata.errors import InvalidRequest

    gateway = MarketDataGateway()
    try:
        if args.check or args.usage:
            credential = gateway.resolver.resolve()
            gateway.client.token = credential.token
            if args.usage:
                result = await gateway.client.api_usage()
            else:
                result = await gateway.client.test_connection()
            result["tokenPreview"] = credential.preview
            result["chosenKey"] = credential.key
            print(_dump(result, args.raw))
            return 0 if result.get("success") else 1

        envelope = await gateway.handle(
            args.kind,
            args.symbol,
            {"limit": args.limit, "interval": args.interval},
        )
        print(_dump(envelope, args.raw))
        return 0
    except InvalidRequest as exc:
        print(_dump({"error": str(exc)}, args.raw))
        return 2
    finally:
        await gateway.close()


async def _serve() -> None:
    import uvicorn
    from marketgate.api.app import create_app

    settings = get_settings()
    app = create_app()
    config = uvicorn.Config(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )
    server = uvicorn.Server(config)
    await server.serve()


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    setup_logging(settings.log_level)

    try:
        if args.server:
            asyncio.run(_serve())
            return 0
        return asyncio.run(_fetch(args))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
        return 130


if __name__ == "__main__":
    sys.exit(main())
