"""idxmarket CLI: run one service operation and print its response envelope.

Examples::

    python -m idxmarket.main overview
    python -m idxmarket.main info BBCA
    python -m idxmarket.main history BBRI --period 6m
    python -m idxmarket.main analyze TLKM --period 1y
    python -m idxmarket.main compare BBCA BBRI BMRI --period 3m
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from idxmarket import __version__
from idxmarket.bootstrap import build_services
from idxmarket.config import get_settings
from idxmarket.service import Envelope, MarketDataService
from idxmarket.utils import setup_logging

logger = logging.getLogger("idxmarket")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="idxmarket",
        description="Indonesian stock exchange market data",
    )
    parser.add_argument("--version", action="version", version=f"idxmarket {__version__}")
    parser.add_argument("--debug", action="store_true", help="Log at DEBUG level")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("overview", help="Composite index and top movers")
    sub.add_parser("sectors", help="Sector performance")
    sub.add_parser("stocks", help="Symbols available in the historical dataset")
    sub.add_parser("dataset", help="Dataset repository and local store summary")
    sub.add_parser("stats", help="Source health and cache statistics")

    p = sub.add_parser("info", help="Current quote for one symbol")
    p.add_argument("ticker")

    p = sub.add_parser("history", help="Historical OHLCV for one symbol")
    p.add_argument("ticker")
    p.add_argument("--period", default="1y")

    p = sub.add_parser("search", help="Search symbols and company names")
    p.add_argument("query")

    p = sub.add_parser("analyze", help="Technical analysis over the dataset series")
    p.add_argument("ticker")
    p.add_argument("--period", default="1y")

    p = sub.add_parser("compare", help="Compare returns of 2-5 symbols")
    p.add_argument("tickers", nargs="+")
    p.add_argument("--period", default="1y")
    return parser


async def _dispatch(service: MarketDataService, args: argparse.Namespace) -> Envelope:
    cmd = args.command
    if cmd == "overview":
        return await service.market_overview()
    if cmd == "sectors":
        return await service.sector_performance()
    if cmd == "stocks":
        return await service.available_stocks()
    if cmd == "dataset":
        return await service.dataset_info()
    if cmd == "stats":
        return await service.system_stats()
    if cmd == "info":
        return await service.stock_info(args.ticker)
    if cmd == "history":
        return await service.historical_data(args.ticker, args.period)
    if cmd == "search":
        return await service.search(args.query)
    if cmd == "analyze":
        return await service.stock_analysis(args.ticker, args.period)
    return await service.compare_stocks(args.tickers, args.period)


async def _run(args: argparse.Namespace) -> int:
    services = build_services(get_settings())
    try:
        envelope = await _dispatch(services.service, args)
    finally:
        await services.aclose()
    print(json.dumps(envelope.to_dict(), indent=2, default=str))
    return 0 if envelope.success else 1


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging("DEBUG" if args.debug or settings.debug else settings.log_level, settings.log_file)
    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
