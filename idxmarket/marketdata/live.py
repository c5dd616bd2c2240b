"""Live-quote source backed by Yahoo Finance (IDX tickers carry the ``.JK`` suffix)."""

from __future__ import annotations

import asyncio
import logging
import math
from datetime import date
from typing import Any

from idxmarket.errors import AdapterUnavailable
from idxmarket.historical.parser import period_start
from idxmarket.marketdata.adapter import BaseAdapter, Capability, Priority
from idxmarket.models import (
    HistoricalData,
    MarketOverview,
    SearchResult,
    SectorData,
    SectorPerformance,
    StockInfo,
    StockSummary,
    TimeSeriesPoint,
)
from idxmarket.utils import RateLimiter, idx_market_status, utc_now

logger = logging.getLogger(__name__)
_YF_LOGGER = logging.getLogger("yfinance")
_YF_LOGGER.setLevel(logging.CRITICAL)

IDX_SUFFIX = ".JK"
COMPOSITE_INDEX = "^JKSE"
SOURCE_LABEL = "Yahoo Finance"

SAMPLE_TICKERS = ("BBCA", "BBRI", "BMRI", "TLKM", "ASII", "UNVR")
SECTORS: dict[str, tuple[str, ...]] = {
    "Banking": ("BBCA", "BBRI", "BMRI"),
    "Telecommunications": ("TLKM", "EXCL"),
    "Consumer": ("UNVR", "INDF"),
    "Mining": ("ADRO", "PTBA"),
}
KNOWN_COMPANIES: dict[str, str] = {
    "BBCA": "Bank Central Asia Tbk PT",
    "BBRI": "Bank Rakyat Indonesia Tbk PT",
    "BMRI": "Bank Mandiri Tbk PT",
    "TLKM": "Telkom Indonesia Tbk PT",
    "ASII": "Astra International Tbk PT",
    "UNVR": "Unilever Indonesia Tbk PT",
    "INDF": "Indofood Sukses Makmur Tbk PT",
    "ADRO": "Adaro Energy Tbk PT",
    "PTBA": "Tambang Batubara Bukit Asam Tbk PT",
}

_TOP_MOVERS = 5
_MAX_SEARCH_RESULTS = 10


def _num(v: Any, default: float | None = None) -> float | None:
    try:
        if v is None:
            return default
        f = float(v)
    except (TypeError, ValueError):
        return default
    return default if math.isnan(f) else f


def yahoo_symbol(symbol: str) -> str:
    s = symbol.strip().upper()
    return s if s.endswith(IDX_SUFFIX) or s.startswith("^") else f"{s}{IDX_SUFFIX}"


class YahooAdapter(BaseAdapter):
    name = "yahoo_finance"
    priority = Priority.HIGH
    capabilities = frozenset(Capability)

    def __init__(self, *, timeout_ms: int = 10_000, requests_per_minute: int = 60) -> None:
        self.timeout_ms = timeout_ms
        self._limiter = RateLimiter(max_calls=requests_per_minute, period=60.0)

    # ── yfinance calls (blocking, run in a worker thread) ──────────────

    async def _fetch_quote(self, ticker: str) -> dict[str, Any] | None:
        def _load() -> dict[str, Any] | None:
            import yfinance as yf

            info = yf.Ticker(ticker).info
            return dict(info) if info else None

        async with self._limiter:
            return await asyncio.to_thread(_load)

    async def _fetch_history(self, ticker: str, start: date) -> list[TimeSeriesPoint]:
        def _load() -> list[TimeSeriesPoint]:
            import yfinance as yf

            data = yf.download(
                tickers=ticker,
                start=start.strftime("%Y-%m-%d"),
                interval="1d",
                progress=False,
                auto_adjust=False,
                timeout=30,
            )
            if data is None or data.empty:
                return []
            if data.columns.nlevels > 1:
                data.columns = data.columns.get_level_values(0)

            points: list[TimeSeriesPoint] = []
            for idx, r in data.iterrows():
                o, h, lo, c = (_num(r.get(k)) for k in ("Open", "High", "Low", "Close"))
                if o is None or h is None or lo is None or c is None:
                    continue
                if min(o, h, lo, c) <= 0 or h < max(o, c) or lo > min(o, c):
                    continue
                points.append(
                    TimeSeriesPoint(
                        date=idx.date(),
                        open=o,
                        high=h,
                        low=lo,
                        close=c,
                        volume=_num(r.get("Volume"), 0.0) or 0.0,
                        adjusted_close=_num(r.get("Adj Close")),
                    )
                )
            return points

        async with self._limiter:
            return await asyncio.to_thread(_load)

    # ── capabilities ───────────────────────────────────────────────────

    async def stock_info(self, symbol: str) -> StockInfo | None:
        symbol = symbol.strip().upper().removesuffix(IDX_SUFFIX)
        quote = await self._fetch_quote(yahoo_symbol(symbol))
        price = _num((quote or {}).get("regularMarketPrice"))
        if price is None:
            raise AdapterUnavailable(self.name, f"no quote data for {symbol}")

        prev = _num(quote.get("regularMarketPreviousClose")) or price
        change = price - prev
        return StockInfo(
            symbol=symbol,
            name=quote.get("longName") or quote.get("shortName") or symbol,
            current_price=price,
            price_change=change,
            price_change_percent=(change / prev * 100) if prev > 0 else 0.0,
            day_high=_num(quote.get("regularMarketDayHigh")) or price,
            day_low=_num(quote.get("regularMarketDayLow")) or price,
            volume=_num(quote.get("regularMarketVolume"), 0.0) or 0.0,
            market_cap=_num(quote.get("marketCap")),
            pe_ratio=_num(quote.get("trailingPE")),
            week52_high=_num(quote.get("fiftyTwoWeekHigh")),
            week52_low=_num(quote.get("fiftyTwoWeekLow")),
            last_updated=utc_now(),
        )

    async def _summaries(self, symbols: tuple[str, ...]) -> dict[str, StockSummary]:
        """Best-effort quotes for a basket; symbols that fail are left out."""
        out: dict[str, StockSummary] = {}

        async def _one(sym: str) -> None:
            try:
                info = await self.stock_info(sym)
            except Exception as exc:
                logger.debug("Sample quote %s failed: %s", sym, exc)
                return
            if info is not None:
                out[sym] = StockSummary(
                    symbol=sym,
                    name=info.name,
                    price=info.current_price,
                    change_percent=info.price_change_percent,
                )

        await asyncio.gather(*[_one(s) for s in symbols])
        return out

    async def market_overview(self) -> MarketOverview | None:
        quote = await self._fetch_quote(COMPOSITE_INDEX)
        value = _num((quote or {}).get("regularMarketPrice"))
        if value is None:
            raise AdapterUnavailable(self.name, "no composite index data")

        prev = _num(quote.get("regularMarketPreviousClose")) or value
        change = value - prev
        sample = list((await self._summaries(SAMPLE_TICKERS)).values())
        gainers = sorted((s for s in sample if s.change_percent > 0), key=lambda s: -s.change_percent)
        losers = sorted((s for s in sample if s.change_percent < 0), key=lambda s: s.change_percent)

        return MarketOverview(
            index_value=value,
            index_change=change,
            index_change_percent=(change / prev * 100) if prev > 0 else 0.0,
            trading_volume=_num(quote.get("regularMarketVolume"), 0.0) or 0.0,
            trading_value=0.0,
            market_status=idx_market_status(),
            top_gainers=gainers[:_TOP_MOVERS],
            top_losers=losers[:_TOP_MOVERS],
            last_updated=utc_now(),
        )

    async def historical_series(self, symbol: str, period: str) -> HistoricalData | None:
        symbol = symbol.strip().upper().removesuffix(IDX_SUFFIX)
        # Unknown period tokens fall back to one month here.
        start = period_start(period) or period_start("1m")
        points = await self._fetch_history(yahoo_symbol(symbol), start)
        if not points:
            return None
        points.sort(key=lambda p: p.date)
        return HistoricalData(
            symbol=symbol,
            period=period,
            points=points,
            total_points=len(points),
            start_date=points[0].date,
            end_date=points[-1].date,
            source=SOURCE_LABEL,
            last_updated=utc_now(),
        )

    async def sector_performance(self) -> SectorPerformance | None:
        basket = tuple(dict.fromkeys(s for members in SECTORS.values() for s in members))
        quotes = await self._summaries(basket)

        sectors: dict[str, SectorData] = {}
        for sector, members in SECTORS.items():
            changes = [quotes[s].change_percent for s in members if s in quotes]
            sectors[sector] = SectorData(
                performance=sum(changes) / len(changes) if changes else 0.0,
                count=len(changes),
                symbols=list(members),
            )
        if not any(d.count for d in sectors.values()):
            raise AdapterUnavailable(self.name, "no sector quotes available")

        ranked = sorted(sectors, key=lambda name: sectors[name].performance, reverse=True)
        return SectorPerformance(
            sectors=sectors,
            best_sector=ranked[0],
            worst_sector=ranked[-1],
            last_updated=utc_now(),
        )

    async def search(self, query: str) -> list[SearchResult] | None:
        needle = query.strip().lower()
        names = [
            (sym, name)
            for sym, name in KNOWN_COMPANIES.items()
            if needle in sym.lower() or needle in name.lower()
        ][:_MAX_SEARCH_RESULTS]
        if not names:
            return []

        quotes = await self._summaries(tuple(sym for sym, _ in names))
        return [
            SearchResult(
                symbol=sym,
                name=name,
                market="IDX",
                current_price=quotes[sym].price if sym in quotes else None,
                change_percent=quotes[sym].change_percent if sym in quotes else None,
            )
            for sym, name in names
        ]
