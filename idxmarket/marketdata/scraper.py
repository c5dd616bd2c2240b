"""Page-scraping fallback source: Google Finance quote pages for IDX listings."""

from __future__ import annotations

import logging
import re

import httpx
from bs4 import BeautifulSoup

from idxmarket.errors import AdapterUnavailable
from idxmarket.marketdata.adapter import BaseAdapter, Capability, Priority
from idxmarket.models import MarketOverview, StockInfo
from idxmarket.utils import idx_market_status, utc_now

logger = logging.getLogger(__name__)

_QUOTE_URL = "https://www.google.com/finance/quote/{symbol}:IDX"
_INDEX_SYMBOL = "JKSE"

_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/124.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}


def _parse_float(text: str | None) -> float | None:
    if not text:
        return None
    cleaned = re.sub(r"[^\d.\-]", "", text.replace(",", ""))
    try:
        return float(cleaned)
    except ValueError:
        return None


def parse_quote_page(html: str) -> tuple[float, float, str | None] | None:
    """Extract ``(price, change, title)`` from a quote page, or ``None`` if absent."""
    soup = BeautifulSoup(html, "html.parser")
    price_el = soup.select_one("[data-last-price]")
    if price_el is None:
        return None
    price = _parse_float(price_el.get("data-last-price"))
    if price is None:
        return None

    change = 0.0
    change_el = soup.select_one("[data-last-change]")
    if change_el is not None:
        change = _parse_float(change_el.get("data-last-change") or change_el.get_text()) or 0.0

    title = soup.title.get_text(strip=True) if soup.title else None
    if title:
        title = title.split(" Stock Price")[0].split(" (")[0].strip() or None
    return price, change, title


class WebScrapingAdapter(BaseAdapter):
    name = "web_scraping"
    priority = Priority.MEDIUM
    capabilities = frozenset({Capability.MARKET_OVERVIEW, Capability.STOCK_INFO})

    def __init__(self, *, timeout_ms: int = 15_000, client: httpx.AsyncClient | None = None) -> None:
        self.timeout_ms = timeout_ms
        self._client = client or httpx.AsyncClient(
            timeout=timeout_ms / 1000, headers=_HEADERS, follow_redirects=True
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _quote(self, symbol: str) -> tuple[float, float, str | None]:
        resp = await self._client.get(_QUOTE_URL.format(symbol=symbol))
        resp.raise_for_status()
        parsed = parse_quote_page(resp.text)
        if parsed is None:
            raise AdapterUnavailable(self.name, f"no price element on {symbol} page")
        return parsed

    async def market_overview(self) -> MarketOverview | None:
        value, change, _ = await self._quote(_INDEX_SYMBOL)
        prev = value - change
        return MarketOverview(
            index_value=value,
            index_change=change,
            index_change_percent=(change / prev * 100) if prev > 0 else 0.0,
            trading_volume=0.0,
            trading_value=0.0,
            market_status=idx_market_status(),
            last_updated=utc_now(),
        )

    async def stock_info(self, symbol: str) -> StockInfo | None:
        symbol = symbol.strip().upper()
        price, change, title = await self._quote(symbol)
        prev = price - change
        return StockInfo(
            symbol=symbol,
            name=title or symbol,
            current_price=price,
            price_change=change,
            price_change_percent=(change / prev * 100) if prev > 0 else 0.0,
            day_high=price,
            day_low=price,
            volume=0.0,
            last_updated=utc_now(),
        )
