"""Fetch, parse and persist per-symbol historical series from the IDX dataset."""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timedelta
from typing import Any, Callable

from idxmarket.historical.client import DatasetClient
from idxmarket.historical.parser import filter_by_date_range, parse_series, slice_for_period
from idxmarket.historical.store import SeriesStore
from idxmarket.models import ParsedSeries, StockMetadata, TimeSeriesPoint
from idxmarket.utils import chunked, utc_now

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL = timedelta(hours=24)


class HistoricalDataOrchestrator:
    """Cache-first access to dataset series.

    A stored record is served while it is younger than ``cache_ttl``;
    otherwise the raw file is downloaded, parsed and written back.
    """

    def __init__(
        self,
        client: DatasetClient,
        store: SeriesStore,
        *,
        batch_size: int = 5,
        default_ttl: timedelta = DEFAULT_CACHE_TTL,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._client = client
        self._store = store
        self._batch_size = max(1, batch_size)
        self._default_ttl = default_ttl
        self._clock = clock

    # ── single symbol ──────────────────────────────────────────────────

    async def _fresh_record(self, symbol: str, cache_ttl: timedelta) -> ParsedSeries | None:
        meta = await self._store.load_metadata(symbol)
        if meta is None:
            return None
        age = self._clock() - meta.last_updated
        if age >= cache_ttl:
            logger.debug("%s record stale (age %s >= %s)", symbol, age, cache_ttl)
            return None
        return await self._store.load_series(symbol)

    async def get_series(
        self,
        symbol: str,
        *,
        use_cache: bool = True,
        cache_ttl: timedelta | None = None,
        force_refresh: bool = False,
    ) -> ParsedSeries:
        symbol = symbol.upper()
        ttl = cache_ttl if cache_ttl is not None else self._default_ttl

        if use_cache and not force_refresh:
            cached = await self._fresh_record(symbol, ttl)
            if cached is not None:
                logger.debug("%s served from store (%d points)", symbol, cached.total_points)
                return cached

        raw_text = await self._client.download_csv(symbol)
        series = parse_series(raw_text, symbol)
        logger.info(
            "Fetched %s: %d points %s..%s",
            symbol,
            series.total_points,
            series.start_date,
            series.end_date,
        )

        if use_cache:
            await self._store.save(series, len(raw_text.encode("utf-8")))
        return series

    async def get_series_for_period(
        self, symbol: str, period: str, **opts: Any
    ) -> list[TimeSeriesPoint]:
        series = await self.get_series(symbol, **opts)
        return slice_for_period(series, period, self._clock())

    async def get_series_for_range(
        self,
        symbol: str,
        start: date | None = None,
        end: date | None = None,
        **opts: Any,
    ) -> list[TimeSeriesPoint]:
        series = await self.get_series(symbol, **opts)
        return filter_by_date_range(series, start, end)

    # ── batches ────────────────────────────────────────────────────────

    async def get_multiple(self, symbols: list[str], **opts: Any) -> dict[str, ParsedSeries]:
        """Fetch many symbols, ``batch_size`` at a time; failures are logged and left out."""
        results: dict[str, ParsedSeries] = {}

        async def _one(sym: str) -> None:
            try:
                results[sym.upper()] = await self.get_series(sym, **opts)
            except Exception as exc:
                logger.warning("Failed to load %s: %s", sym.upper(), exc)

        for batch in chunked(symbols, self._batch_size):
            await asyncio.gather(*(_one(s) for s in batch))
        return results

    # ── repository ─────────────────────────────────────────────────────

    async def list_available_symbols(self) -> list[str]:
        try:
            return await self._client.list_symbols()
        except Exception:
            logger.error("Failed to list dataset symbols", exc_info=True)
            return []

    async def is_available(self, symbol: str) -> bool:
        return symbol.upper() in await self.list_available_symbols()

    async def cached_metadata(self) -> list[StockMetadata]:
        return await self._store.all_metadata()

    async def repository_metadata(self) -> dict[str, Any]:
        """Repository info plus a summary of what the local store holds."""
        info = await self._client.repository_info()
        cached = await self.cached_metadata()
        return {
            "repository": info.to_dict(),
            "cache": {
                "cached_symbols": len(cached),
                "total_data_points": sum(m.data_points for m in cached),
                "total_bytes": sum(m.raw_byte_size for m in cached),
                "oldest_data": min(m.start_date for m in cached).isoformat() if cached else None,
                "newest_data": max(m.end_date for m in cached).isoformat() if cached else None,
                "symbols": [m.symbol for m in cached],
            },
        }

    async def clear_cache(self, symbol: str | None = None) -> int:
        removed = await self._store.delete(symbol.upper() if symbol else None)
        logger.info("Cleared %d store file(s)%s", removed, f" for {symbol.upper()}" if symbol else "")
        return removed
