"""Historical-dataset source: period slices and symbol search over the IDX dataset."""

from __future__ import annotations

import logging
from datetime import timedelta

from idxmarket.historical.orchestrator import HistoricalDataOrchestrator
from idxmarket.historical.parser import slice_for_period
from idxmarket.marketdata.adapter import BaseAdapter, Capability, Priority
from idxmarket.models import HistoricalData, SearchResult
from idxmarket.utils import utc_now

logger = logging.getLogger(__name__)

SOURCE_LABEL = "Dataset-Saham-IDX"
_MAX_SEARCH_RESULTS = 20


class DatasetAdapter(BaseAdapter):
    name = "github_dataset"
    priority = Priority.HIGH
    capabilities = frozenset({Capability.HISTORICAL, Capability.SEARCH})

    def __init__(
        self,
        orchestrator: HistoricalDataOrchestrator,
        *,
        timeout_ms: int = 15_000,
        cache_ttl: timedelta = timedelta(hours=24),
    ) -> None:
        self._orchestrator = orchestrator
        self.timeout_ms = timeout_ms
        self._cache_ttl = cache_ttl

    async def historical_series(self, symbol: str, period: str) -> HistoricalData | None:
        symbol = symbol.upper()
        if not await self._orchestrator.is_available(symbol):
            logger.debug("%s not listed in dataset", symbol)
            return None

        series = await self._orchestrator.get_series(symbol, cache_ttl=self._cache_ttl)
        points = slice_for_period(series, period)
        if not points:
            logger.debug("No dataset points for %s in period %s", symbol, period)
            return None

        logger.info("Retrieved %d dataset points for %s (%s)", len(points), symbol, period)
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

    async def search(self, query: str) -> list[SearchResult] | None:
        needle = query.strip().lower()
        symbols = await self._orchestrator.list_available_symbols()
        matches = [s for s in symbols if needle in s.lower()][:_MAX_SEARCH_RESULTS]
        return [
            SearchResult(symbol=s, name=f"{s} - Historical Data Available", sector="Unknown", market="IDX")
            for s in matches
        ]
