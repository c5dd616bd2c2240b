"""Priority- and health-aware fallback across registered source adapters."""

from __future__ import annotations

import logging
from typing import Any

from idxmarket.marketdata.adapter import Capability, MonitoredSource, SourceAdapter
from idxmarket.models import (
    Absent,
    Found,
    HistoricalData,
    MarketOverview,
    SearchResult,
    SectorPerformance,
    SourceResult,
    StockInfo,
)

logger = logging.getLogger(__name__)


class FallbackCoordinator:
    """Routes each capability call through the registered sources.

    Sources are kept in descending priority; equal priorities keep their
    registration order. Only sources declaring the capability take part. When at
    least one of them is healthy only the healthy ones are tried, strictly one
    after another, and the first value wins. When none is healthy every
    capable source is tried in the same order.
    """

    def __init__(self) -> None:
        self._sources: list[MonitoredSource] = []

    def register(self, adapter: SourceAdapter) -> MonitoredSource:
        source = adapter if isinstance(adapter, MonitoredSource) else MonitoredSource(adapter)
        self._sources.append(source)
        # list.sort is stable, so ties stay in registration order.
        self._sources.sort(key=lambda s: s.priority, reverse=True)
        logger.info("Registered source %s (priority %s)", source.name, source.priority.name)
        return source

    @property
    def sources(self) -> list[MonitoredSource]:
        return list(self._sources)

    def healthy_sources(self) -> list[str]:
        return [s.name for s in self._sources if s.stats.is_healthy]

    def stats(self) -> dict[str, dict[str, Any]]:
        return {
            s.name: {"priority": int(s.priority), **s.stats.to_dict()}
            for s in self._sources
        }

    async def execute(self, capability: Capability, *args: Any) -> SourceResult[Any]:
        capable = [s for s in self._sources if s.supports(capability)]
        healthy = [s for s in capable if s.stats.is_healthy]
        candidates = healthy or capable
        if not healthy and capable:
            logger.warning("No healthy sources for %s, trying all %d", capability.value, len(capable))

        attempts: list[str] = []
        for source in candidates:
            result = await source.call(capability, *args)
            if isinstance(result, Found):
                if attempts:
                    logger.info("%s served by %s after %s", capability.value, source.name, ", ".join(attempts))
                return result
            attempts.append(f"{source.name}:{result.reason}")

        logger.warning(
            "All sources exhausted for %s: %s",
            capability.value,
            ", ".join(attempts) or "no sources registered",
        )
        return Absent(None, "exhausted")

    # ── capabilities ───────────────────────────────────────────────────

    async def stock_info(self, symbol: str) -> SourceResult[StockInfo]:
        return await self.execute(Capability.STOCK_INFO, symbol)

    async def market_overview(self) -> SourceResult[MarketOverview]:
        return await self.execute(Capability.MARKET_OVERVIEW)

    async def historical_series(self, symbol: str, period: str) -> SourceResult[HistoricalData]:
        return await self.execute(Capability.HISTORICAL, symbol, period)

    async def sector_performance(self) -> SourceResult[SectorPerformance]:
        return await self.execute(Capability.SECTOR_PERFORMANCE)

    async def search(self, query: str) -> SourceResult[list[SearchResult]]:
        return await self.execute(Capability.SEARCH, query)

    async def aclose(self) -> None:
        for source in self._sources:
            close = getattr(source.adapter, "aclose", None)
            if close is not None:
                await close()
