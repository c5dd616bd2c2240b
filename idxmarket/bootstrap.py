"""One-shot construction of the object graph from settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from idxmarket.cache import MemoryCache, RedisCache, build_cache
from idxmarket.config import Settings, get_settings
from idxmarket.historical.client import DatasetClient
from idxmarket.historical.orchestrator import HistoricalDataOrchestrator
from idxmarket.historical.store import SeriesStore
from idxmarket.marketdata.coordinator import FallbackCoordinator
from idxmarket.marketdata.dataset import DatasetAdapter
from idxmarket.marketdata.live import YahooAdapter
from idxmarket.marketdata.scraper import WebScrapingAdapter
from idxmarket.service import MarketDataService

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    cache: MemoryCache | RedisCache
    client: DatasetClient
    orchestrator: HistoricalDataOrchestrator
    coordinator: FallbackCoordinator
    service: MarketDataService

    async def aclose(self) -> None:
        await self.coordinator.aclose()
        await self.client.aclose()
        await self.cache.aclose()


def build_services(settings: Settings | None = None) -> Services:
    settings = settings or get_settings()

    cache = build_cache(settings)
    client = DatasetClient(
        settings.dataset_api_url,
        settings.dataset_raw_url,
        timeout=settings.dataset_timeout_ms / 1000,
        listing_ttl=settings.cache_ttl("static"),
    )
    orchestrator = HistoricalDataOrchestrator(
        client,
        SeriesStore(settings.data_dir),
        batch_size=settings.fetch_batch_size,
        default_ttl=settings.historical_cache_ttl,
    )

    coordinator = FallbackCoordinator()
    coordinator.register(
        DatasetAdapter(
            orchestrator,
            timeout_ms=settings.dataset_timeout_ms,
            cache_ttl=settings.historical_cache_ttl,
        )
    )
    coordinator.register(
        YahooAdapter(
            timeout_ms=settings.yahoo_timeout_ms,
            requests_per_minute=settings.requests_per_minute,
        )
    )
    coordinator.register(WebScrapingAdapter(timeout_ms=settings.web_timeout_ms))

    service = MarketDataService(coordinator, cache, orchestrator, settings)
    logger.info(
        "Services ready: cache=%s sources=%s",
        settings.cache_type,
        [s.name for s in coordinator.sources],
    )
    return Services(settings, cache, client, orchestrator, coordinator, service)
