from __future__ import annotations

import pytest

from idxmarket.cache import MISSING, CacheKeys, MemoryCache
from idxmarket.config import Settings
from idxmarket.errors import DatasetUnavailable
from idxmarket.historical.orchestrator import HistoricalDataOrchestrator
from idxmarket.historical.store import SeriesStore
from idxmarket.marketdata.adapter import BaseAdapter, Capability, Priority
from idxmarket.marketdata.coordinator import FallbackCoordinator
from idxmarket.marketdata.dataset import DatasetAdapter
from idxmarket.models import MarketOverview, RepositoryInfo, SearchResult, StockInfo
from idxmarket.service import MarketDataService


class FakeDatasetClient:
    def __init__(self, files: dict[str, str]) -> None:
        self.files = files
        self.downloads = 0

    async def download_csv(self, symbol: str, directory: str | None = None) -> str:
        self.downloads += 1
        if symbol not in self.files:
            raise DatasetUnavailable(f"stock data not available for {symbol}")
        return self.files[symbol]

    async def list_symbols(self) -> list[str]:
        return sorted(self.files)

    async def repository_info(self) -> RepositoryInfo:
        return RepositoryInfo(last_updated=None, total_files=len(self.files), available_symbols=sorted(self.files))


class QuoteAdapter(BaseAdapter):
    name = "quotes"
    priority = Priority.MEDIUM
    capabilities = frozenset({Capability.STOCK_INFO, Capability.MARKET_OVERVIEW, Capability.SEARCH})

    def __init__(self) -> None:
        self.calls = 0

    async def stock_info(self, symbol: str) -> StockInfo | None:
        self.calls += 1
        if symbol != "BBCA":
            return None
        return StockInfo("BBCA", "Bank Central Asia Tbk PT", 9_875.0, 25.0, 0.25, 9_900.0, 9_800.0, 1e6)

    async def market_overview(self) -> MarketOverview | None:
        self.calls += 1
        raise RuntimeError("upstream 503")

    async def search(self, query: str) -> list[SearchResult] | None:
        return [SearchResult(symbol="BBCA", name="Bank Central Asia Tbk PT")]


def _service(tmp_path, files: dict[str, str]) -> tuple[MarketDataService, QuoteAdapter, FakeDatasetClient]:  # noqa: ANN001
    settings = Settings(_env_file=None, data_dir=tmp_path)
    client = FakeDatasetClient(files)
    orchestrator = HistoricalDataOrchestrator(client, SeriesStore(tmp_path))  # type: ignore[arg-type]
    coordinator = FallbackCoordinator()
    coordinator.register(DatasetAdapter(orchestrator))
    quotes = QuoteAdapter()
    coordinator.register(quotes)
    return MarketDataService(coordinator, MemoryCache(), orchestrator, settings), quotes, client


@pytest.mark.asyncio
async def test_stock_info_is_cached_after_first_call(tmp_path) -> None:  # noqa: ANN001
    service, quotes, _ = _service(tmp_path, {})
    first = await service.stock_info(" bbca ")
    assert first.success and first.status == "ok"
    assert first.source == "live"
    assert first.provider == "quotes"
    assert first.data["current_price"] == 9_875.0

    second = await service.stock_info("BBCA")
    assert second.source == "cache"
    assert second.data == first.data
    assert quotes.calls == 1


@pytest.mark.asyncio
async def test_absent_becomes_not_found(tmp_path) -> None:  # noqa: ANN001
    service, _, _ = _service(tmp_path, {})
    env = await service.stock_info("TLKM")
    assert env.success is False
    assert env.status == "not_found"

    overview = await service.market_overview()
    assert overview.status == "not_found"
    assert "market overview" in overview.error


@pytest.mark.asyncio
async def test_invalid_requests(tmp_path) -> None:  # noqa: ANN001
    service, quotes, _ = _service(tmp_path, {})
    assert (await service.stock_info("")).status == "invalid_request"
    assert (await service.stock_info("   ")).status == "invalid_request"
    assert (await service.stock_info("WAYTOOLONGTICKER")).status == "invalid_request"
    assert (await service.historical_data("BBCA", "10y")).status == "invalid_request"
    assert (await service.search("b")).status == "invalid_request"
    assert (await service.search("  b   ")).status == "invalid_request"
    assert (await service.stock_analysis("BBCA", "1d")).status == "invalid_request"
    assert (await service.compare_stocks(["BBCA"])).status == "invalid_request"
    assert (await service.compare_stocks(["A", "B", "C", "D", "E", "F"])).status == "invalid_request"
    assert quotes.calls == 0


@pytest.mark.asyncio
async def test_historical_data_via_dataset_and_cache_key(tmp_path, recent_csv) -> None:  # noqa: ANN001
    service, _, _ = _service(tmp_path, {"BBRI": recent_csv})
    env = await service.historical_data("bbri", "5y")
    assert env.status == "ok"
    assert env.provider == "github_dataset"
    assert env.data["symbol"] == "BBRI"
    assert env.data["points"][0]["date"] == env.data["start_date"]
    assert await service._cache.get(CacheKeys.historical("BBRI", "5y")) == env.data


@pytest.mark.asyncio
async def test_search_prefers_dataset_matches(tmp_path, month_csv) -> None:  # noqa: ANN001
    service, _, _ = _service(tmp_path, {"BBCA": month_csv, "BBRI": month_csv})
    env = await service.search("bb")
    assert env.provider == "github_dataset"
    assert [r["symbol"] for r in env.data] == ["BBCA", "BBRI"]


@pytest.mark.asyncio
async def test_analysis_missing_symbol_is_not_found(tmp_path) -> None:  # noqa: ANN001
    service, _, _ = _service(tmp_path, {})
    env = await service.stock_analysis("ZZZZ")
    assert env.status == "not_found"


@pytest.mark.asyncio
async def test_compare_stocks(tmp_path, month_csv, recent_csv) -> None:  # noqa: ANN001
    service, _, _ = _service(tmp_path, {"BBCA": recent_csv, "BBRI": month_csv})
    env = await service.compare_stocks(["bbca", "bbri", "gone"], period="2y")
    assert env.status == "ok"
    # month_csv ends in January 2023, outside any two-year window from today
    assert [c["symbol"] for c in env.data["comparisons"]] == ["BBCA"]
    assert env.data["summary"]["best_performer"]["return_percent"] > 0

    stale = await service.compare_stocks(["BBRI", "GONE"], period="1m")
    assert stale.status == "error"


@pytest.mark.asyncio
async def test_available_stocks_dataset_info_and_stats(tmp_path, month_csv) -> None:  # noqa: ANN001
    service, _, _ = _service(tmp_path, {"BBCA": month_csv, "BBNI": month_csv, "TLKM": month_csv})
    stocks = await service.available_stocks()
    assert stocks.data["total_stocks"] == 3
    assert stocks.data["categories"] == {"lq45": 2, "banking": 2}
    assert (await service.available_stocks()).source == "cache"

    info = await service.dataset_info()
    assert info.data["repository"]["total_files"] == 3

    stats = await service.system_stats()
    assert set(stats.data["sources"]) == {"github_dataset", "quotes"}
    assert stats.data["cache"]["keys"] >= 1
    assert stats.to_dict()["success"] is True


@pytest.mark.asyncio
async def test_blank_ticker_never_reaches_sources_or_cache(tmp_path) -> None:  # noqa: ANN001
    service, quotes, _ = _service(tmp_path, {})
    env = await service.stock_info(" \t ")
    assert env.status == "invalid_request"
    assert quotes.calls == 0
    assert await service._cache.get(CacheKeys.stock_info("")) is MISSING

    padded = await service.stock_info("   bbca   ")
    assert padded.status == "ok"
    assert padded.data["symbol"] == "BBCA"
