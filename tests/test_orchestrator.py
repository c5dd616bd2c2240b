from __future__ import annotations

import asyncio
import json
from datetime import date, timedelta

import pytest

from idxmarket.errors import DatasetUnavailable
from idxmarket.historical.orchestrator import HistoricalDataOrchestrator
from idxmarket.historical.parser import parse_series
from idxmarket.historical.store import SeriesStore
from idxmarket.models import RepositoryInfo
from idxmarket.utils import utc_now


class FakeDatasetClient:
    def __init__(self, csv_text: str, *, delay: float = 0.0, missing: set[str] | None = None) -> None:
        self.csv_text = csv_text
        self.delay = delay
        self.missing = missing or set()
        self.downloads: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def download_csv(self, symbol: str, directory: str | None = None) -> str:
        self.downloads.append(symbol)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if symbol in self.missing:
                raise DatasetUnavailable(f"stock data not available for {symbol}")
            return self.csv_text
        finally:
            self.in_flight -= 1

    async def list_symbols(self) -> list[str]:
        return ["BBCA", "BBRI", "TLKM"]

    async def repository_info(self) -> RepositoryInfo:
        return RepositoryInfo(last_updated="2024-05-01T00:00:00Z", total_files=3, available_symbols=["BBCA", "BBRI", "TLKM"])


def _orchestrator(tmp_path, client: FakeDatasetClient, **kwargs) -> HistoricalDataOrchestrator:  # noqa: ANN001
    return HistoricalDataOrchestrator(client, SeriesStore(tmp_path), **kwargs)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_get_series_persists_and_reuses_record(tmp_path, month_csv) -> None:  # noqa: ANN001
    client = FakeDatasetClient(month_csv)
    orch = _orchestrator(tmp_path, client)

    first = await orch.get_series("bbca")
    assert first.symbol == "BBCA"
    assert first.total_points == 30
    assert (tmp_path / "historical" / "BBCA.json").exists()
    meta = json.loads((tmp_path / "metadata" / "BBCA.json").read_text())
    assert meta["data_points"] == 30
    assert meta["date_range"] == {"start": "2023-01-02", "end": "2023-01-31"}
    assert meta["raw_byte_size"] > 0

    second = await orch.get_series("BBCA")
    assert second == first
    assert client.downloads == ["BBCA"]


@pytest.mark.asyncio
async def test_stale_record_is_refetched(tmp_path, month_csv) -> None:  # noqa: ANN001
    client = FakeDatasetClient(month_csv)
    now = [utc_now()]
    orch = _orchestrator(tmp_path, client, clock=lambda: now[0])

    await orch.get_series("BBCA", cache_ttl=timedelta(hours=1))
    now[0] += timedelta(hours=2)
    await orch.get_series("BBCA", cache_ttl=timedelta(hours=1))
    assert client.downloads == ["BBCA", "BBCA"]


@pytest.mark.asyncio
async def test_force_refresh_and_no_cache(tmp_path, month_csv) -> None:  # noqa: ANN001
    client = FakeDatasetClient(month_csv)
    orch = _orchestrator(tmp_path, client)

    await orch.get_series("TLKM", use_cache=False)
    assert not (tmp_path / "metadata" / "TLKM.json").exists()
    await orch.get_series("BBRI")
    await orch.get_series("BBRI", force_refresh=True)
    assert client.downloads == ["TLKM", "BBRI", "BBRI"]


@pytest.mark.asyncio
async def test_records_survive_a_new_orchestrator(tmp_path, month_csv) -> None:  # noqa: ANN001
    await _orchestrator(tmp_path, FakeDatasetClient(month_csv)).get_series("BBCA")
    client = FakeDatasetClient(month_csv)
    series = await _orchestrator(tmp_path, client).get_series("BBCA")
    assert series.total_points == 30
    assert client.downloads == []


@pytest.mark.asyncio
async def test_get_multiple_bounds_concurrency_and_skips_failures(tmp_path, month_csv) -> None:  # noqa: ANN001
    client = FakeDatasetClient(month_csv, delay=0.01, missing={"GONE"})
    orch = _orchestrator(tmp_path, client)
    symbols = ["A1", "A2", "A3", "A4", "GONE", "A6", "A7"]

    result = await orch.get_multiple(symbols)
    assert set(result) == {"A1", "A2", "A3", "A4", "A6", "A7"}
    assert client.max_in_flight <= 5
    assert len(client.downloads) == 7


@pytest.mark.asyncio
async def test_period_and_range_views(tmp_path, month_csv) -> None:  # noqa: ANN001
    client = FakeDatasetClient(month_csv)
    now = [utc_now().replace(year=2023, month=1, day=31)]
    orch = _orchestrator(tmp_path, client, clock=lambda: now[0])

    week = await orch.get_series_for_period("BBCA", "1w")
    assert [p.date for p in week][0] == date(2023, 1, 24)
    window = await orch.get_series_for_range("BBCA", date(2023, 1, 10), date(2023, 1, 12))
    assert len(window) == 3


@pytest.mark.asyncio
async def test_repository_views_and_clear(tmp_path, month_csv) -> None:  # noqa: ANN001
    orch = _orchestrator(tmp_path, FakeDatasetClient(month_csv))
    assert await orch.is_available("bbri") is True
    assert await orch.is_available("XXXX") is False

    await orch.get_multiple(["BBCA", "BBRI"])
    cached = await orch.cached_metadata()
    assert [m.symbol for m in cached] == ["BBCA", "BBRI"]

    report = await orch.repository_metadata()
    assert report["repository"]["total_files"] == 3
    assert report["cache"]["cached_symbols"] == 2
    assert report["cache"]["total_data_points"] == 60
    assert report["cache"]["oldest_data"] == "2023-01-02"

    assert await orch.clear_cache("bbca") == 2
    assert [m.symbol for m in await orch.cached_metadata()] == ["BBRI"]
    await orch.clear_cache()
    assert await orch.cached_metadata() == []


@pytest.mark.asyncio
async def test_corrupt_record_is_a_miss(tmp_path, month_csv) -> None:  # noqa: ANN001
    client = FakeDatasetClient(month_csv)
    orch = _orchestrator(tmp_path, client)
    await orch.get_series("BBCA")
    (tmp_path / "metadata" / "BBCA.json").write_text("{not json")
    await orch.get_series("BBCA")
    assert client.downloads == ["BBCA", "BBCA"]


@pytest.mark.asyncio
async def test_concurrent_saves_of_one_symbol(tmp_path, month_csv) -> None:  # noqa: ANN001
    store = SeriesStore(tmp_path)
    series = parse_series(month_csv, "BBCA")

    saved = await asyncio.gather(*[store.save(series, len(month_csv)) for _ in range(8)])
    assert len(saved) == 8
    assert await store.load_series("BBCA") == series
    assert sorted(p.name for p in (tmp_path / "historical").iterdir()) == ["BBCA.json"]
    assert sorted(p.name for p in (tmp_path / "metadata").iterdir()) == ["BBCA.json"]

    client = FakeDatasetClient(month_csv, delay=0.01)
    result = await _orchestrator(tmp_path, client).get_multiple(["BBRI", "bbri"], force_refresh=True)
    assert "BBRI" in result
    assert len(client.downloads) == 2
