from __future__ import annotations

import pytest

from idxmarket.bootstrap import build_services
from idxmarket.cache import MemoryCache
from idxmarket.config import Settings
from idxmarket.main import _build_parser, _dispatch
from idxmarket.service import Envelope


class RecordingService:
    def __init__(self) -> None:
        self.calls: list[tuple] = []

    def __getattr__(self, name: str):  # noqa: ANN204
        async def _op(*args):  # noqa: ANN002, ANN202
            self.calls.append((name, *args))
            return Envelope(True, "ok")

        return _op


@pytest.mark.parametrize(
    ("argv", "expected"),
    [
        (["overview"], ("market_overview",)),
        (["stats"], ("system_stats",)),
        (["info", "bbca"], ("stock_info", "bbca")),
        (["history", "BBRI", "--period", "6m"], ("historical_data", "BBRI", "6m")),
        (["analyze", "TLKM"], ("stock_analysis", "TLKM", "1y")),
        (["compare", "BBCA", "BBRI", "--period", "3m"], ("compare_stocks", ["BBCA", "BBRI"], "3m")),
    ],
)
@pytest.mark.asyncio
async def test_commands_dispatch_to_service(argv: list[str], expected: tuple) -> None:
    service = RecordingService()
    args = _build_parser().parse_args(argv)
    envelope = await _dispatch(service, args)  # type: ignore[arg-type]
    assert envelope.success
    assert service.calls == [expected]


def test_command_is_required() -> None:
    with pytest.raises(SystemExit):
        _build_parser().parse_args([])


@pytest.mark.asyncio
async def test_build_services_wires_sources_by_priority(tmp_path) -> None:  # noqa: ANN001
    services = build_services(Settings(_env_file=None, data_dir=tmp_path, cache_type="memory"))
    try:
        assert isinstance(services.cache, MemoryCache)
        assert [s.name for s in services.coordinator.sources] == [
            "github_dataset",
            "yahoo_finance",
            "web_scraping",
        ]
        assert services.coordinator.healthy_sources() == ["github_dataset", "yahoo_finance", "web_scraping"]
    finally:
        await services.aclose()
