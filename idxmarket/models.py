"""Value types passed between adapters, the coordinator, and the service boundary."""

from __future__ import annotations

import dataclasses
import enum
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")


def _jsonable(value: Any) -> Any:
    if isinstance(value, _Serializable):
        return value.to_dict()
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class _Serializable:
    """``to_dict`` for dataclasses, with dates rendered as ISO strings."""

    def to_dict(self) -> dict[str, Any]:
        return {
            f.name: _jsonable(getattr(self, f.name))
            for f in dataclasses.fields(self)  # type: ignore[arg-type]
        }


# ── Historical series ────────────────────────────────────────────────


@dataclass(frozen=True)
class TimeSeriesPoint(_Serializable):
    date: date
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0
    adjusted_close: float | None = None


@dataclass(frozen=True)
class ParsedSeries(_Serializable):
    """A validated, ascending, date-unique series for one symbol."""

    symbol: str
    points: tuple[TimeSeriesPoint, ...]
    start_date: date
    end_date: date
    total_points: int
    columns: tuple[str, ...] = ()

    @classmethod
    def from_points(
        cls, symbol: str, points: list[TimeSeriesPoint], columns: list[str] | tuple[str, ...] = ()
    ) -> ParsedSeries:
        return cls(
            symbol=symbol.upper(),
            points=tuple(points),
            start_date=points[0].date,
            end_date=points[-1].date,
            total_points=len(points),
            columns=tuple(columns),
        )


@dataclass(frozen=True)
class StockMetadata(_Serializable):
    symbol: str
    last_updated: datetime
    data_points: int
    start_date: date
    end_date: date
    raw_byte_size: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "last_updated": self.last_updated.isoformat(),
            "data_points": self.data_points,
            "date_range": {"start": self.start_date.isoformat(), "end": self.end_date.isoformat()},
            "raw_byte_size": self.raw_byte_size,
        }


@dataclass(frozen=True)
class RepositoryInfo(_Serializable):
    last_updated: str | None
    total_files: int
    available_symbols: list[str]


# ── Capability payloads ──────────────────────────────────────────────


@dataclass
class StockInfo(_Serializable):
    symbol: str
    name: str
    current_price: float
    price_change: float
    price_change_percent: float
    day_high: float
    day_low: float
    volume: float
    market_cap: float | None = None
    pe_ratio: float | None = None
    week52_high: float | None = None
    week52_low: float | None = None
    last_updated: datetime | None = None


@dataclass
class StockSummary(_Serializable):
    symbol: str
    name: str
    price: float
    change_percent: float


@dataclass
class MarketOverview(_Serializable):
    index_value: float
    index_change: float
    index_change_percent: float
    trading_volume: float
    trading_value: float
    market_status: str
    top_gainers: list[StockSummary] = field(default_factory=list)
    top_losers: list[StockSummary] = field(default_factory=list)
    foreign_net_flow: float | None = None
    last_updated: datetime | None = None


@dataclass
class HistoricalData(_Serializable):
    symbol: str
    period: str
    points: list[TimeSeriesPoint]
    total_points: int
    start_date: date | None
    end_date: date | None
    source: str
    last_updated: datetime | None = None


@dataclass
class SectorData(_Serializable):
    performance: float
    count: int
    symbols: list[str]


@dataclass
class SectorPerformance(_Serializable):
    sectors: dict[str, SectorData]
    best_sector: str
    worst_sector: str
    last_updated: datetime | None = None


@dataclass
class SearchResult(_Serializable):
    symbol: str
    name: str
    sector: str | None = None
    market: str | None = None
    current_price: float | None = None
    change_percent: float | None = None


# ── Capability results ───────────────────────────────────────────────


@dataclass(frozen=True)
class Found(Generic[T]):
    value: T
    source: str


@dataclass(frozen=True)
class Absent:
    """No value; ``reason`` is one of no_data, timeout, error, unsupported, exhausted."""

    source: str | None
    reason: str
    error: Exception | None = None


SourceResult = Union[Found[T], Absent]
