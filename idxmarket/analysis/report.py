"""Per-stock analysis report and multi-stock performance comparison."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from idxmarket.analysis.indicators import IndicatorBundle, compute_indicators
from idxmarket.errors import InsufficientDataError
from idxmarket.models import TimeSeriesPoint


def _average_volume(points: Sequence[TimeSeriesPoint]) -> float:
    volumes = [p.volume for p in points if p.volume > 0]
    return sum(volumes) / len(volumes) if volumes else 0.0


@dataclass
class PriceAnalysis:
    current_price: float
    price_change: float
    price_change_percent: float
    high_52_week: float
    low_52_week: float
    average_volume: float


@dataclass
class StockAnalysis:
    symbol: str
    period: str
    data_points: int
    price: PriceAnalysis
    indicators: IndicatorBundle

    def to_dict(self) -> dict[str, Any]:
        indicators = self.indicators.to_dict()
        summary = indicators.pop("summary")
        return {
            "symbol": self.symbol,
            "period": self.period,
            "data_points": self.data_points,
            "price_analysis": vars(self.price).copy(),
            "technical_indicators": indicators,
            "summary": summary,
        }


def analyze_stock(points: Sequence[TimeSeriesPoint], symbol: str, period: str) -> StockAnalysis:
    """Price statistics over the window plus the full indicator bundle."""
    if len(points) < 2:
        raise InsufficientDataError(f"{symbol}: insufficient data for analysis")

    last, prev = points[-1], points[-2]
    change = last.close - prev.close
    price = PriceAnalysis(
        current_price=last.close,
        price_change=change,
        price_change_percent=change / prev.close * 100,
        high_52_week=max(p.high for p in points),
        low_52_week=min(p.low for p in points),
        average_volume=_average_volume(points),
    )
    return StockAnalysis(
        symbol=symbol.upper(),
        period=period,
        data_points=len(points),
        price=price,
        indicators=compute_indicators(points),
    )


# ── Comparison ────────────────────────────────────────────────────────


@dataclass
class Performance:
    symbol: str
    start_price: float
    end_price: float
    return_percent: float
    highest_price: float
    lowest_price: float
    average_volume: float
    data_points: int


@dataclass
class Comparison:
    period: str
    performances: list[Performance] = field(default_factory=list)
    best: Performance | None = None
    worst: Performance | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "period": self.period,
            "comparisons": [vars(p).copy() for p in self.performances],
            "summary": {
                "best_performer": vars(self.best).copy() if self.best else None,
                "worst_performer": vars(self.worst).copy() if self.worst else None,
            },
        }


def performance(symbol: str, points: Sequence[TimeSeriesPoint]) -> Performance | None:
    if not points:
        return None
    start, end = points[0].close, points[-1].close
    return Performance(
        symbol=symbol.upper(),
        start_price=start,
        end_price=end,
        return_percent=(end - start) / start * 100,
        highest_price=max(p.high for p in points),
        lowest_price=min(p.low for p in points),
        average_volume=_average_volume(points),
        data_points=len(points),
    )


def compare_performance(
    windows: Mapping[str, Sequence[TimeSeriesPoint]], period: str
) -> Comparison:
    """Return per symbol over the given windows, with best and worst performer.

    Symbols whose window is empty are left out; at least one must remain.
    """
    performances = [p for sym, pts in windows.items() if (p := performance(sym, pts)) is not None]
    if not performances:
        raise InsufficientDataError("no symbol has data for the requested period")
    return Comparison(
        period=period,
        performances=performances,
        best=max(performances, key=lambda p: p.return_percent),
        worst=min(performances, key=lambda p: p.return_percent),
    )
