"""Technical indicators over close-price series.

Every series-valued indicator returns a float array index-aligned with its
input; positions without enough history hold NaN.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from idxmarket.errors import InsufficientDataError
from idxmarket.models import TimeSeriesPoint

logger = logging.getLogger(__name__)

SMA_WINDOWS = (20, 50, 200)
EMA_WINDOWS = (12, 26)
TRADING_DAYS = 252

_BULL_THRESHOLD = 0.6
_STRONG_THRESHOLD = 0.8


def _as_array(values: Sequence[float] | np.ndarray) -> np.ndarray:
    return np.asarray(values, dtype=float)


def _last(arr: np.ndarray) -> float:
    return float(arr[-1]) if arr.size else math.nan


# ── Moving averages ───────────────────────────────────────────────────


def sma(closes: Sequence[float] | np.ndarray, window: int) -> np.ndarray:
    """Simple moving average; the first ``window - 1`` entries are NaN."""
    arr = _as_array(closes)
    out = np.full(arr.shape, np.nan)
    if window < 1 or arr.size < window:
        return out
    out[window - 1 :] = sliding_window_view(arr, window).mean(axis=1)
    return out


def ema(closes: Sequence[float] | np.ndarray, window: int) -> np.ndarray:
    """Exponential moving average seeded with the SMA of the first window."""
    arr = _as_array(closes)
    out = np.full(arr.shape, np.nan)
    if window < 1 or arr.size < window:
        return out
    k = 2.0 / (window + 1)
    prev = float(arr[:window].mean())
    out[window - 1] = prev
    for i in range(window, arr.size):
        prev = prev + (arr[i] - prev) * k
        out[i] = prev
    return out


def ema_from_values(values: Sequence[float] | np.ndarray, window: int) -> np.ndarray:
    """EMA over a series that may contain NaN.

    Leading NaNs are skipped; the seed is the mean of the defined values in
    the first window after the first defined one; a NaN after seeding carries
    the previous EMA forward.
    """
    arr = _as_array(values)
    out = np.full(arr.shape, np.nan)
    defined = np.flatnonzero(~np.isnan(arr))
    if window < 1 or defined.size == 0:
        return out
    start = int(defined[0])
    seed_at = start + window - 1
    if seed_at >= arr.size:
        return out

    head = arr[start : start + window]
    prev = float(np.nanmean(head))
    out[seed_at] = prev
    k = 2.0 / (window + 1)
    for i in range(seed_at + 1, arr.size):
        if not np.isnan(arr[i]):
            prev = prev + (arr[i] - prev) * k
        out[i] = prev
    return out


# ── Oscillators ───────────────────────────────────────────────────────


def rsi(closes: Sequence[float] | np.ndarray, window: int = 14) -> np.ndarray:
    """RSI from trailing simple averages of gains and losses.

    Element 0 is always NaN (no change); 100 where the average loss is 0.
    """
    arr = _as_array(closes)
    out = np.full(arr.shape, np.nan)
    if arr.size < window + 1 or window < 1:
        return out

    deltas = np.diff(arr)
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)
    avg_gain = sliding_window_view(gains, window).mean(axis=1)
    avg_loss = sliding_window_view(losses, window).mean(axis=1)

    with np.errstate(divide="ignore", invalid="ignore"):
        rs = avg_gain / avg_loss
        values = np.where(avg_loss == 0, 100.0, 100.0 - 100.0 / (1.0 + rs))
    out[window:] = values
    return out


@dataclass(frozen=True)
class MACDResult:
    macd: np.ndarray
    signal: np.ndarray
    histogram: np.ndarray


def macd(
    closes: Sequence[float] | np.ndarray, fast: int = 12, slow: int = 26, signal: int = 9
) -> MACDResult:
    arr = _as_array(closes)
    line = ema(arr, fast) - ema(arr, slow)
    signal_line = ema_from_values(line, signal)
    return MACDResult(macd=line, signal=signal_line, histogram=line - signal_line)


# ── Bands and levels ──────────────────────────────────────────────────


@dataclass(frozen=True)
class BollingerResult:
    upper: np.ndarray
    middle: np.ndarray
    lower: np.ndarray


def bollinger(
    closes: Sequence[float] | np.ndarray, window: int = 20, num_std: float = 2.0
) -> BollingerResult:
    """Bollinger bands using the population standard deviation."""
    arr = _as_array(closes)
    middle = sma(arr, window)
    std = np.full(arr.shape, np.nan)
    if 1 <= window <= arr.size:
        std[window - 1 :] = sliding_window_view(arr, window).std(axis=1)
    return BollingerResult(
        upper=middle + num_std * std,
        middle=middle,
        lower=middle - num_std * std,
    )


def support_resistance(points: Sequence[TimeSeriesPoint], lookback: int = 50) -> tuple[float, float]:
    """Lowest low and highest high over the last ``lookback`` points."""
    recent = points[-lookback:]
    if not recent:
        return math.nan, math.nan
    return min(p.low for p in recent), max(p.high for p in recent)


def volatility(closes: Sequence[float] | np.ndarray, period: int = 30) -> float:
    """Annualized standard deviation of daily returns over the last ``period`` closes."""
    arr = _as_array(closes)[-period:]
    if arr.size < 2:
        return 0.0
    returns = np.diff(arr) / arr[:-1]
    return float(returns.std() * math.sqrt(TRADING_DAYS))


# ── Composite summary ─────────────────────────────────────────────────


@dataclass(frozen=True)
class Summary:
    trend: str
    strength: str
    recommendation: str
    confidence: float

    def to_dict(self) -> dict[str, object]:
        return {
            "trend": self.trend,
            "strength": self.strength,
            "recommendation": self.recommendation,
            "confidence": self.confidence,
        }


NEUTRAL_SUMMARY = Summary(trend="neutral", strength="weak", recommendation="hold", confidence=0.5)


def summarize(
    closes: Sequence[float] | np.ndarray,
    sma20: np.ndarray,
    sma50: np.ndarray,
    rsi_values: np.ndarray,
    macd_result: MACDResult,
) -> Summary:
    """Weighted vote of SMA ordering, RSI extremes and MACD crossover."""
    arr = _as_array(closes)
    if arr.size == 0:
        return NEUTRAL_SUMMARY
    price = float(arr[-1])
    signals: list[tuple[str, float]] = []

    s20, s50 = _last(sma20), _last(sma50)
    if not (math.isnan(s20) or math.isnan(s50)):
        if price > s20 > s50:
            signals.append(("bullish", 0.3))
        elif price < s20 < s50:
            signals.append(("bearish", 0.3))
        else:
            signals.append(("neutral", 0.1))

    current_rsi = _last(rsi_values)
    if not math.isnan(current_rsi):
        if current_rsi > 70:
            signals.append(("bearish", 0.25))
        elif current_rsi < 30:
            signals.append(("bullish", 0.25))
        else:
            signals.append(("neutral", 0.1))

    m, s = _last(macd_result.macd), _last(macd_result.signal)
    if not (math.isnan(m) or math.isnan(s)):
        signals.append(("bullish", 0.2) if m > s else ("bearish", 0.2))

    total = sum(w for _, w in signals)
    if total == 0:
        return NEUTRAL_SUMMARY

    bullish = sum(w for sig, w in signals if sig == "bullish") / total
    bearish = sum(w for sig, w in signals if sig == "bearish") / total

    if bullish > _BULL_THRESHOLD:
        return Summary("bullish", "strong" if bullish > _STRONG_THRESHOLD else "moderate", "buy", bullish)
    if bearish > _BULL_THRESHOLD:
        return Summary("bearish", "strong" if bearish > _STRONG_THRESHOLD else "moderate", "sell", bearish)
    return NEUTRAL_SUMMARY


# ── Bundle ────────────────────────────────────────────────────────────


def _series_to_list(arr: np.ndarray) -> list[float | None]:
    return [None if math.isnan(v) else float(v) for v in arr.tolist()]


@dataclass
class IndicatorBundle:
    sma: dict[int, np.ndarray] = field(default_factory=dict)
    ema: dict[int, np.ndarray] = field(default_factory=dict)
    rsi: np.ndarray = field(default_factory=lambda: np.array([]))
    macd: MACDResult | None = None
    bollinger: BollingerResult | None = None
    support: float = math.nan
    resistance: float = math.nan
    volatility: float = 0.0
    summary: Summary = NEUTRAL_SUMMARY

    def to_dict(self) -> dict[str, object]:
        """JSON-safe view; NaN becomes ``None``."""
        out: dict[str, object] = {
            "sma": {str(w): _series_to_list(v) for w, v in self.sma.items()},
            "ema": {str(w): _series_to_list(v) for w, v in self.ema.items()},
            "rsi": _series_to_list(self.rsi),
            "support": None if math.isnan(self.support) else self.support,
            "resistance": None if math.isnan(self.resistance) else self.resistance,
            "volatility": self.volatility,
            "summary": self.summary.to_dict(),
        }
        if self.macd is not None:
            out["macd"] = {
                "macd": _series_to_list(self.macd.macd),
                "signal": _series_to_list(self.macd.signal),
                "histogram": _series_to_list(self.macd.histogram),
            }
        if self.bollinger is not None:
            out["bollinger"] = {
                "upper": _series_to_list(self.bollinger.upper),
                "middle": _series_to_list(self.bollinger.middle),
                "lower": _series_to_list(self.bollinger.lower),
            }
        return out


def compute_indicators(points: Sequence[TimeSeriesPoint]) -> IndicatorBundle:
    if len(points) < 2:
        raise InsufficientDataError(f"need at least 2 points, got {len(points)}")

    closes = np.array([p.close for p in points], dtype=float)
    sma_map = {w: sma(closes, w) for w in SMA_WINDOWS}
    ema_map = {w: ema(closes, w) for w in EMA_WINDOWS}
    rsi_values = rsi(closes)
    macd_result = macd(closes)
    support, resistance = support_resistance(points)

    bundle = IndicatorBundle(
        sma=sma_map,
        ema=ema_map,
        rsi=rsi_values,
        macd=macd_result,
        bollinger=bollinger(closes),
        support=support,
        resistance=resistance,
        volatility=volatility(closes),
        summary=summarize(closes, sma_map[20], sma_map[50], rsi_values, macd_result),
    )
    logger.debug("Computed indicators over %d points: %s", len(points), bundle.summary)
    return bundle
