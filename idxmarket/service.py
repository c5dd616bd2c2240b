"""Boundary service: validated requests in, uniform response envelopes out.

Every operation returns an :class:`Envelope`. A capability that no source
could answer is ``not_found``; ``error`` is reserved for exceptions that
escaped the lower layers.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Awaitable, Callable, Literal

from pydantic import BaseModel, Field, ValidationError, field_validator

from idxmarket.analysis.report import analyze_stock, compare_performance
from idxmarket.cache import MISSING, Cache, CacheKeys
from idxmarket.config import Settings
from idxmarket.errors import DatasetUnavailable
from idxmarket.historical.orchestrator import HistoricalDataOrchestrator
from idxmarket.historical.parser import slice_for_period
from idxmarket.marketdata.coordinator import FallbackCoordinator
from idxmarket.models import Absent, SourceResult

logger = logging.getLogger(__name__)

Period = Literal["1d", "1w", "1m", "3m", "6m", "1y", "2y", "5y"]
AnalysisPeriod = Literal["1m", "3m", "6m", "1y", "2y", "5y"]
ComparePeriod = Literal["1m", "3m", "6m", "1y", "2y"]

_LQ45_SAMPLE = {"BBCA", "BBRI", "BMRI", "TLKM", "ASII", "UNVR", "GGRM", "KLBF"}
_COMPARE_CACHE_TTL = timedelta(hours=1)


# ── Requests ──────────────────────────────────────────────────────────


class TickerRequest(BaseModel):
    ticker: str = Field(min_length=1, max_length=10)

    @field_validator("ticker", mode="before")
    @classmethod
    def _normalize(cls, v: object) -> object:
        return v.strip().upper() if isinstance(v, str) else v


class HistoricalRequest(TickerRequest):
    period: Period = "1y"


class AnalysisRequest(TickerRequest):
    period: AnalysisPeriod = "1y"


class SearchRequest(BaseModel):
    query: str = Field(min_length=2, max_length=50)

    @field_validator("query", mode="before")
    @classmethod
    def _strip(cls, v: object) -> object:
        return v.strip() if isinstance(v, str) else v


class CompareRequest(BaseModel):
    tickers: list[str] = Field(min_length=2, max_length=5)
    period: ComparePeriod = "1y"

    @field_validator("tickers")
    @classmethod
    def _normalize(cls, v: list[str]) -> list[str]:
        out = [t.strip().upper() for t in v]
        if any(not t or len(t) > 10 for t in out):
            raise ValueError("each ticker must be 1-10 characters")
        return out


# ── Envelope ──────────────────────────────────────────────────────────


@dataclass
class Envelope:
    success: bool
    status: Literal["ok", "not_found", "invalid_request", "error"]
    data: Any = None
    error: str | None = None
    source: str | None = None
    provider: str | None = None
    response_time_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "success": self.success,
            "status": self.status,
            "response_time_ms": round(self.response_time_ms, 2),
        }
        for key in ("data", "error", "source", "provider"):
            value = getattr(self, key)
            if value is not None:
                out[key] = value
        return out


def _payload(value: Any) -> Any:
    if isinstance(value, list):
        return [_payload(v) for v in value]
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return value


def _not_found(result: Absent, what: str) -> Envelope:
    detail = f" ({result.error})" if result.error else ""
    return Envelope(False, "not_found", error=f"{what} not available from any source{detail}")


class MarketDataService:
    def __init__(
        self,
        coordinator: FallbackCoordinator,
        cache: Cache,
        orchestrator: HistoricalDataOrchestrator,
        settings: Settings,
    ) -> None:
        self._coordinator = coordinator
        self._cache = cache
        self._orchestrator = orchestrator
        self._settings = settings

    async def _run(
        self, operation: str, params: dict[str, Any], fn: Callable[[], Awaitable[Envelope]]
    ) -> Envelope:
        started = time.perf_counter()
        try:
            envelope = await fn()
        except ValidationError as exc:
            envelope = Envelope(False, "invalid_request", error=str(exc))
        except DatasetUnavailable as exc:
            envelope = Envelope(False, "not_found", error=str(exc))
        except Exception as exc:
            logger.error("%s %s failed", operation, params, exc_info=True)
            envelope = Envelope(False, "error", error=str(exc))
        envelope.response_time_ms = (time.perf_counter() - started) * 1000
        logger.info("%s %s -> %s in %.0fms", operation, params, envelope.status, envelope.response_time_ms)
        return envelope

    async def _cache_first(
        self,
        key: str,
        ttl: int,
        what: str,
        fetch: Callable[[], Awaitable[SourceResult[Any]]],
    ) -> Envelope:
        cached = await self._cache.get(key)
        if cached is not MISSING:
            return Envelope(True, "ok", data=cached, source="cache")

        result = await fetch()
        if isinstance(result, Absent):
            return _not_found(result, what)
        data = _payload(result.value)
        await self._cache.set(key, data, ttl)
        return Envelope(True, "ok", data=data, source="live", provider=result.source)

    # ── live capabilities ──────────────────────────────────────────────

    async def market_overview(self) -> Envelope:
        async def _go() -> Envelope:
            return await self._cache_first(
                CacheKeys.market_overview(),
                self._settings.cache_ttl("market_overview"),
                "market overview",
                self._coordinator.market_overview,
            )

        return await self._run("market_overview", {}, _go)

    async def stock_info(self, ticker: str) -> Envelope:
        async def _go() -> Envelope:
            req = TickerRequest(ticker=ticker)
            return await self._cache_first(
                CacheKeys.stock_info(req.ticker),
                self._settings.cache_ttl("stock_info"),
                f"stock info for {req.ticker}",
                lambda: self._coordinator.stock_info(req.ticker),
            )

        return await self._run("stock_info", {"ticker": ticker}, _go)

    async def historical_data(self, ticker: str, period: str = "1y") -> Envelope:
        async def _go() -> Envelope:
            req = HistoricalRequest(ticker=ticker, period=period)
            return await self._cache_first(
                CacheKeys.historical(req.ticker, req.period),
                self._settings.cache_ttl("historical"),
                f"historical data for {req.ticker}",
                lambda: self._coordinator.historical_series(req.ticker, req.period),
            )

        return await self._run("historical_data", {"ticker": ticker, "period": period}, _go)

    async def sector_performance(self) -> Envelope:
        async def _go() -> Envelope:
            return await self._cache_first(
                CacheKeys.sector_performance(),
                self._settings.cache_ttl("sector"),
                "sector performance",
                self._coordinator.sector_performance,
            )

        return await self._run("sector_performance", {}, _go)

    async def search(self, query: str) -> Envelope:
        async def _go() -> Envelope:
            req = SearchRequest(query=query)
            return await self._cache_first(
                CacheKeys.search(req.query),
                self._settings.cache_ttl("stock_info"),
                f"stocks matching {req.query!r}",
                lambda: self._coordinator.search(req.query),
            )

        return await self._run("search", {"query": query}, _go)

    # ── dataset-backed analysis ────────────────────────────────────────

    async def stock_analysis(self, ticker: str, period: str = "1y") -> Envelope:
        async def _go() -> Envelope:
            req = AnalysisRequest(ticker=ticker, period=period)
            points = await self._orchestrator.get_series_for_period(
                req.ticker, req.period, cache_ttl=self._settings.historical_cache_ttl
            )
            analysis = analyze_stock(points, req.ticker, req.period)
            return Envelope(True, "ok", data=analysis.to_dict(), source="dataset")

        return await self._run("stock_analysis", {"ticker": ticker, "period": period}, _go)

    async def compare_stocks(self, tickers: list[str], period: str = "1y") -> Envelope:
        async def _go() -> Envelope:
            req = CompareRequest(tickers=tickers, period=period)
            series = await self._orchestrator.get_multiple(req.tickers, cache_ttl=_COMPARE_CACHE_TTL)
            windows = {sym: slice_for_period(s, req.period) for sym, s in series.items()}
            comparison = compare_performance(windows, req.period)
            return Envelope(True, "ok", data=comparison.to_dict(), source="dataset")

        return await self._run("compare_stocks", {"tickers": tickers, "period": period}, _go)

    async def available_stocks(self) -> Envelope:
        async def _go() -> Envelope:
            key = CacheKeys.static("available_stocks")
            cached = await self._cache.get(key)
            if cached is not MISSING:
                return Envelope(True, "ok", data=cached, source="cache")

            symbols = sorted(await self._orchestrator.list_available_symbols())
            if not symbols:
                return Envelope(False, "not_found", error="dataset listing unavailable")
            data = {
                "total_stocks": len(symbols),
                "stocks": symbols,
                "categories": {
                    "lq45": sum(1 for s in symbols if s in _LQ45_SAMPLE),
                    "banking": sum(1 for s in symbols if s.startswith("BB") or "BANK" in s),
                },
            }
            await self._cache.set(key, data, self._settings.cache_ttl("static"))
            return Envelope(True, "ok", data=data, source="dataset")

        return await self._run("available_stocks", {}, _go)

    async def dataset_info(self) -> Envelope:
        async def _go() -> Envelope:
            data = await self._orchestrator.repository_metadata()
            return Envelope(True, "ok", data=data, source="dataset")

        return await self._run("dataset_info", {}, _go)

    async def system_stats(self) -> Envelope:
        async def _go() -> Envelope:
            cache_stats = await self._cache.stats()
            data = {
                "sources": self._coordinator.stats(),
                "healthy_sources": self._coordinator.healthy_sources(),
                "cache": cache_stats.to_dict(),
                "settings": {
                    "app_name": self._settings.app_name,
                    "cache_type": self._settings.cache_type,
                    "requests_per_minute": self._settings.requests_per_minute,
                    "historical_cache_hours": self._settings.historical_cache_hours,
                },
            }
            return Envelope(True, "ok", data=data, source="live")

        return await self._run("system_stats", {}, _go)
