"""Source adapter contract and the monitoring wrapper that owns timeouts and stats.

Adapters implement whichever capabilities they declare and may raise freely.
:class:`MonitoredSource` is the only place that applies the per-source time
budget, records success/error statistics and recomputes health; nothing an
adapter raises gets past it.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Protocol, runtime_checkable

from idxmarket.errors import AdapterTimeout, AdapterUnavailable
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
from idxmarket.utils import utc_now

logger = logging.getLogger(__name__)

_HEALTH_MIN_SAMPLE = 10
_HEALTH_MAX_ERROR_RATE = 0.5


class Priority(enum.IntEnum):
    LOW = 1
    MEDIUM = 2
    HIGH = 3


class Capability(str, enum.Enum):
    STOCK_INFO = "stock_info"
    MARKET_OVERVIEW = "market_overview"
    HISTORICAL = "historical_series"
    SECTOR_PERFORMANCE = "sector_performance"
    SEARCH = "search"


@runtime_checkable
class SourceAdapter(Protocol):
    name: str
    priority: Priority
    timeout_ms: int
    capabilities: frozenset[Capability]

    async def stock_info(self, symbol: str) -> StockInfo | None: ...

    async def market_overview(self) -> MarketOverview | None: ...

    async def historical_series(self, symbol: str, period: str) -> HistoricalData | None: ...

    async def sector_performance(self) -> SectorPerformance | None: ...

    async def search(self, query: str) -> list[SearchResult] | None: ...


class BaseAdapter:
    """Convenience base: undeclared capabilities answer ``None``."""

    name = "base"
    priority = Priority.LOW
    timeout_ms = 10_000
    capabilities: frozenset[Capability] = frozenset()

    async def stock_info(self, symbol: str) -> StockInfo | None:
        return None

    async def market_overview(self) -> MarketOverview | None:
        return None

    async def historical_series(self, symbol: str, period: str) -> HistoricalData | None:
        return None

    async def sector_performance(self) -> SectorPerformance | None:
        return None

    async def search(self, query: str) -> list[SearchResult] | None:
        return None

    async def aclose(self) -> None:
        return None


@dataclass
class AdapterStats:
    success_count: int = 0
    error_count: int = 0
    average_response_time_ms: float = 0.0
    is_healthy: bool = True
    last_request_at: datetime | None = None

    @property
    def total(self) -> int:
        return self.success_count + self.error_count

    def record(self, ok: bool, elapsed_ms: float, at: datetime) -> None:
        if ok:
            self.success_count += 1
        else:
            self.error_count += 1
        n = self.total
        self.average_response_time_ms += (elapsed_ms - self.average_response_time_ms) / n
        self.last_request_at = at
        error_rate = self.error_count / max(n, _HEALTH_MIN_SAMPLE)
        self.is_healthy = error_rate <= _HEALTH_MAX_ERROR_RATE

    def to_dict(self) -> dict[str, Any]:
        return {
            "success_count": self.success_count,
            "error_count": self.error_count,
            "average_response_time_ms": round(self.average_response_time_ms, 2),
            "is_healthy": self.is_healthy,
            "last_request_at": self.last_request_at.isoformat() if self.last_request_at else None,
        }


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (list, tuple, dict)) and not value:
        return True
    return False


def _drain(task: asyncio.Future) -> None:
    """Consume the outcome of an abandoned call so it is never reported as unretrieved."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("Abandoned call finished with %r", exc)


class MonitoredSource:
    """Wraps one adapter: time budget, error containment, statistics, health."""

    def __init__(
        self,
        adapter: SourceAdapter,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.adapter = adapter
        self.stats = AdapterStats()
        self._clock = clock

    @property
    def name(self) -> str:
        return self.adapter.name

    @property
    def priority(self) -> Priority:
        return Priority(self.adapter.priority)

    @property
    def timeout_ms(self) -> int:
        return self.adapter.timeout_ms

    def supports(self, capability: Capability) -> bool:
        return capability in self.adapter.capabilities

    async def call(self, capability: Capability, *args: Any) -> SourceResult[Any]:
        if not self.supports(capability):
            return Absent(self.name, "unsupported")

        label = f"{self.name}.{capability.value}"
        method = getattr(self.adapter, capability.value)
        started = self._clock()
        task = asyncio.ensure_future(method(*args))
        try:
            done, _ = await asyncio.wait({task}, timeout=self.timeout_ms / 1000)
        except asyncio.CancelledError:
            task.cancel()
            raise
        elapsed_ms = (self._clock() - started) * 1000

        # Past the budget the call keeps running; only its outcome is dropped.
        if not done:
            task.add_done_callback(_drain)
            self.stats.record(False, elapsed_ms, utc_now())
            logger.warning("%s timed out after %dms", label, self.timeout_ms)
            return Absent(
                self.name,
                "timeout",
                AdapterTimeout(self.name, f"{capability.value} timed out after {self.timeout_ms}ms"),
            )

        if task.cancelled():
            self.stats.record(False, elapsed_ms, utc_now())
            return Absent(self.name, "error", AdapterUnavailable(self.name, f"{capability.value} cancelled"))

        exc = task.exception()
        if exc is not None:
            self.stats.record(False, elapsed_ms, utc_now())
            logger.warning("%s failed in %.0fms: %s", label, elapsed_ms, exc)
            err = AdapterUnavailable(self.name, f"{capability.value} failed: {exc}")
            err.__cause__ = exc
            return Absent(self.name, "error", err)

        value = task.result()
        self.stats.record(True, elapsed_ms, utc_now())
        if _is_empty(value):
            logger.debug("%s returned no data in %.0fms", label, elapsed_ms)
            return Absent(
                self.name,
                "no_data",
                AdapterUnavailable(self.name, f"{capability.value} returned no data"),
            )
        logger.debug("%s completed in %.0fms", label, elapsed_ms)
        return Found(value, self.name)
