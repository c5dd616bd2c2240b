"""Market data sources and the fallback coordinator that routes between them."""

from idxmarket.marketdata.adapter import (
    AdapterStats,
    BaseAdapter,
    Capability,
    MonitoredSource,
    Priority,
    SourceAdapter,
)
from idxmarket.marketdata.coordinator import FallbackCoordinator

__all__ = [
    "AdapterStats",
    "BaseAdapter",
    "Capability",
    "FallbackCoordinator",
    "MonitoredSource",
    "Priority",
    "SourceAdapter",
]
