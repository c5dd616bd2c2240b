"""Historical dataset ingestion: raw-text client, parser, store, orchestrator."""

from idxmarket.historical.client import DatasetClient
from idxmarket.historical.orchestrator import HistoricalDataOrchestrator
from idxmarket.historical.parser import filter_by_date_range, parse_series, slice_for_period
from idxmarket.historical.store import SeriesStore

__all__ = [
    "DatasetClient",
    "HistoricalDataOrchestrator",
    "SeriesStore",
    "filter_by_date_range",
    "parse_series",
    "slice_for_period",
]
