"""Error taxonomy shared by the parser, indicator engine, and source adapters."""

from __future__ import annotations


class MarketDataError(Exception):
    """Base class for every error raised inside idxmarket."""


class ParseError(MarketDataError):
    """Raw delimited text is structurally unusable (e.g. no data rows)."""


class DataError(MarketDataError):
    """Parsing finished but no row survived validation."""


class InsufficientDataError(MarketDataError):
    """Too few points to compute indicators."""


class DatasetUnavailable(MarketDataError):
    """The historical dataset has no file for the requested symbol."""


class AdapterError(MarketDataError):
    """A source adapter failed to produce a value.

    Never raised past the adapter boundary: the monitoring wrapper attaches
    instances of the subclasses to an ``Absent`` result instead.
    """

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source


class AdapterTimeout(AdapterError):
    """Capability exceeded its configured time budget."""


class AdapterUnavailable(AdapterError):
    """Capability raised or returned nothing."""
