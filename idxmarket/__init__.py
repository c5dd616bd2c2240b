"""idxmarket: IDX market data aggregation with provider fallback and technical analysis."""

__version__ = "0.1.0"
