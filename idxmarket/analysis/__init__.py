"""Technical indicators and analysis reports."""

from idxmarket.analysis.indicators import IndicatorBundle, Summary, compute_indicators
from idxmarket.analysis.report import StockAnalysis, analyze_stock, compare_performance

__all__ = [
    "IndicatorBundle",
    "StockAnalysis",
    "Summary",
    "analyze_stock",
    "compare_performance",
    "compute_indicators",
]
