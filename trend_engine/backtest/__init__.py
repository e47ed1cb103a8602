"""Backtesting engine, position sizing and performance metrics."""

from .backtester import Backtester, BacktestResult, RunStatus, SkippedTrade, Trade
from .metrics import calculate_metrics, MetricsResult
from .sizing import check_margin, fill_price, size

__all__ = [
    "Backtester",
    "BacktestResult",
    "RunStatus",
    "SkippedTrade",
    "Trade",
    "calculate_metrics",
    "MetricsResult",
    "check_margin",
    "fill_price",
    "size"
]
