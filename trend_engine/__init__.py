"""
Trend Engine - MACD trend-following backtester and parameter optimizer.

This package provides:
- Indicators: EMA, MACD and Donchian channel streams
- Backtest: Replay a strategy over historical bars with risk-based sizing
- Optimize: Search the strategy parameter space for the best configuration
"""

__version__ = "1.0.0"
__author__ = "Trend Engine Team"
