"""
Scoring functions for ranking backtest results.

A scorer maps a BacktestResult to a float; higher is better.
"""

from typing import Callable, Dict

from ..backtest.backtester import BacktestResult

Scorer = Callable[[BacktestResult], float]


def net_profit(result: BacktestResult) -> float:
    return result.metrics.net_profit


def total_return(result: BacktestResult) -> float:
    return result.metrics.total_return_pct


def return_over_drawdown(result: BacktestResult) -> float:
    """Net profit divided by the largest peak-to-trough loss (plus one unit)."""
    return result.metrics.net_profit / (1.0 + result.metrics.max_drawdown_abs)


def calmar(result: BacktestResult) -> float:
    return result.metrics.calmar_ratio


def sharpe(result: BacktestResult) -> float:
    return result.metrics.sharpe_ratio


def profit_factor(result: BacktestResult) -> float:
    return result.metrics.profit_factor


SCORERS: Dict[str, Scorer] = {
    "net_profit": net_profit,
    "total_return": total_return,
    "return_over_drawdown": return_over_drawdown,
    "calmar": calmar,
    "sharpe": sharpe,
    "sharpe_ratio": sharpe,
    "profit_factor": profit_factor,
}


def get_scorer(name: str) -> Scorer:
    """Look up a scoring function by objective name."""
    try:
        return SCORERS[name]
    except KeyError:
        raise ValueError(f"Unknown objective: {name}. Choose from {sorted(SCORERS)}") from None
