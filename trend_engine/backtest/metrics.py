"""
Performance metrics calculation.
"""

import pandas as pd
import numpy as np
from dataclasses import dataclass, asdict, field
from typing import List


@dataclass(frozen=True)
class MetricsResult:
    """Container for backtest performance metrics."""
    net_profit: float = 0.0
    total_return_pct: float = 0.0
    max_drawdown_pct: float = 0.0
    max_drawdown_abs: float = 0.0
    sharpe_ratio: float = 0.0
    calmar_ratio: float = 0.0
    win_rate: float = 0.0
    profit_factor: float = 0.0
    expectancy: float = 0.0
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    avg_win: float = 0.0
    avg_loss: float = 0.0
    largest_win: float = 0.0
    largest_loss: float = 0.0
    monthly_returns: List[float] = field(default_factory=list)
    final_equity: float = 0.0

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return asdict(self)


def _drawdown(equity: pd.Series) -> tuple:
    running_max = equity.cummax()
    drawdown = equity - running_max
    max_abs = float(abs(drawdown.min())) if len(drawdown) > 0 else 0.0
    peak = float(running_max.max()) if len(running_max) > 0 else 0.0
    max_pct = (max_abs / peak * 100) if peak > 0 else 0.0
    return max_abs, max_pct


def _sharpe(equity: pd.Series) -> float:
    """Annualised Sharpe of daily equity changes (per-point changes as fallback)."""
    es = equity
    if isinstance(es.index, pd.DatetimeIndex):
        daily = es.resample("D").last().dropna()
        if len(daily) >= 2:
            es = daily
    returns = es.pct_change().dropna()
    returns = returns[np.isfinite(returns)]
    if len(returns) < 2 or returns.std() == 0 or not np.isfinite(returns.std()):
        return 0.0
    return float((returns.mean() / returns.std()) * np.sqrt(252))


def calculate_metrics(
    trades_df: pd.DataFrame,
    equity_series: pd.Series,
    initial_balance: float
) -> MetricsResult:
    """
    Calculate comprehensive performance metrics.

    Args:
        trades_df: One row per closed trade. Expected columns: 'profit_or_loss',
            'exit_date'.
        equity_series: Realised equity per bar, indexed by timestamp.
        initial_balance: Starting balance

    Returns:
        MetricsResult with all metrics
    """
    if equity_series is not None and len(equity_series) > 0:
        equity_series = pd.Series(equity_series, dtype=float).dropna()
    else:
        equity_series = pd.Series([initial_balance], dtype=float)

    if trades_df is None or trades_df.empty:
        final_equity = float(equity_series.iloc[-1]) if len(equity_series) else initial_balance
        return MetricsResult(
            net_profit=final_equity - initial_balance,
            total_return_pct=((final_equity - initial_balance) / initial_balance * 100) if initial_balance else 0.0,
            final_equity=final_equity
        )

    pnl = trades_df["profit_or_loss"].astype(float)
    net_profit = float(pnl.sum())
    final_equity = initial_balance + net_profit
    total_return_pct = (net_profit / initial_balance * 100) if initial_balance else 0.0

    wins = pnl[pnl > 0]
    losses = pnl[pnl < 0]
    total_trades = int(len(pnl))
    win_rate = len(wins) / total_trades * 100 if total_trades > 0 else 0.0

    gross_profit = float(wins.sum())
    gross_loss = float(abs(losses.sum()))
    profit_factor = (gross_profit / gross_loss) if gross_loss > 0 else (np.inf if gross_profit > 0 else 0.0)

    max_drawdown_abs, max_drawdown_pct = _drawdown(equity_series)
    calmar_ratio = (total_return_pct / max_drawdown_pct) if max_drawdown_pct != 0 else 0.0

    monthly_returns: List[float] = []
    if "exit_date" in trades_df.columns:
        exits = pd.to_datetime(trades_df["exit_date"], errors="coerce")
        if exits.notna().all():
            monthly_pnl = pnl.groupby(exits.dt.to_period("M")).sum()
            monthly_returns = ((monthly_pnl / initial_balance) * 100).tolist()

    return MetricsResult(
        net_profit=net_profit,
        total_return_pct=total_return_pct,
        max_drawdown_pct=max_drawdown_pct,
        max_drawdown_abs=max_drawdown_abs,
        sharpe_ratio=_sharpe(equity_series),
        calmar_ratio=calmar_ratio,
        win_rate=win_rate,
        profit_factor=profit_factor,
        expectancy=float(pnl.mean()),
        total_trades=total_trades,
        winning_trades=int(len(wins)),
        losing_trades=int(len(losses)),
        avg_win=float(wins.mean()) if not wins.empty else 0.0,
        avg_loss=float(losses.mean()) if not losses.empty else 0.0,
        largest_win=float(wins.max()) if not wins.empty else 0.0,
        largest_loss=float(losses.min()) if not losses.empty else 0.0,
        monthly_returns=monthly_returns,
        final_equity=final_equity
    )
