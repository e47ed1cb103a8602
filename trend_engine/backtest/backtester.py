"""
Backtesting engine: replays bars through the signal generator and sizer.
"""

import pandas as pd
from typing import Any, List, Optional, Sequence, Tuple, Union
from dataclasses import dataclass, asdict, field, replace
from enum import Enum
import logging

from ..config import BacktestOptions
from ..core.indicators import compute, is_finite, samples_needed
from ..core.models import (
    Direction,
    ExitReason,
    IndicatorFrame,
    Position,
    PriceBar,
    StrategyParams,
    TradeSignal,
    validate_bars,
)
from ..core.signals import signal_direction, signal_for
from ..data.marketdata import bars_from_frame
from ..errors import InsufficientData, SizingError
from .metrics import calculate_metrics, MetricsResult
from .sizing import check_margin, fill_price, size

logger = logging.getLogger(__name__)


class RunStatus(Enum):
    OK = "ok"
    INSUFFICIENT_DATA = "insufficient_data"


@dataclass(frozen=True)
class Trade:
    """Represents a completed trade."""
    direction: Direction
    entry_date: Any
    entry_price: float
    exit_date: Any
    exit_price: float
    stake_per_point: float
    stop_price: float
    profit_or_loss: float
    exit_reason: ExitReason
    # stop placed at entry; stop_price is the level in force at exit
    initial_stop: float

    @property
    def risk(self) -> float:
        return abs(self.entry_price - self.initial_stop) * self.stake_per_point

    @property
    def price_diff(self) -> float:
        return (self.exit_price - self.entry_price) * self.direction.sign

    @property
    def outcome(self) -> str:
        return "profit" if self.profit_or_loss > 0 else "loss"

    @property
    def risk_reward(self) -> float:
        return self.profit_or_loss / self.risk if self.risk > 0 else 0.0

    @property
    def forced_close(self) -> bool:
        return self.exit_reason == ExitReason.END_OF_DATA

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        d = asdict(self)
        d["direction"] = self.direction.value
        d["exit_reason"] = self.exit_reason.value
        d["risk"] = self.risk
        d["outcome"] = self.outcome
        d["risk_reward"] = self.risk_reward
        return d


@dataclass(frozen=True)
class SkippedTrade:
    """An entry signal that was not taken because sizing rejected it."""
    timestamp: Any
    direction: Direction
    reason: str
    message: str = ""


@dataclass(frozen=True)
class BacktestResult:
    params: StrategyParams
    indicators: Tuple[IndicatorFrame, ...]
    trades: Tuple[Trade, ...]
    skipped: Tuple[SkippedTrade, ...]
    ending_equity: float
    performance_score: float
    status: RunStatus = RunStatus.OK
    reason: str = ""
    metrics: MetricsResult = field(default_factory=MetricsResult, compare=False)
    equity_curve: Optional[pd.DataFrame] = field(default=None, compare=False, repr=False)

    @property
    def insufficient_data(self) -> bool:
        return self.status == RunStatus.INSUFFICIENT_DATA

    def with_score(self, score: float) -> "BacktestResult":
        return replace(self, performance_score=score)

    def trades_frame(self) -> pd.DataFrame:
        return pd.DataFrame([t.to_dict() for t in self.trades])


class Backtester:
    """
    Backtesting engine for the MACD/Donchian trend strategy.

    Features:
    - Position state machine (flat / long / short) with reversals
    - Donchian stop placement, optional trailing, stop priority over signals
    - Risk-based sizing with spread, minimum stake and margin checks
    - Skipped-trade recording when sizing rejects an entry
    - Realised equity curve with unrealised P&L tracked separately
    """

    def __init__(self, options: Optional[BacktestOptions] = None):
        self.options = options or BacktestOptions()

        self.balance = self.options.capital
        self.position: Optional[Position] = None
        self.trades: List[Trade] = []
        self.skipped: List[SkippedTrade] = []
        self.equity_curve_points: List[dict] = []

    # ------------------------------------------------------------
    # Main backtest loop
    # ------------------------------------------------------------
    def run(
        self,
        bars: Union[Sequence[PriceBar], pd.DataFrame],
        params: StrategyParams
    ) -> BacktestResult:
        params.validate()
        if isinstance(bars, pd.DataFrame):
            bars = bars_from_frame(bars)
        bars = list(bars)
        validate_bars(bars)

        logger.debug(f"Starting backtest on {len(bars)} bars with {params}")

        self.balance = self.options.capital
        self.position = None
        self.trades = []
        self.skipped = []
        self.equity_curve_points = []

        indicators = compute(bars, params)
        warmup = self._warmup_bars(params)
        try:
            self._check_sufficient(bars, indicators, params, warmup)
        except InsufficientData as e:
            logger.info(f"Insufficient data for {params}: {e}")
            return self._empty_result(params, indicators, str(e))

        spread = self.options.spread
        last = len(bars) - 1

        for i, (bar, frame) in enumerate(zip(bars, indicators)):
            prev = indicators[i - 1] if i > 0 else None
            active = i >= warmup

            # stops first
            stopped = self.position is not None and self._check_stop(bar)

            # signal exits (and reversals)
            if self.position is not None and active:
                if signal_for(prev, frame, self.position) == TradeSignal.EXIT:
                    exit_price = fill_price(self.position.direction, bar.close, spread, closing=True)
                    self._exit_position(exit_price, bar.timestamp, ExitReason.SIGNAL)

            # entries
            if self.position is None and not stopped and active and i < last:
                signal = signal_for(prev, frame, None)
                if signal in (TradeSignal.ENTER_LONG, TradeSignal.ENTER_SHORT):
                    self._enter_position(signal_direction(signal), bar, frame)

            if self.position is not None and i == last:
                exit_price = fill_price(self.position.direction, bar.close, spread, closing=True)
                self._exit_position(exit_price, bar.timestamp, ExitReason.END_OF_DATA)

            if self.position is not None and self.options.trail_stop:
                self._trail_stop(frame)

            self.equity_curve_points.append({
                "timestamp": bar.timestamp,
                "equity": self.balance,
                "unrealized": self._calculate_open_pnl(bar),
            })

        equity_df = pd.DataFrame(self.equity_curve_points).set_index("timestamp")
        metrics = self._calculate_metrics(equity_df["equity"])

        logger.debug(
            f"Backtest complete: {len(self.trades)} trades, {len(self.skipped)} skipped, "
            f"ending equity {self.balance:.2f}"
        )

        return BacktestResult(
            params=params,
            indicators=tuple(indicators),
            trades=tuple(self.trades),
            skipped=tuple(self.skipped),
            ending_equity=self.balance,
            performance_score=metrics.net_profit,
            metrics=metrics,
            equity_curve=equity_df,
        )

    # ------------------------------------------------------------
    # Position management
    # ------------------------------------------------------------
    def _enter_position(self, direction: Direction, bar: PriceBar, frame: IndicatorFrame):
        half_spread = self.options.spread / 2.0
        if direction == Direction.LONG:
            stop = frame.short_stop - half_spread
        else:
            stop = frame.long_stop + half_spread

        try:
            stake = size(
                self.balance,
                self.options.risk_fraction,
                bar.close,
                stop,
                self.options.min_stake,
                self.options.spread,
                stake_increment=self.options.stake_increment,
                min_stop_distance=self.options.min_stop_distance,
            )
            entry_price = fill_price(direction, bar.close, self.options.spread)
            check_margin(stake, entry_price, self.options.margin_requirement, self.balance)
        except SizingError as e:
            logger.debug(f"Skipped {direction.value} entry at {bar.timestamp}: {e}")
            self.skipped.append(SkippedTrade(bar.timestamp, direction, e.reason, str(e)))
            return

        self.position = Position(
            direction=direction,
            entry_price=entry_price,
            entry_date=bar.timestamp,
            stake_per_point=stake,
            stop_price=stop,
            initial_stop=stop,
        )
        logger.debug(f"Opened {direction.value} at {entry_price} stake={stake} stop={stop}")

    def _exit_position(self, exit_price: float, ts: Any, reason: ExitReason):
        pos = self.position
        pnl = pos.profit_at(exit_price)
        self.balance += pnl

        trade = Trade(
            direction=pos.direction,
            entry_date=pos.entry_date,
            entry_price=pos.entry_price,
            exit_date=ts,
            exit_price=exit_price,
            stake_per_point=pos.stake_per_point,
            stop_price=pos.stop_price,
            profit_or_loss=float(pnl),
            exit_reason=reason,
            initial_stop=pos.initial_stop,
        )
        self.trades.append(trade)
        self.position = None
        logger.debug(f"Closed {trade.direction.value} at {exit_price} ({reason.value}) pnl={pnl:.2f}")

    # ------------------------------------------------------------
    # Supporting methods
    # ------------------------------------------------------------
    def _check_stop(self, bar: PriceBar) -> bool:
        pos = self.position
        half_spread = self.options.spread / 2.0
        if pos.direction == Direction.LONG and bar.low - half_spread <= pos.stop_price:
            self._exit_position(pos.stop_price, bar.timestamp, ExitReason.STOP)
            return True
        if pos.direction == Direction.SHORT and bar.high + half_spread >= pos.stop_price:
            self._exit_position(pos.stop_price, bar.timestamp, ExitReason.STOP)
            return True
        return False

    def _trail_stop(self, frame: IndicatorFrame):
        pos = self.position
        half_spread = self.options.spread / 2.0
        if pos.direction == Direction.LONG:
            pos.stop_price = max(pos.stop_price, frame.short_stop - half_spread)
        else:
            pos.stop_price = min(pos.stop_price, frame.long_stop + half_spread)

    def _calculate_open_pnl(self, bar: PriceBar) -> float:
        if self.position is None:
            return 0.0
        exit_price = fill_price(self.position.direction, bar.close, self.options.spread, closing=True)
        return float(self.position.profit_at(exit_price))

    def _warmup_bars(self, params: StrategyParams) -> int:
        if self.options.ema_tolerance is None:
            return 0
        longest = max(params.long_length, params.signal_length)
        return samples_needed(longest, self.options.ema_tolerance) + 1

    def _check_sufficient(
        self,
        bars: Sequence[PriceBar],
        indicators: Sequence[IndicatorFrame],
        params: StrategyParams,
        warmup: int
    ):
        required = max(params.required_bars, warmup + 1)
        if len(bars) < required:
            raise InsufficientData(f"{len(bars)} bars available, {required} required")
        if not all(is_finite(f) for f in indicators):
            raise InsufficientData("indicators contain non-finite values")

    def _calculate_metrics(self, equity_series: pd.Series) -> MetricsResult:
        trades_df = pd.DataFrame([t.to_dict() for t in self.trades])
        return calculate_metrics(trades_df, equity_series, self.options.capital)

    def _empty_result(
        self,
        params: StrategyParams,
        indicators: Sequence[IndicatorFrame],
        reason: str
    ) -> BacktestResult:
        return BacktestResult(
            params=params,
            indicators=tuple(indicators),
            trades=(),
            skipped=(),
            ending_equity=self.options.capital,
            performance_score=float("-inf"),
            status=RunStatus.INSUFFICIENT_DATA,
            reason=reason,
            metrics=MetricsResult(final_equity=self.options.capital),
            equity_curve=pd.DataFrame(columns=["equity", "unrealized"]),
        )

    def report(self, result: BacktestResult) -> str:
        """Generate a text report of backtest results."""
        if result.insufficient_data:
            return f"Insufficient data: {result.reason}"
        if not result.trades:
            return "No trades executed."

        metrics = result.metrics
        forced = sum(1 for t in result.trades if t.forced_close)
        stopped = sum(1 for t in result.trades if t.exit_reason == ExitReason.STOP)

        report = f"""
            === Backtest Report ===
            Parameters: {result.params.to_dict()}
            Initial Balance: ${self.options.capital:,.2f}
            Final Equity: ${result.ending_equity:,.2f}
            Net Profit: ${metrics.net_profit:,.2f}
            Total Return: {metrics.total_return_pct:.2f}%

            Risk Metrics:
            Max Drawdown: {metrics.max_drawdown_pct:.2f}% (${metrics.max_drawdown_abs:,.2f})
            Sharpe Ratio: {metrics.sharpe_ratio:.2f}
            Calmar Ratio: {metrics.calmar_ratio:.2f}

            Trade Statistics:
            Total Trades: {metrics.total_trades} (stopped: {stopped}, forced close: {forced})
            Skipped Entries: {len(result.skipped)}
            Winning Trades: {metrics.winning_trades}
            Losing Trades: {metrics.losing_trades}
            Win Rate: {metrics.win_rate:.2f}%
            Profit Factor: {metrics.profit_factor:.2f}
            Expectancy: ${metrics.expectancy:.2f}

            Average Win: ${metrics.avg_win:.2f}
            Average Loss: ${metrics.avg_loss:.2f}
            Largest Win: ${metrics.largest_win:.2f}
            Largest Loss: ${metrics.largest_loss:.2f}
        """

        return report
