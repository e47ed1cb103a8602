"""
Records shared by the indicator, signal, backtest and optimization layers.
"""

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Optional, Sequence
import math

from ..errors import InvalidBars, InvalidParams


# ============================================================
# ENUMS
# ============================================================

class Sentiment(Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class TradeSignal(Enum):
    ENTER_LONG = "enter_long"
    ENTER_SHORT = "enter_short"
    EXIT = "exit"
    NONE = "none"


class Direction(Enum):
    FLAT = "flat"
    LONG = "long"
    SHORT = "short"

    @property
    def sign(self) -> int:
        if self is Direction.LONG:
            return 1
        if self is Direction.SHORT:
            return -1
        return 0


class ExitReason(Enum):
    SIGNAL = "signal"
    STOP = "stop"
    END_OF_DATA = "end_of_data"


# ============================================================
# INPUT RECORDS
# ============================================================

@dataclass(frozen=True)
class PriceBar:
    timestamp: Any
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    def __post_init__(self):
        prices = (self.open, self.high, self.low, self.close)
        if not all(math.isfinite(p) and p > 0 for p in prices):
            raise InvalidBars(f"Bar {self.timestamp}: prices must be positive and finite")
        if not math.isfinite(self.volume) or self.volume < 0:
            raise InvalidBars(f"Bar {self.timestamp}: volume must be non-negative")
        if self.low > min(self.open, self.close) or self.high < max(self.open, self.close):
            raise InvalidBars(f"Bar {self.timestamp}: low/high do not bracket open/close")


def validate_bars(bars: Sequence[PriceBar]) -> None:
    """Check that bars are strictly ordered by timestamp."""
    for prev, cur in zip(bars, bars[1:]):
        if not cur.timestamp > prev.timestamp:
            raise InvalidBars(
                f"Bars out of order: {cur.timestamp} does not follow {prev.timestamp}"
            )


@dataclass(frozen=True)
class StrategyParams:
    """
    Numeric strategy configuration.

    Lengths are bar counts. Thresholds are absolute MACD-histogram
    (``macd_trend``) levels gating entries and exits.
    """
    short_length: int
    long_length: int
    signal_length: int
    entry_threshold: float
    exit_threshold: float
    channel_length: int

    def validate(self) -> None:
        for name in ("short_length", "long_length", "signal_length", "channel_length"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise InvalidParams(f"{name} must be a positive integer, got {value!r}")
        for name in ("entry_threshold", "exit_threshold"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or not math.isfinite(value) or value < 0:
                raise InvalidParams(f"{name} must be a non-negative number, got {value!r}")
        if self.short_length >= self.long_length:
            raise InvalidParams(
                f"short_length ({self.short_length}) must be below long_length ({self.long_length})"
            )

    @property
    def required_bars(self) -> int:
        """Bars needed before the channel and long EMA are both meaningful."""
        return max(self.channel_length, self.long_length)

    def to_dict(self) -> dict:
        return asdict(self)


# ============================================================
# INDICATOR OUTPUT
# ============================================================

@dataclass(frozen=True)
class IndicatorFrame:
    timestamp: Any
    short_ema: float
    long_ema: float
    macd: float
    macd_signal: float
    macd_trend: float
    sentiment: Sentiment
    short_stop: Optional[float]
    long_stop: Optional[float]

    @property
    def ready(self) -> bool:
        """False while the Donchian channel is still warming up."""
        return self.short_stop is not None and self.long_stop is not None

    def to_dict(self) -> dict:
        d = asdict(self)
        d["sentiment"] = self.sentiment.value
        return d


# ============================================================
# SIMULATION STATE
# ============================================================

@dataclass
class Position:
    """Open position owned by a single replay. ``stop_price`` may trail."""
    direction: Direction
    entry_price: float
    entry_date: Any
    stake_per_point: float
    stop_price: float
    initial_stop: float

    def profit_at(self, price: float) -> float:
        return (price - self.entry_price) * self.direction.sign * self.stake_per_point
