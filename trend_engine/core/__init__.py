"""Core indicator and signal components."""

from .models import (
    Direction,
    ExitReason,
    IndicatorFrame,
    Position,
    PriceBar,
    Sentiment,
    StrategyParams,
    TradeSignal,
    validate_bars
)
from .indicators import compute, ema, samples_needed, RollingChannel, to_frame
from .signals import signal_for

__all__ = [
    "Direction",
    "ExitReason",
    "IndicatorFrame",
    "Position",
    "PriceBar",
    "Sentiment",
    "StrategyParams",
    "TradeSignal",
    "validate_bars",
    "compute",
    "ema",
    "samples_needed",
    "RollingChannel",
    "to_frame",
    "signal_for"
]
