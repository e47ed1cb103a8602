"""
Indicator Engine - streaming trend indicators.

Core indicator calculations:
- Exponential moving averages (seeded by the first value)
- MACD line, signal line and histogram (``macd_trend``)
- Sentiment classification with entry/exit hysteresis
- Rolling Donchian channel (monotonic deques, O(1) amortised per bar)
"""

from collections import deque
from typing import Iterable, List, Optional, Sequence, Tuple
import math

import pandas as pd

from .models import IndicatorFrame, PriceBar, Sentiment, StrategyParams


# ============================================================
# MOVING AVERAGES
# ============================================================

def ema(values: Iterable[float], length: int) -> List[float]:
    """Exponential moving average with smoothing ``2 / (length + 1)``."""
    alpha = 2.0 / (length + 1)
    out: List[float] = []
    prev: Optional[float] = None
    for value in values:
        prev = value if prev is None else value * alpha + prev * (1.0 - alpha)
        out.append(prev)
    return out


def samples_needed(length: int, tolerance: float) -> int:
    """Bars until the seed's weight in an EMA of ``length`` decays below ``tolerance``."""
    alpha = 2.0 / (length + 1)
    return int(round(math.log(tolerance) / -alpha))


# ============================================================
# SENTIMENT
# ============================================================

def next_sentiment(
    prev: Sentiment,
    macd_trend: float,
    entry_threshold: float,
    exit_threshold: float
) -> Sentiment:
    """Advance the sentiment state machine by one histogram value."""
    if prev in (Sentiment.BEARISH, Sentiment.NEUTRAL) and macd_trend > entry_threshold:
        return Sentiment.BULLISH
    if prev in (Sentiment.BULLISH, Sentiment.NEUTRAL) and macd_trend < -entry_threshold:
        return Sentiment.BEARISH
    if prev == Sentiment.BULLISH and macd_trend <= exit_threshold:
        return Sentiment.NEUTRAL
    if prev == Sentiment.BEARISH and macd_trend >= -exit_threshold:
        return Sentiment.NEUTRAL
    return prev


# ============================================================
# DONCHIAN CHANNEL
# ============================================================

class RollingChannel:
    """
    Trailing min(low) / max(high) over the last ``length`` bars.

    Each deque holds (index, value) candidates in monotonic order, so the
    front is always the current extreme and stale entries are dropped as the
    window slides.
    """

    def __init__(self, length: int):
        if length <= 0:
            raise ValueError("channel length must be positive")
        self.length = length
        self._lows: deque = deque()
        self._highs: deque = deque()
        self._count = 0

    def push(self, low: float, high: float) -> Tuple[Optional[float], Optional[float]]:
        i = self._count
        self._count += 1

        while self._lows and self._lows[-1][1] >= low:
            self._lows.pop()
        self._lows.append((i, low))
        while self._highs and self._highs[-1][1] <= high:
            self._highs.pop()
        self._highs.append((i, high))

        oldest = i - self.length + 1
        if self._lows[0][0] < oldest:
            self._lows.popleft()
        if self._highs[0][0] < oldest:
            self._highs.popleft()

        if self._count < self.length:
            return None, None
        return self._lows[0][1], self._highs[0][1]


def donchian(
    bars: Sequence[PriceBar],
    length: int
) -> List[Tuple[Optional[float], Optional[float]]]:
    """(short_stop, long_stop) per bar; ``(None, None)`` during warm-up."""
    channel = RollingChannel(length)
    return [channel.push(bar.low, bar.high) for bar in bars]


# ============================================================
# ENGINE
# ============================================================

def compute(bars: Sequence[PriceBar], params: StrategyParams) -> List[IndicatorFrame]:
    """Build one IndicatorFrame per bar, aligned by index."""
    closes = [bar.close for bar in bars]
    short_ema = ema(closes, params.short_length)
    long_ema = ema(closes, params.long_length)
    macd = [s - l for s, l in zip(short_ema, long_ema)]
    macd_signal = ema(macd, params.signal_length)
    channel = donchian(bars, params.channel_length)

    frames: List[IndicatorFrame] = []
    sentiment = Sentiment.NEUTRAL
    for i, bar in enumerate(bars):
        macd_trend = macd[i] - macd_signal[i]
        if i > 0:
            sentiment = next_sentiment(
                sentiment, macd_trend, params.entry_threshold, params.exit_threshold
            )
        short_stop, long_stop = channel[i]
        frames.append(IndicatorFrame(
            timestamp=bar.timestamp,
            short_ema=short_ema[i],
            long_ema=long_ema[i],
            macd=macd[i],
            macd_signal=macd_signal[i],
            macd_trend=macd_trend,
            sentiment=sentiment,
            short_stop=short_stop,
            long_stop=long_stop,
        ))
    return frames


def is_finite(frame: IndicatorFrame) -> bool:
    values = [frame.short_ema, frame.long_ema, frame.macd, frame.macd_signal, frame.macd_trend]
    if frame.ready:
        values += [frame.short_stop, frame.long_stop]
    return all(math.isfinite(v) for v in values)


def to_frame(frames: Sequence[IndicatorFrame]) -> pd.DataFrame:
    """Indicator frames as a timestamp-indexed DataFrame for renderers."""
    columns = [
        "timestamp", "short_ema", "long_ema", "macd", "macd_signal",
        "macd_trend", "sentiment", "short_stop", "long_stop"
    ]
    if not frames:
        return pd.DataFrame(columns=columns).set_index("timestamp")
    return pd.DataFrame([f.to_dict() for f in frames], columns=columns).set_index("timestamp")
