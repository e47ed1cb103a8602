"""
Signal generation from indicator frames.

The EMA crossover gives the direction; the MACD-histogram sentiment (with
its entry/exit hysteresis) gates when a crossover is allowed to act.
"""

from typing import Optional

from .models import Direction, IndicatorFrame, Position, Sentiment, TradeSignal


def signal_for(
    frame_prev: Optional[IndicatorFrame],
    frame_cur: IndicatorFrame,
    position: Optional[Position]
) -> TradeSignal:
    """
    Classify the current bar into a trade signal.

    Args:
        frame_prev: Indicators of the previous bar (None on the first bar)
        frame_cur: Indicators of the current bar
        position: Open position, or None when flat

    Returns:
        TradeSignal. While positioned only EXIT or NONE is returned.
    """
    if frame_prev is None or not frame_prev.ready or not frame_cur.ready:
        return TradeSignal.NONE

    direction = position.direction if position is not None else Direction.FLAT
    bullish_cross = frame_cur.short_ema > frame_cur.long_ema
    bearish_cross = frame_cur.short_ema < frame_cur.long_ema

    if direction == Direction.FLAT:
        if frame_cur.sentiment == Sentiment.BULLISH and bullish_cross:
            return TradeSignal.ENTER_LONG
        if frame_cur.sentiment == Sentiment.BEARISH and bearish_cross:
            return TradeSignal.ENTER_SHORT
        return TradeSignal.NONE

    if direction == Direction.LONG:
        if frame_cur.sentiment != Sentiment.BULLISH or bearish_cross:
            return TradeSignal.EXIT
        return TradeSignal.NONE

    if frame_cur.sentiment != Sentiment.BEARISH or bullish_cross:
        return TradeSignal.EXIT
    return TradeSignal.NONE


def signal_direction(signal: TradeSignal) -> Direction:
    """Direction opened by an entry signal (FLAT for anything else)."""
    if signal == TradeSignal.ENTER_LONG:
        return Direction.LONG
    if signal == TradeSignal.ENTER_SHORT:
        return Direction.SHORT
    return Direction.FLAT
