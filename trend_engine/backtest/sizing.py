"""
Risk-based position sizing and the bid/ask fill convention.
"""

from typing import Literal
import math

from ..core.models import Direction
from ..errors import InsufficientMargin, InvalidRisk, StakeBelowMinimum, StopTooClose


def fill_price(direction: Direction, price: float, spread: float, closing: bool = False) -> float:
    """
    Price actually dealt for a mid ``price``.

    Opening a long (or closing a short) buys at the ask, ``price + spread/2``.
    Opening a short (or closing a long) sells at the bid, ``price - spread/2``.

    Args:
        direction: Direction of the position being opened or closed
        price: Mid-market price
        spread: Full bid/ask spread in points
        closing: True when the fill closes a position of ``direction``
    """
    if direction == Direction.FLAT:
        raise ValueError("Cannot fill a flat position")
    side: Literal["buy", "sell"] = "buy" if direction == Direction.LONG else "sell"
    if closing:
        side = "sell" if side == "buy" else "buy"
    half_spread = spread / 2.0
    return price + half_spread if side == "buy" else price - half_spread


def floor_to_increment(value: float, increment: float) -> float:
    # round first so 0.6 / 0.01 == 59.999... still floors to 60 steps
    steps = math.floor(round(value / increment, 9))
    return round(steps * increment, 10)


def size(
    capital: float,
    risk_fraction: float,
    entry_price: float,
    stop_price: float,
    min_stake: float,
    spread: float = 0.0,
    *,
    stake_increment: float = 0.01,
    min_stop_distance: float = 0.0
) -> float:
    """
    Stake per point that loses ``capital * risk_fraction`` if the stop is hit.

    The entry is filled on the adverse side of the spread; the direction is
    taken from which side of the entry the stop sits on.

    Args:
        capital: Account equity available for sizing
        risk_fraction: Fraction of capital to risk (e.g. 0.03)
        entry_price: Mid price at entry
        stop_price: Stop-loss level
        min_stake: Broker minimum stake per point
        spread: Full bid/ask spread in points
        stake_increment: Broker stake increment; the stake is floored to it
        min_stop_distance: Smallest entry-to-stop distance the broker accepts

    Returns:
        Stake per point

    Raises:
        InvalidRisk: non-positive risk or capital, or zero stop distance
        StopTooClose: stop nearer than ``min_stop_distance``
        StakeBelowMinimum: stake below ``min_stake`` (the trade is not taken)
    """
    if not (math.isfinite(risk_fraction) and risk_fraction > 0):
        raise InvalidRisk(f"risk_fraction must be positive, got {risk_fraction}")
    if not (math.isfinite(capital) and capital > 0):
        raise InvalidRisk(f"capital must be positive, got {capital}")
    if not (math.isfinite(entry_price) and math.isfinite(stop_price)):
        raise InvalidRisk("entry and stop prices must be finite")
    if entry_price == stop_price:
        raise InvalidRisk("entry price equals stop price")

    direction = Direction.LONG if stop_price < entry_price else Direction.SHORT
    fill = fill_price(direction, entry_price, spread)
    point_distance = (fill - stop_price) * direction.sign
    if point_distance <= 0:
        raise InvalidRisk(f"stop {stop_price} is not beyond fill price {fill}")
    if point_distance < min_stop_distance:
        raise StopTooClose(
            f"stop distance {point_distance:.4f} below minimum {min_stop_distance}"
        )

    risk_amount = capital * risk_fraction
    stake = floor_to_increment(risk_amount / point_distance, stake_increment)
    if stake < min_stake or stake <= 0:
        raise StakeBelowMinimum(f"stake {stake} below minimum {min_stake}")
    return stake


def check_margin(stake: float, price: float, margin_requirement: float, capital: float) -> None:
    """Raise InsufficientMargin when the position's margin exceeds capital."""
    margin = stake * price * margin_requirement
    if margin > capital:
        raise InsufficientMargin(f"margin {margin:.2f} exceeds available capital {capital:.2f}")
