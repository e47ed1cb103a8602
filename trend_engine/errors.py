"""
Error kinds raised by the engine.

Everything derives from ``ValueError`` so callers that only know about bad
input can keep catching that.
"""


class EngineError(ValueError):
    """Base class for engine errors."""


class InvalidParams(EngineError):
    """Strategy parameters are malformed (non-positive or non-monotonic lengths)."""


class InvalidBars(EngineError):
    """Price bars are malformed or not strictly ordered by timestamp."""


class InsufficientData(EngineError):
    """The bar series is too short (or degenerate) to run the strategy."""


class SizingError(EngineError):
    """An attempted trade could not be sized; the trade is skipped."""

    reason = "rejected"


class InvalidRisk(SizingError):
    """Risk is undefined: non-positive risk fraction or zero stop distance."""

    reason = "invalid_risk"


class StakeBelowMinimum(SizingError):
    """The computed stake is smaller than the broker minimum."""

    reason = "below_min_stake"


class StopTooClose(SizingError):
    """The stop is nearer to the entry than the broker allows."""

    reason = "stop_too_close"


class InsufficientMargin(SizingError):
    """Opening the position would exceed the available margin."""

    reason = "insufficient_margin"
