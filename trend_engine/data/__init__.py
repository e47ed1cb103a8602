"""Market data adapters."""

from .marketdata import bars_from_frame, load_csv

__all__ = ["bars_from_frame", "load_csv"]
