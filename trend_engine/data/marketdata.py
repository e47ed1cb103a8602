"""
Market data adapter - turns CSV files and OHLCV DataFrames into PriceBars.
"""

import pandas as pd
from pathlib import Path
from typing import List, Union
import logging

from ..core.models import PriceBar, validate_bars
from ..errors import InvalidBars

logger = logging.getLogger(__name__)

TIME_COLUMNS = ("timestamp", "date", "time", "datetime")
REQUIRED = ["open", "high", "low", "close"]


def _normalise_columns(df: pd.DataFrame) -> pd.DataFrame:
    df = df.rename(columns={c: str(c).strip().lower() for c in df.columns})
    missing = [col for col in REQUIRED if col not in df.columns]
    if missing:
        raise InvalidBars(f"Missing required columns: {missing}")
    return df


def bars_from_frame(df: pd.DataFrame) -> List[PriceBar]:
    """
    Convert an OHLCV DataFrame into PriceBars.

    The timestamp comes from the first of ``timestamp``/``date``/``time``/
    ``datetime`` present as a column, otherwise from the index. Volume
    defaults to 0 when absent.
    """
    df = _normalise_columns(df)
    time_col = next((c for c in TIME_COLUMNS if c in df.columns), None)
    timestamps = pd.to_datetime(df[time_col]) if time_col else df.index
    volumes = df["volume"] if "volume" in df.columns else pd.Series(0.0, index=df.index)

    bars = [
        PriceBar(
            timestamp=ts,
            open=float(o),
            high=float(h),
            low=float(l),
            close=float(c),
            volume=float(v),
        )
        for ts, o, h, l, c, v in zip(
            timestamps, df["open"], df["high"], df["low"], df["close"], volumes
        )
    ]
    validate_bars(bars)
    return bars


def load_csv(csv_path: Union[str, Path]) -> List[PriceBar]:
    """
    Load bars from a CSV file.

    Expected CSV format:
    - Columns: date (or time/timestamp), open, high, low, close, [volume]
    - Column names are case-insensitive; rows are sorted by time

    Args:
        csv_path: Path to CSV file

    Returns:
        PriceBars ordered by timestamp
    """
    path = Path(csv_path)
    if not path.exists():
        raise FileNotFoundError(f"CSV file not found: {csv_path}")

    df = _normalise_columns(pd.read_csv(path))
    time_col = next((c for c in TIME_COLUMNS if c in df.columns), None)
    if time_col is None:
        raise InvalidBars(f"No time column found, expected one of {TIME_COLUMNS}")

    df[time_col] = pd.to_datetime(df[time_col])
    df = df.dropna(subset=REQUIRED).sort_values(time_col).reset_index(drop=True)

    bars = bars_from_frame(df)
    logger.info(f"Loaded {len(bars)} bars from {csv_path}")
    return bars
