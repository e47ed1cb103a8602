"""Pytest configuration and fixtures."""
import pytest
import pandas as pd
import numpy as np

from trend_engine.config import BacktestOptions
from trend_engine.core.models import PriceBar, StrategyParams
from trend_engine.data.marketdata import bars_from_frame


def _ohlc_from_close(close: np.ndarray, dates: pd.DatetimeIndex) -> pd.DataFrame:
    n = len(close)
    open_price = close + np.random.randn(n) * 5.0
    high = np.maximum(open_price, close) + np.abs(np.random.randn(n) * 15.0)
    low = np.minimum(open_price, close) - np.abs(np.random.randn(n) * 15.0)
    volume = np.random.randint(100, 1000, n)

    return pd.DataFrame({
        'timestamp': dates,
        'open': open_price,
        'high': high,
        'low': low,
        'close': close,
        'volume': volume
    })


@pytest.fixture
def sample_ohlc():
    """Generate a seeded random-walk index series."""
    np.random.seed(42)
    n = 500
    dates = pd.date_range(start='2020-01-01', periods=n, freq='D')
    close = 7000 + np.cumsum(np.random.randn(n) * 40.0)
    return _ohlc_from_close(close, dates)


@pytest.fixture
def trending_ohlc():
    """Generate an uptrend followed by a downtrend."""
    np.random.seed(42)
    n = 300
    dates = pd.date_range(start='2020-01-01', periods=n, freq='D')
    trend = np.concatenate([np.linspace(6000, 7500, n // 2), np.linspace(7500, 6000, n - n // 2)])
    close = trend + np.random.randn(n) * 20.0
    return _ohlc_from_close(close, dates)


@pytest.fixture
def sample_bars(sample_ohlc):
    return bars_from_frame(sample_ohlc)


@pytest.fixture
def trending_bars(trending_ohlc):
    return bars_from_frame(trending_ohlc)


@pytest.fixture
def ramp_then_crash_bars():
    """Six rising bars, a crash bar, then two quiet bars."""
    dates = pd.date_range(start='2021-01-01', periods=9, freq='D')
    bars = []
    for k in range(6):
        close = 100.0 + k
        bars.append(PriceBar(dates[k], close - 0.3, close + 0.5, close - 0.5, close))
    bars.append(PriceBar(dates[6], 104.8, 105.0, 89.5, 90.0))
    bars.append(PriceBar(dates[7], 89.8, 90.0, 88.5, 89.0))
    bars.append(PriceBar(dates[8], 88.8, 89.0, 87.5, 88.0))
    return bars


@pytest.fixture
def sample_params():
    """Sample strategy parameters."""
    return StrategyParams(
        short_length=12,
        long_length=26,
        signal_length=9,
        entry_threshold=0.0,
        exit_threshold=0.0,
        channel_length=20
    )


@pytest.fixture
def backtest_options():
    return BacktestOptions(capital=20000.0, risk_fraction=0.03, spread=2.0)
