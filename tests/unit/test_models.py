"""Unit tests for shared records and input validation."""
import numpy as np
import pandas as pd
import pytest

from trend_engine.config import BacktestOptions, Settings
from trend_engine.core.models import Direction, Position, PriceBar, StrategyParams, validate_bars
from trend_engine.errors import EngineError, InvalidBars, InvalidParams


def test_price_bar_validation():
    PriceBar(1, 10.0, 11.0, 9.0, 10.5)

    with pytest.raises(InvalidBars):
        PriceBar(1, 10.0, 11.0, 9.0, -1.0)
    with pytest.raises(InvalidBars):
        PriceBar(1, 10.0, 10.2, 9.0, 10.5)  # high below close
    with pytest.raises(InvalidBars):
        PriceBar(1, 10.0, 11.0, 9.0, float("nan"))
    with pytest.raises(InvalidBars):
        PriceBar(1, 10.0, 11.0, 9.0, 10.5, volume=-5)


def test_validate_bars_requires_strict_order():
    a = PriceBar(pd.Timestamp("2020-01-01"), 10.0, 11.0, 9.0, 10.0)
    b = PriceBar(pd.Timestamp("2020-01-02"), 10.0, 11.0, 9.0, 10.0)

    validate_bars([a, b])
    with pytest.raises(InvalidBars):
        validate_bars([b, a])
    with pytest.raises(InvalidBars):
        validate_bars([a, a])


def test_strategy_params_validate():
    StrategyParams(12, 26, 9, 0.0, 0.0, 20).validate()

    bad = [
        StrategyParams(26, 12, 9, 0.0, 0.0, 20),
        StrategyParams(12, 12, 9, 0.0, 0.0, 20),
        StrategyParams(0, 26, 9, 0.0, 0.0, 20),
        StrategyParams(12, 26, 9, -1.0, 0.0, 20),
        StrategyParams(12, 26, 9, 0.0, float("inf"), 20),
        StrategyParams(12, 26, 9, 0.0, 0.0, 0),
        StrategyParams(12, 26, np.int64(9), 0.0, 0.0, 20),
    ]
    for params in bad:
        with pytest.raises(InvalidParams):
            params.validate()


def test_errors_are_value_errors():
    assert issubclass(InvalidParams, EngineError)
    assert issubclass(EngineError, ValueError)


def test_position_profit():
    long_pos = Position(Direction.LONG, 100.0, 0, 2.0, 90.0, 90.0)
    short_pos = Position(Direction.SHORT, 100.0, 0, 2.0, 110.0, 110.0)

    assert long_pos.profit_at(105.0) == 10.0
    assert short_pos.profit_at(105.0) == -10.0


def test_settings_build_backtest_options(monkeypatch):
    monkeypatch.setenv("SPREAD", "3.5")
    monkeypatch.setenv("TRAIL_STOP", "no")

    options = Settings().backtest_options()

    assert isinstance(options, BacktestOptions)
    assert options.spread == 3.5
    assert options.trail_stop is False
    assert options.ema_tolerance is None
