"""Integration test for complete backtest flow."""
import json
import sys

import pytest
import pandas as pd

from trend_engine.backtest.backtester import Backtester, RunStatus
from trend_engine.config import BacktestOptions
from trend_engine.core.models import Direction, ExitReason, StrategyParams
from trend_engine.data.marketdata import bars_from_frame, load_csv
from trend_engine.errors import InvalidBars, InvalidParams
from trend_engine import main as cli


def test_full_backtest_flow(sample_bars, sample_params, backtest_options):
    """Test complete backtest from data to results."""
    backtester = Backtester(backtest_options)

    result = backtester.run(sample_bars, sample_params)

    assert result.status == RunStatus.OK
    assert len(result.indicators) == len(sample_bars)
    assert len(result.trades) > 0

    # Validate equity curve
    equity = result.equity_curve
    assert isinstance(equity, pd.DataFrame)
    assert len(equity) == len(sample_bars)
    assert list(equity.columns) == ['equity', 'unrealized']
    assert equity['unrealized'].iloc[-1] == 0.0

    total_pnl = sum(t.profit_or_loss for t in result.trades)
    assert result.ending_equity == pytest.approx(backtest_options.capital + total_pnl)
    assert equity['equity'].iloc[-1] == pytest.approx(result.ending_equity)
    assert result.metrics.total_trades == len(result.trades)
    assert result.performance_score == pytest.approx(result.metrics.net_profit)

    report = backtester.report(result)
    assert 'Backtest Report' in report


def test_trade_log_invariants(sample_bars, sample_params, backtest_options):
    result = Backtester(backtest_options).run(sample_bars, sample_params)
    trades = result.trades

    for t in trades:
        assert t.exit_date > t.entry_date
        assert t.direction in (Direction.LONG, Direction.SHORT)
        assert t.stake_per_point >= backtest_options.min_stake
        if t.exit_reason == ExitReason.STOP:
            assert t.exit_price == t.stop_price

    for prev, cur in zip(trades, trades[1:]):
        assert cur.entry_date >= prev.exit_date
        # a position never rolls straight into another of the same direction
        if cur.direction == prev.direction:
            assert cur.entry_date > prev.exit_date

    assert sum(t.forced_close for t in trades) <= 1
    if trades and trades[-1].forced_close:
        assert trades[-1].exit_date == sample_bars[-1].timestamp


def test_stop_takes_priority_over_signal(ramp_then_crash_bars):
    """The crash bar both breaches the trailed stop and flips the signal."""
    params = StrategyParams(
        short_length=2,
        long_length=4,
        signal_length=2,
        entry_threshold=0.0,
        exit_threshold=0.0,
        channel_length=2
    )

    result = Backtester().run(ramp_then_crash_bars, params)

    first = result.trades[0]
    crash = ramp_then_crash_bars[6]
    assert first.direction == Direction.LONG
    assert first.entry_date == ramp_then_crash_bars[2].timestamp
    assert first.entry_price == 102.0
    assert first.initial_stop == pytest.approx(100.5)
    assert first.exit_date == crash.timestamp
    assert first.exit_reason == ExitReason.STOP
    assert first.exit_price == pytest.approx(103.5)
    assert first.exit_price == first.stop_price
    assert first.risk == pytest.approx((102.0 - 100.5) * first.stake_per_point)
    assert first.exit_price != crash.close
    assert first.profit_or_loss > 0


def test_stop_does_not_trail_when_disabled(ramp_then_crash_bars):
    params = StrategyParams(2, 4, 2, 0.0, 0.0, 2)

    result = Backtester(BacktestOptions(trail_stop=False)).run(ramp_then_crash_bars, params)

    first = result.trades[0]
    assert first.exit_reason == ExitReason.STOP
    assert first.exit_price == pytest.approx(100.5)
    assert first.stop_price == first.initial_stop


def test_insufficient_data(sample_bars, sample_params):
    short_series = sample_bars[:10]

    result = Backtester().run(short_series, sample_params)

    assert result.insufficient_data
    assert result.status == RunStatus.INSUFFICIENT_DATA
    assert result.trades == ()
    assert result.performance_score == float('-inf')
    assert result.ending_equity == Backtester().options.capital
    assert 'Insufficient data' in Backtester().report(result)


def test_skipped_trades_recorded(sample_bars, sample_params):
    result = Backtester(BacktestOptions(min_stake=1000.0)).run(sample_bars, sample_params)

    assert result.trades == ()
    assert len(result.skipped) > 0
    assert all(s.reason == 'below_min_stake' for s in result.skipped)
    assert result.ending_equity == 20000.0


def test_signal_exit_reverses_on_same_bar(sample_bars, trending_bars, sample_params, backtest_options):
    reversals = []
    for bars in (sample_bars, trending_bars):
        for options in (BacktestOptions(), backtest_options):
            trades = Backtester(options).run(bars, sample_params).trades
            reversals += [(p, c) for p, c in zip(trades, trades[1:]) if c.entry_date == p.exit_date]

    assert reversals
    for closed, opened in reversals:
        assert closed.exit_reason == ExitReason.SIGNAL
        assert opened.direction == (
            Direction.SHORT if closed.direction == Direction.LONG else Direction.LONG
        )


def test_margin_rejection_skips_entries(sample_bars, sample_params):
    result = Backtester(BacktestOptions(margin_requirement=5.0)).run(sample_bars, sample_params)

    assert result.status == RunStatus.OK
    assert result.trades == ()
    assert len(result.skipped) > 0
    assert {s.reason for s in result.skipped} == {'insufficient_margin'}
    assert result.ending_equity == 20000.0
    assert (result.equity_curve['equity'] == 20000.0).all()


def test_invalid_risk_skips_without_aborting(sample_bars, sample_params):
    result = Backtester(BacktestOptions(risk_fraction=0.0)).run(sample_bars, sample_params)

    assert result.status == RunStatus.OK
    assert result.trades == ()
    assert {s.reason for s in result.skipped} == {'invalid_risk'}


def test_backtest_is_reproducible(sample_bars, sample_params, backtest_options):
    first = Backtester(backtest_options).run(sample_bars, sample_params)
    second = Backtester(backtest_options).run(sample_bars, sample_params)

    assert first == second


def test_backtester_instance_can_be_reused(sample_bars, sample_params, backtest_options):
    backtester = Backtester(backtest_options)

    first = backtester.run(sample_bars, sample_params)
    second = backtester.run(sample_bars, sample_params)

    assert first == second


def test_dataframe_input_matches_bars(sample_ohlc, sample_params):
    from_frame = Backtester().run(sample_ohlc, sample_params)
    from_bars = Backtester().run(bars_from_frame(sample_ohlc), sample_params)

    assert from_frame.trades == from_bars.trades


def test_backtest_with_different_params(trending_bars):
    """Test backtest with various parameter sets."""
    param_sets = [
        StrategyParams(5, 20, 5, 0.0, 0.0, 10),
        StrategyParams(12, 26, 9, 2.0, 1.0, 20),
        StrategyParams(8, 40, 10, 5.0, 5.0, 30),
    ]

    results = [Backtester().run(trending_bars, params) for params in param_sets]

    assert len(results) == 3
    for result in results:
        assert result.status == RunStatus.OK
        assert result.metrics.total_trades == len(result.trades)


def test_invalid_inputs_raise(sample_bars, sample_params):
    with pytest.raises(InvalidParams):
        Backtester().run(sample_bars, StrategyParams(26, 12, 9, 0.0, 0.0, 20))
    with pytest.raises(InvalidBars):
        Backtester().run(list(reversed(sample_bars)), sample_params)


def test_warmup_tolerance_delays_entries(sample_bars, sample_params):
    options = BacktestOptions(ema_tolerance=0.01)
    result = Backtester(options).run(sample_bars, sample_params)

    # 2/(26+1) smoothing needs 62 bars for the seed weight to fall below 1%
    assert all(t.entry_date >= sample_bars[63].timestamp for t in result.trades)


def test_load_csv_round_trip(sample_ohlc, tmp_path):
    csv_path = tmp_path / 'prices.csv'
    df = sample_ohlc.rename(columns={'timestamp': 'Date', 'close': 'Close'})
    df.iloc[::-1].to_csv(csv_path, index=False)

    bars = load_csv(csv_path)

    assert len(bars) == len(sample_ohlc)
    assert bars[0].timestamp < bars[-1].timestamp
    assert bars[-1].close == pytest.approx(sample_ohlc['close'].iloc[-1])


def test_load_csv_missing_columns(tmp_path):
    csv_path = tmp_path / 'bad.csv'
    pd.DataFrame({'date': ['2020-01-01'], 'close': [1.0]}).to_csv(csv_path, index=False)

    with pytest.raises(InvalidBars):
        load_csv(csv_path)


def test_cli_backtest_and_optimize(sample_ohlc, tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv('LOG_FILE', str(tmp_path / 'engine.log'))
    monkeypatch.setenv('SPREAD', '2.0')
    monkeypatch.setenv('MIN_STOP_DISTANCE', '0')
    sample_ohlc.to_csv(tmp_path / 'prices.csv', index=False)

    (tmp_path / 'params.json').write_text(json.dumps({
        'short_length': 12, 'long_length': 26, 'signal_length': 9,
        'entry_threshold': 0.0, 'exit_threshold': 0.0, 'channel_length': 20,
    }))
    monkeypatch.setattr(sys, 'argv', [
        'trend-engine', 'backtest', '--csv', 'prices.csv', '--params', 'params.json'
    ])
    cli.main()
    assert 'Backtest Report' in capsys.readouterr().out

    (tmp_path / 'space.json').write_text(json.dumps({
        'short_length': [8, 12], 'long_length': [26], 'signal_length': [9],
        'entry_threshold': [0.0], 'exit_threshold': [0.0], 'channel_length': [20],
    }))
    monkeypatch.setattr(sys, 'argv', [
        'trend-engine', 'optimize', '--csv', 'prices.csv', '--param-space', 'space.json',
        '--method', 'grid', '--output', 'trials.csv'
    ])
    cli.main()
    assert 'Top 5 parameter sets' in capsys.readouterr().out
    assert len(pd.read_csv(tmp_path / 'trials.csv')) == 2
