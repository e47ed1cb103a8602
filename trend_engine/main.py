"""
CLI entry point for Trend Engine.
Provides commands: backtest, optimize
"""
import argparse
import json
import sys
import logging

from trend_engine.backtest.backtester import Backtester
from trend_engine.config import Settings
from trend_engine.core.models import StrategyParams
from trend_engine.data.marketdata import load_csv
from trend_engine.optimize.optimizer import Optimizer
from trend_engine.optimize.scoring import SCORERS, get_scorer

logger = logging.getLogger(__name__)

DEFAULT_PARAMS = {
    "short_length": 12,
    "long_length": 42,
    "signal_length": 10,
    "entry_threshold": 40.0,
    "exit_threshold": 40.0,
    "channel_length": 20,
}


def setup_logging(settings: Settings, verbose: bool = False):
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(settings.log_file),
            logging.StreamHandler(sys.stdout)
        ]
    )


def load_json_file(filepath: str) -> dict:
    """Load JSON configuration file."""
    try:
        with open(filepath, 'r') as f:
            return json.load(f)
    except FileNotFoundError:
        logger.error(f"File not found: {filepath}")
        sys.exit(1)
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in {filepath}: {e}")
        sys.exit(1)


def cmd_backtest(args, settings: Settings):
    """Run backtest command."""
    logger.info("Starting backtest...")

    overrides = load_json_file(args.params) if args.params else {}
    params = StrategyParams(**{**DEFAULT_PARAMS, **overrides})
    bars = load_csv(args.csv)

    backtester = Backtester(settings.backtest_options())
    result = backtester.run(bars, params)

    print(backtester.report(result))
    if args.trades and result.trades:
        print(result.trades_frame().to_string(index=False))

    logger.info(f"Backtest completed: {len(result.trades)} trades, ending equity {result.ending_equity:.2f}")
    return result


def cmd_optimize(args, settings: Settings):
    """Run optimization command."""
    logger.info("Starting optimization...")

    param_space = load_json_file(args.param_space)
    bars = load_csv(args.csv)

    optimizer = Optimizer(
        bars,
        options=settings.backtest_options(),
        scoring_fn=get_scorer(args.objective),
        n_jobs=args.jobs or settings.n_jobs,
    )
    result = optimizer.optimize(
        param_space,
        method=args.method,
        n_trials=args.trials,
        random_seed=args.seed,
    )

    if not result.ranked:
        logger.warning("No parameter set could be evaluated.")
        return result

    logger.info(f"Best {args.objective}: {result.best_score:.4f}")
    logger.info("Best parameters:")
    for key, value in result.best_params.to_dict().items():
        logger.info(f"  {key}: {value}")

    print("Top 5 parameter sets:")
    for i, (params, run) in enumerate(result[:5], 1):
        print(f"{i}. {args.objective}={run.performance_score:.4f}, params={params.to_dict()}")

    if args.output:
        result.trials_frame().to_csv(args.output, index=False)
        logger.info(f"Trials written to {args.output}")

    return result


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description='Trend Engine - Backtest and Optimize a MACD trend strategy',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose logging')

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    # Backtest command
    backtest_parser = subparsers.add_parser('backtest', help='Run backtest')
    backtest_parser.add_argument('--csv', required=True, help='Path to OHLC CSV file')
    backtest_parser.add_argument('--params', help='Path to strategy parameters JSON file')
    backtest_parser.add_argument('--trades', action='store_true', help='Print the trade log')

    # Optimize command
    optimize_parser = subparsers.add_parser('optimize', help='Run optimization')
    optimize_parser.add_argument('--csv', required=True, help='Path to OHLC CSV file')
    optimize_parser.add_argument('--param-space', required=True, help='Path to parameter space JSON')
    optimize_parser.add_argument('--objective', default='net_profit', choices=sorted(SCORERS), help='Optimization objective')
    optimize_parser.add_argument('--trials', type=int, default=100, help='Number of trials / local search steps')
    optimize_parser.add_argument('--method', default='grid', choices=['grid', 'random', 'optuna', 'hill', 'anneal'], help='Optimization method')
    optimize_parser.add_argument('--jobs', type=int, default=None, help='Worker threads for grid/random sweeps')
    optimize_parser.add_argument('--seed', type=int, default=42, help='Random seed')
    optimize_parser.add_argument('--output', help='Write the ranked trials to this CSV file')

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    settings = Settings()
    setup_logging(settings, args.verbose)

    # Execute command
    try:
        if args.command == 'backtest':
            cmd_backtest(args, settings)
        elif args.command == 'optimize':
            cmd_optimize(args, settings)
    except KeyboardInterrupt:
        logger.info("Operation cancelled by user.")
        sys.exit(0)
    except Exception as e:
        logger.exception(f"Error executing {args.command}: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
