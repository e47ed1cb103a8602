"""
Strategy parameter optimization using grid search, random search, Optuna and
local search.
"""

import math
import threading
import optuna
import pandas as pd
import numpy as np
from typing import Dict, Any, List, Iterator, Mapping, NamedTuple, Optional, Sequence, Tuple, Union
from dataclasses import dataclass, field
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed

from ..backtest.backtester import Backtester, BacktestResult
from ..config import BacktestOptions
from ..core.models import PriceBar, StrategyParams, validate_bars
from ..data.marketdata import bars_from_frame
from ..errors import InvalidParams
from .scoring import Scorer, net_profit
from .search import HillClimbing, LocalSearch, SimulatedAnnealing
from .space import ParamSpace

logger = logging.getLogger(__name__)

# returned to Optuna in place of -inf
PENALTY_SCORE = -1e10


class RankedResult(NamedTuple):
    params: StrategyParams
    result: BacktestResult


@dataclass
class OptimizationResult:
    """Ranked outcome of an optimization run, best first."""
    ranked: List[RankedResult]
    method: str = "grid"
    skipped_params: List[StrategyParams] = field(default_factory=list)
    study: Optional[optuna.Study] = None

    def __iter__(self) -> Iterator[RankedResult]:
        return iter(self.ranked)

    def __len__(self) -> int:
        return len(self.ranked)

    def __getitem__(self, idx):
        return self.ranked[idx]

    @property
    def best_params(self) -> Optional[StrategyParams]:
        return self.ranked[0].params if self.ranked else None

    @property
    def best_score(self) -> float:
        return self.ranked[0].result.performance_score if self.ranked else float("-inf")

    def top_n_params(self, n: int = 10) -> List[StrategyParams]:
        return [r.params for r in self.ranked[:n]]

    def trials_frame(self) -> pd.DataFrame:
        """One row per evaluated parameter set, in rank order."""
        rows = []
        for rank, (params, result) in enumerate(self.ranked, 1):
            rows.append({
                "rank": rank,
                **params.to_dict(),
                "score": result.performance_score,
                "status": result.status.value,
                "net_profit": result.metrics.net_profit,
                "max_drawdown_pct": result.metrics.max_drawdown_pct,
                "sharpe_ratio": result.metrics.sharpe_ratio,
                "total_trades": result.metrics.total_trades,
                "skipped_trades": len(result.skipped),
            })
        return pd.DataFrame(rows)


class Optimizer:
    """
    Parameter optimization engine.

    Supports:
    - Grid search (exhaustive, optionally threaded)
    - Random search (sampling)
    - Bayesian optimization (Optuna/TPE)
    - Local search (hill climbing, simulated annealing)

    Every evaluation runs on a fresh Backtester, so evaluations can run
    concurrently against the same bars.
    """

    def __init__(
        self,
        bars: Union[Sequence[PriceBar], pd.DataFrame],
        options: Optional[BacktestOptions] = None,
        scoring_fn: Scorer = net_profit,
        n_jobs: int = 1
    ):
        """
        Initialize optimizer.

        Args:
            bars: Historical data for backtesting
            options: Account and market options applied to every run
            scoring_fn: Maps a BacktestResult to a score; higher is better
            n_jobs: Worker threads for grid and random sweeps
        """
        if isinstance(bars, pd.DataFrame):
            bars = bars_from_frame(bars)
        self.bars = list(bars)
        validate_bars(self.bars)
        self.options = options or BacktestOptions()
        self.scoring_fn = scoring_fn
        self.n_jobs = max(1, int(n_jobs))

        self._cancelled = threading.Event()
        self._lock = threading.Lock()
        self._cache: Dict[StrategyParams, Optional[BacktestResult]] = {}

    def cancel(self):
        """Stop dispatching further evaluations; finished ones are kept."""
        logger.info("Optimization cancel requested")
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def optimize(
        self,
        param_space: Union[ParamSpace, Mapping[str, Any]],
        method: str = 'grid',
        n_trials: int = 100,
        random_seed: int = 42
    ) -> OptimizationResult:
        """
        Run parameter optimization.

        Args:
            param_space: ParamSpace or its dict form
            method: 'grid', 'random', 'optuna', 'hill' or 'anneal'
            n_trials: Number of trials (ignored for grid)
            random_seed: Random seed for reproducibility

        Returns:
            OptimizationResult ranked best first
        """
        space = _as_space(param_space)
        logger.info(f"Starting optimization: method={method}, space size={len(space)}")

        if method == 'grid':
            return self.grid_search(space)
        elif method == 'random':
            return self.random_search(space, n_trials, random_seed)
        elif method == 'optuna':
            return self.optuna_search(space, n_trials, random_seed)
        elif method == 'hill':
            return self.local_search(space, HillClimbing(), n_trials, random_seed)
        elif method == 'anneal':
            return self.local_search(space, SimulatedAnnealing(), n_trials, random_seed)
        else:
            raise ValueError(f"Unknown optimization method: {method}")

    # ------------------------------------------------------------
    # Search modes
    # ------------------------------------------------------------
    def grid_search(self, param_space: Union[ParamSpace, Mapping[str, Any]]) -> OptimizationResult:
        """Exhaustive sweep over every valid combination."""
        space = _as_space(param_space)
        candidates = []
        for params in space.combinations():
            if params.short_length >= params.long_length:
                continue
            candidates.append(params)

        logger.info(f"Running grid search over {len(candidates)} combinations ({len(space)} in space)")
        return self._run_batch(candidates, "grid")

    def random_search(
        self,
        param_space: Union[ParamSpace, Mapping[str, Any]],
        n_trials: int,
        seed: int = 42
    ) -> OptimizationResult:
        """Random sampling of the space; duplicates are evaluated once."""
        space = _as_space(param_space)
        rng = np.random.default_rng(seed)
        logger.info(f"Running random search with {n_trials} trials...")

        candidates: List[StrategyParams] = []
        seen = set()
        for _ in range(n_trials):
            params = space.sample(rng)
            if params.short_length >= params.long_length or params in seen:
                continue
            seen.add(params)
            candidates.append(params)

        return self._run_batch(candidates, "random")

    def optuna_search(
        self,
        param_space: Union[ParamSpace, Mapping[str, Any]],
        n_trials: int,
        seed: int = 42
    ) -> OptimizationResult:
        """Bayesian optimization using an in-memory Optuna study."""
        space = _as_space(param_space)
        logger.info(f"Running Optuna optimization with {n_trials} trials...")
        optuna.logging.set_verbosity(optuna.logging.WARNING)

        study = optuna.create_study(
            direction='maximize',
            sampler=optuna.samplers.TPESampler(seed=seed),
            study_name=f"trend_optimization_{pd.Timestamp.now().strftime('%Y%m%d_%H%M%S')}",
        )
        evaluated: List[Tuple[int, StrategyParams, Optional[BacktestResult]]] = []

        def objective(trial: optuna.Trial) -> float:
            if self.cancelled:
                trial.study.stop()
                raise optuna.TrialPruned()

            params = StrategyParams(**{
                name: trial.suggest_categorical(name, list(values))
                for name, values in space.axes().items()
            })
            if params.short_length >= params.long_length:
                raise optuna.TrialPruned()

            result = self._evaluate(params)
            if result is None:
                return PENALTY_SCORE
            if params not in {p for _, p, _ in evaluated}:
                evaluated.append((trial.number, params, result))
            score = result.performance_score
            return score if math.isfinite(score) else PENALTY_SCORE

        study.optimize(objective, n_trials=n_trials, show_progress_bar=False)

        result = self._compile_results(evaluated, "optuna")
        result.study = study
        return result

    def local_search(
        self,
        param_space: Union[ParamSpace, Mapping[str, Any]],
        searcher: LocalSearch,
        n_steps: int = 100,
        seed: int = 42,
        start: Optional[StrategyParams] = None
    ) -> OptimizationResult:
        """
        Walk the space from ``start`` (or a random valid point) using
        ``searcher`` to propose neighbours and accept or reject moves.
        """
        space = _as_space(param_space)
        rng = np.random.default_rng(seed)
        logger.info(f"Running {searcher.name} local search for {n_steps} steps...")

        current = start
        if current is None:
            current = _random_valid(space, rng)
            if current is None:
                logger.warning("Parameter space has no combination with short_length < long_length")
                return OptimizationResult(ranked=[], method=searcher.name)

        evaluated: Dict[StrategyParams, Tuple[int, Optional[BacktestResult]]] = {}
        evaluated[current] = (0, self._evaluate(current))
        current_score = _score_of(evaluated[current][1])

        for step in range(n_steps):
            if self.cancelled:
                logger.info(f"Local search cancelled after {step} steps")
                break
            candidate = searcher.propose(current, space, rng)
            if candidate == current or candidate.short_length >= candidate.long_length:
                continue
            if candidate not in evaluated:
                evaluated[candidate] = (len(evaluated), self._evaluate(candidate))
            candidate_score = _score_of(evaluated[candidate][1])
            if searcher.accept(current_score, candidate_score, step, rng):
                current, current_score = candidate, candidate_score

        logger.info(f"Local search finished at {current.to_dict()} with score {current_score:.4f}")
        rows = [(idx, params, result) for params, (idx, result) in evaluated.items()]
        return self._compile_results(rows, searcher.name)

    # ------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------
    def _run_batch(self, candidates: List[StrategyParams], method: str) -> OptimizationResult:
        """Fan the candidates out to worker threads and rank once all finish."""
        rows: List[Tuple[int, StrategyParams, Optional[BacktestResult]]] = []

        if self.n_jobs == 1:
            for i, params in enumerate(candidates):
                if self.cancelled:
                    logger.info(f"Sweep cancelled after {i}/{len(candidates)} evaluations")
                    break
                rows.append((i, params, self._evaluate(params)))
                if (i + 1) % 50 == 0:
                    logger.info(f"Completed {i + 1}/{len(candidates)} evaluations")
        else:
            with ThreadPoolExecutor(max_workers=self.n_jobs) as executor:
                futures = {
                    executor.submit(self._evaluate_unless_cancelled, params): (i, params)
                    for i, params in enumerate(candidates)
                }
                for future in as_completed(futures):
                    i, params = futures[future]
                    result = future.result()
                    if result is not _CANCELLED:
                        rows.append((i, params, result))

        return self._compile_results(rows, method)

    def _evaluate_unless_cancelled(self, params: StrategyParams):
        if self.cancelled:
            return _CANCELLED
        return self._evaluate(params)

    def _evaluate(self, params: StrategyParams) -> Optional[BacktestResult]:
        """
        Run one backtest and attach the score.

        Returns None when the parameter set is rejected or the run fails.
        """
        with self._lock:
            if params in self._cache:
                return self._cache[params]

        try:
            result = Backtester(self.options).run(self.bars, params)
            if result.insufficient_data:
                score = float("-inf")
            else:
                score = float(self.scoring_fn(result))
                if not math.isfinite(score):
                    score = float("-inf")
            result = result.with_score(score)
        except InvalidParams as e:
            logger.warning(f"Rejected parameters {params}: {e}")
            result = None
        except Exception as e:
            logger.warning(f"Error evaluating {params}: {e}")
            result = None

        with self._lock:
            self._cache[params] = result
        return result

    def _compile_results(
        self,
        rows: List[Tuple[int, StrategyParams, Optional[BacktestResult]]],
        method: str
    ) -> OptimizationResult:
        """Rank rows: sufficient data and finite score first, then score, then enumeration order."""
        skipped = [params for _, params, result in sorted(rows, key=lambda r: r[0]) if result is None]
        valid = [(i, params, result) for i, params, result in rows if result is not None]

        valid.sort(key=lambda r: (
            0 if _rankable(r[2]) else 1,
            -r[2].performance_score if _rankable(r[2]) else 0.0,
            r[0],
        ))
        ranked = [RankedResult(params, result) for _, params, result in valid]

        if ranked:
            logger.info(f"Best parameters: {ranked[0].params.to_dict()}")
            logger.info(f"Best score: {ranked[0].result.performance_score:.4f}")
        else:
            logger.warning("Optimization produced no results")

        return OptimizationResult(ranked=ranked, method=method, skipped_params=skipped)


_CANCELLED = object()


def _rankable(result: BacktestResult) -> bool:
    return not result.insufficient_data and math.isfinite(result.performance_score)


def _score_of(result: Optional[BacktestResult]) -> float:
    if result is None or not _rankable(result):
        return float("-inf")
    return result.performance_score


def _random_valid(space: ParamSpace, rng: np.random.Generator, attempts: int = 1000) -> Optional[StrategyParams]:
    for _ in range(attempts):
        params = space.sample(rng)
        if params.short_length < params.long_length:
            return params
    return next(
        (p for p in space.combinations() if p.short_length < p.long_length),
        None
    )


def _as_space(param_space: Union[ParamSpace, Mapping[str, Any]]) -> ParamSpace:
    if isinstance(param_space, ParamSpace):
        return param_space
    return ParamSpace.from_dict(param_space)


def optimize(
    bars: Union[Sequence[PriceBar], pd.DataFrame],
    param_space: Union[ParamSpace, Mapping[str, Any]],
    scoring_fn: Scorer = net_profit,
    *,
    options: Optional[BacktestOptions] = None,
    n_jobs: int = 1
) -> OptimizationResult:
    """Exhaustively sweep ``param_space`` and rank the runs by ``scoring_fn``."""
    return Optimizer(bars, options=options, scoring_fn=scoring_fn, n_jobs=n_jobs).grid_search(param_space)
