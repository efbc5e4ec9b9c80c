"""Parameter optimizer: grid, random and genetic search over a ParameterSpace.

Every candidate is scored by one full backtest. Candidates are evaluated
as a map over an optional concurrent.futures Executor and reduced in
submission order, so results do not depend on the executor or its
parallelism. Ties keep the earliest candidate.
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Mapping, Sequence
from concurrent.futures import Executor
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

import numpy as np
import structlog
from pydantic import ValidationError

from edgelab.backtest.config import BacktestConfig
from edgelab.backtest.exits import ExitRule
from edgelab.backtest.fitness import score
from edgelab.backtest.genetic import GenerationStats, GeneticSearch, Individual
from edgelab.backtest.simulator import BacktestResult, run_backtest
from edgelab.backtest.sizing import PositionSizer
from edgelab.backtest.space import ParameterSpace
from edgelab.config import FitnessFunction, GeneticConfig, MultiObjectiveWeights
from edgelab.errors import BudgetExceeded, InvalidConfig
from edgelab.market.types import Bar
from edgelab.strategy.base import GeneratorFactory
from edgelab.utils.cancellation import CancellationToken, is_cancelled
from edgelab.utils.rng import make_rng

log = structlog.get_logger()

DEFAULT_RANDOM_BUDGET = 100
# Grid and random candidates are scheduled in batches; cancellation is
# checked between batches.
_BATCH_SIZE = 16


class SearchMethod(str, Enum):
    GRID = "grid"
    RANDOM = "random"
    GENETIC = "genetic"


@dataclass(frozen=True)
class OptimizationResult:
    """Best candidate found and how the search got there.

    ``evaluations`` counts distinct backtests actually run. ``history``
    holds one entry per genetic generation and is empty otherwise.
    """

    method: SearchMethod
    parameters: Mapping[str, Any]
    risk_parameters: Mapping[str, float]
    fitness: float
    result: BacktestResult
    evaluations: int
    history: tuple[GenerationStats, ...] = ()
    cancelled: bool = False


def optimize(
    config: BacktestConfig,
    bars: Sequence[Bar],
    space: ParameterSpace,
    generator_factory: GeneratorFactory,
    method: SearchMethod = SearchMethod.GENETIC,
    budget: int | None = None,
    *,
    genetic: GeneticConfig | None = None,
    fitness_function: FitnessFunction | None = None,
    weights: MultiObjectiveWeights | None = None,
    rng: np.random.Generator | None = None,
    executor: Executor | None = None,
    cancel: CancellationToken | None = None,
    exit_rule: ExitRule | None = None,
    sizer: PositionSizer | None = None,
) -> OptimizationResult:
    """Search ``space`` for the parameters that maximize fitness on ``bars``.

    Args:
        budget: Grid: maximum number of combinations allowed. Random:
            number of draws (default 100). Genetic: number of generations,
            overriding ``genetic.generations``.
        genetic: GA settings; also supplies the default fitness function
            and multi-objective weights for every method.
        rng: Source of randomness for random and genetic search.
        executor: Optional pool used to run backtests concurrently.
        cancel: Checked between batches and generations; a cancelled search
            returns the best candidate evaluated so far.

    Raises:
        BudgetExceeded: Grid size exceeds ``budget``.
        InvalidConfig: Bad budget or a candidate that does not form a valid
            BacktestConfig.
    """
    settings = genetic if genetic is not None else GeneticConfig()
    if budget is not None and budget < 1:
        raise InvalidConfig(f"budget must be >= 1, got {budget}")
    evaluator = CandidateEvaluator(
        config,
        bars,
        generator_factory,
        fitness_function=fitness_function or settings.fitness_function,
        weights=weights or settings.weights,
        executor=executor,
        exit_rule=exit_rule,
        sizer=sizer,
    )
    rng = rng if rng is not None else make_rng()

    t0 = time.monotonic()
    method = SearchMethod(method)
    if method is SearchMethod.GRID:
        result = _grid_search(space, evaluator, budget, cancel)
    elif method is SearchMethod.RANDOM:
        result = _random_search(space, evaluator, budget, rng, cancel)
    else:
        result = _genetic_search(space, evaluator, settings, budget, rng, cancel)

    log.info(
        "optimization_complete",
        symbol=config.symbol,
        method=method.value,
        evaluations=result.evaluations,
        best_fitness=result.fitness,
        best_parameters=dict(result.parameters),
        best_risk_parameters=dict(result.risk_parameters),
        cancelled=result.cancelled,
        elapsed_sec=round(time.monotonic() - t0, 3),
    )
    return result


# ----------------------------------------------------------------------
# Search methods
# ----------------------------------------------------------------------


def _grid_search(
    space: ParameterSpace,
    evaluator: CandidateEvaluator,
    budget: int | None,
    cancel: CancellationToken | None,
) -> OptimizationResult:
    size = space.grid_size
    if budget is not None and size > budget:
        raise BudgetExceeded(required=size, budget=budget)
    log.info("grid_search_started", combinations=size)
    candidates = (Individual(parameters=p) for p in space.grid())
    best, cancelled = _best_of(candidates, evaluator, cancel)
    return _to_result(SearchMethod.GRID, best, evaluator, cancelled=cancelled)


def _random_search(
    space: ParameterSpace,
    evaluator: CandidateEvaluator,
    budget: int | None,
    rng: np.random.Generator,
    cancel: CancellationToken | None,
) -> OptimizationResult:
    draws = budget if budget is not None else DEFAULT_RANDOM_BUDGET
    log.info("random_search_started", draws=draws)
    candidates = (
        Individual(
            parameters=space.sample_parameters(rng),
            risk_parameters=space.sample_risk(rng),
        )
        for _ in range(draws)
    )
    best, cancelled = _best_of(candidates, evaluator, cancel)
    return _to_result(SearchMethod.RANDOM, best, evaluator, cancelled=cancelled)


def _genetic_search(
    space: ParameterSpace,
    evaluator: CandidateEvaluator,
    settings: GeneticConfig,
    budget: int | None,
    rng: np.random.Generator,
    cancel: CancellationToken | None,
) -> OptimizationResult:
    search = GeneticSearch(space, settings, rng)
    outcome = search.run(evaluator.evaluate, generations=budget, cancel=cancel)
    return _to_result(
        SearchMethod.GENETIC,
        outcome.best,
        evaluator,
        history=outcome.history,
        cancelled=outcome.cancelled,
    )


def _best_of(
    candidates: Iterable[Individual],
    evaluator: CandidateEvaluator,
    cancel: CancellationToken | None,
) -> tuple[Individual, bool]:
    """Evaluate candidates in batches and keep the first strictly-best one.

    Draws from ``candidates`` lazily so cancellation also stops sampling.
    """
    best: Individual | None = None
    batch: list[Individual] = []
    cancelled = False
    iterator = iter(candidates)

    while True:
        if best is not None and is_cancelled(cancel):
            cancelled = True
            log.info("search_cancelled", evaluations=evaluator.evaluations)
            break
        batch = [c for _, c in zip(range(_BATCH_SIZE), iterator)]
        if not batch:
            break
        for individual in evaluator.evaluate(batch):
            if best is None or individual.fitness > best.fitness:
                best = individual

    assert best is not None
    return best, cancelled


def _to_result(
    method: SearchMethod,
    best: Individual,
    evaluator: CandidateEvaluator,
    history: tuple[GenerationStats, ...] = (),
    cancelled: bool = False,
) -> OptimizationResult:
    assert best.fitness is not None and best.result is not None
    return OptimizationResult(
        method=method,
        parameters=dict(best.parameters),
        risk_parameters=dict(best.risk_parameters),
        fitness=best.fitness,
        result=best.result,
        evaluations=evaluator.evaluations,
        history=history,
        cancelled=cancelled,
    )


# ----------------------------------------------------------------------
# Evaluation
# ----------------------------------------------------------------------


class CandidateEvaluator:
    """Scores individuals with one backtest each, caching by genome.

    The cache lives on the calling thread; only the backtests themselves
    are handed to the executor.
    """

    def __init__(
        self,
        config: BacktestConfig,
        bars: Sequence[Bar],
        generator_factory: GeneratorFactory,
        *,
        fitness_function: FitnessFunction,
        weights: MultiObjectiveWeights,
        executor: Executor | None = None,
        exit_rule: ExitRule | None = None,
        sizer: PositionSizer | None = None,
    ) -> None:
        self._config = config
        self._bars = list(bars)
        self._generator_factory = generator_factory
        self._fitness_function = fitness_function
        self._weights = weights
        self._executor = executor
        self._exit_rule = exit_rule
        self._sizer = sizer
        self._cache: dict[tuple, tuple[float, BacktestResult]] = {}

    @property
    def evaluations(self) -> int:
        return len(self._cache)

    def evaluate(self, individuals: Sequence[Individual]) -> list[Individual]:
        """Return ``individuals`` with fitness set, in the same order."""
        pending: dict[tuple, Individual] = {}
        for ind in individuals:
            if not ind.evaluated and ind.key not in self._cache:
                pending.setdefault(ind.key, ind)

        if pending:
            jobs = list(pending.values())
            configs = [candidate_config(self._config, ind) for ind in jobs]
            for ind, outcome in zip(jobs, self._map(configs)):
                self._cache[ind.key] = outcome

        evaluated: list[Individual] = []
        for ind in individuals:
            if ind.evaluated:
                evaluated.append(ind)
            else:
                fitness, result = self._cache[ind.key]
                evaluated.append(ind.with_evaluation(fitness, result))
        return evaluated

    def _map(self, configs: list[BacktestConfig]) -> Iterable[tuple[float, BacktestResult]]:
        if self._executor is None:
            return map(self._run, configs)
        return self._executor.map(self._run, configs)

    def _run(self, config: BacktestConfig) -> tuple[float, BacktestResult]:
        result = run_backtest(
            config,
            self._bars,
            self._generator_factory,
            exit_rule=self._exit_rule,
            sizer=self._sizer,
        )
        return score(result.metrics, self._fitness_function, self._weights), result


def candidate_config(base: BacktestConfig, individual: Individual) -> BacktestConfig:
    """Base config with the individual's parameters and risk settings applied.

    Raises:
        InvalidConfig: The resulting config fails validation.
    """
    values = base.model_dump()
    values["parameters"] = {**base.parameters, **individual.parameters}
    for name, value in individual.risk_parameters.items():
        values[name] = Decimal(str(value))
    try:
        return BacktestConfig.model_validate(values)
    except ValidationError as exc:
        raise InvalidConfig(
            f"Candidate {dict(individual.parameters)} / "
            f"{dict(individual.risk_parameters)} is not a valid config: {exc}"
        ) from exc
