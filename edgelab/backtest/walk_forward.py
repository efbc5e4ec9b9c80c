"""Walk-forward analysis: optimize in-sample, validate out-of-sample.

Each window of ``window_size`` bars splits into a leading in-sample
segment and a trailing out-of-sample segment. Parameters are fitted on
the in-sample bars only and replayed unchanged on the out-of-sample bars.
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import Executor
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import numpy as np
import structlog

from edgelab.backtest.config import BacktestConfig
from edgelab.backtest.exits import ExitRule
from edgelab.backtest.genetic import Individual
from edgelab.backtest.optimizer import (
    OptimizationResult,
    SearchMethod,
    candidate_config,
    optimize,
)
from edgelab.backtest.simulator import BacktestResult, run_backtest
from edgelab.backtest.sizing import PositionSizer
from edgelab.backtest.space import ParameterSpace
from edgelab.config import FitnessFunction, GeneticConfig, MultiObjectiveWeights, WalkForwardConfig
from edgelab.errors import InsufficientData, InvalidConfig
from edgelab.market.types import Bar
from edgelab.strategy.base import GeneratorFactory
from edgelab.utils.cancellation import CancellationToken, is_cancelled
from edgelab.utils.rng import make_rng

log = structlog.get_logger()

Optimizer = Callable[..., OptimizationResult]


@dataclass(frozen=True)
class WalkForwardPeriod:
    """One walk-forward window. Index bounds are half-open into the bar list."""

    index: int
    window_start: int
    in_sample_end: int
    window_end: int
    in_sample_start_time: datetime
    out_of_sample_start_time: datetime
    out_of_sample_end_time: datetime
    parameters: Mapping[str, Any]
    risk_parameters: Mapping[str, float]
    in_sample_fitness: float
    evaluations: int
    in_sample: BacktestResult
    out_of_sample: BacktestResult
    degradation: float | None


@dataclass(frozen=True)
class WalkForwardSummary:
    """Aggregate view across periods.

    efficiency is mean out-of-sample return over mean in-sample return.
    """

    period_count: int
    mean_degradation: float | None
    out_of_sample_return: float
    profitable_fraction: float
    efficiency: float | None


def split_window(window_size: int, out_of_sample_ratio: float) -> tuple[int, int]:
    """Return (in_sample_bars, out_of_sample_bars) for one window."""
    in_sample = int(window_size * (1.0 - out_of_sample_ratio))
    out_of_sample = window_size - in_sample
    if in_sample < 1 or out_of_sample < 1:
        raise InvalidConfig(
            f"window_size={window_size} with out_of_sample_ratio={out_of_sample_ratio} "
            f"leaves {in_sample} in-sample and {out_of_sample} out-of-sample bars"
        )
    return in_sample, out_of_sample


def run_walk_forward(
    config: BacktestConfig,
    bars: Sequence[Bar],
    space: ParameterSpace,
    generator_factory: GeneratorFactory,
    window_size: int | None = None,
    step_size: int | None = None,
    out_of_sample_ratio: float | None = None,
    *,
    settings: WalkForwardConfig | None = None,
    method: SearchMethod = SearchMethod.GENETIC,
    budget: int | None = None,
    genetic: GeneticConfig | None = None,
    fitness_function: FitnessFunction | None = None,
    weights: MultiObjectiveWeights | None = None,
    rng: np.random.Generator | None = None,
    executor: Executor | None = None,
    cancel: CancellationToken | None = None,
    exit_rule: ExitRule | None = None,
    sizer: PositionSizer | None = None,
    optimizer: Optimizer = optimize,
) -> list[WalkForwardPeriod]:
    """Slide a window over ``bars`` and report in/out-of-sample performance.

    Explicit window arguments override ``settings``. Periods are returned in
    order; a cancelled run returns the periods completed so far.

    Raises:
        InvalidConfig: Window geometry leaves an empty segment or a
            non-positive step.
        InsufficientData: Fewer bars than one window.
    """
    settings = settings if settings is not None else WalkForwardConfig()
    window_size = window_size if window_size is not None else settings.window_size
    step_size = step_size if step_size is not None else settings.step_size
    ratio = out_of_sample_ratio if out_of_sample_ratio is not None else settings.out_of_sample_ratio

    if step_size < 1:
        raise InvalidConfig(f"step_size must be >= 1, got {step_size}")
    if not 0.0 < ratio < 1.0:
        raise InvalidConfig(f"out_of_sample_ratio must be in (0, 1), got {ratio}")
    in_sample_size, _ = split_window(window_size, ratio)
    if len(bars) < window_size:
        raise InsufficientData(
            f"Walk-forward needs at least {window_size} bars, got {len(bars)}"
        )

    rng = rng if rng is not None else make_rng()
    t0 = time.monotonic()
    periods: list[WalkForwardPeriod] = []
    start = 0

    while start + window_size <= len(bars):
        if periods and is_cancelled(cancel):
            log.info("walk_forward_cancelled", completed_periods=len(periods))
            break

        split = start + in_sample_size
        end = start + window_size
        in_sample_bars = bars[start:split]
        out_of_sample_bars = bars[split:end]

        best = optimizer(
            config,
            in_sample_bars,
            space,
            generator_factory,
            method,
            budget,
            genetic=genetic,
            fitness_function=fitness_function,
            weights=weights,
            rng=rng,
            executor=executor,
            cancel=cancel,
            exit_rule=exit_rule,
            sizer=sizer,
        )

        winner = Individual(parameters=best.parameters, risk_parameters=best.risk_parameters)
        oos_result = run_backtest(
            candidate_config(config, winner),
            out_of_sample_bars,
            generator_factory,
            exit_rule=exit_rule,
            sizer=sizer,
        )
        degradation = sharpe_degradation(best.result, oos_result)

        period = WalkForwardPeriod(
            index=len(periods),
            window_start=start,
            in_sample_end=split,
            window_end=end,
            in_sample_start_time=in_sample_bars[0].timestamp,
            out_of_sample_start_time=out_of_sample_bars[0].timestamp,
            out_of_sample_end_time=out_of_sample_bars[-1].timestamp,
            parameters=dict(best.parameters),
            risk_parameters=dict(best.risk_parameters),
            in_sample_fitness=best.fitness,
            evaluations=best.evaluations,
            in_sample=best.result,
            out_of_sample=oos_result,
            degradation=degradation,
        )
        periods.append(period)
        log.info(
            "walk_forward_period_complete",
            period=period.index,
            window_start=start,
            window_end=end,
            parameters=dict(best.parameters),
            in_sample_return=round(best.result.metrics.total_return, 6),
            out_of_sample_return=round(oos_result.metrics.total_return, 6),
            degradation=degradation,
        )
        start += step_size

    covered = (start - step_size) + window_size if periods else 0
    uncovered = len(bars) - covered
    if uncovered > 0:
        log.warning(
            "walk_forward_trailing_bars_uncovered",
            uncovered_bars=uncovered,
            bars_total=len(bars),
        )
    log.info(
        "walk_forward_complete",
        symbol=config.symbol,
        periods=len(periods),
        elapsed_sec=round(time.monotonic() - t0, 3),
    )
    return periods


def sharpe_degradation(in_sample: BacktestResult, out_of_sample: BacktestResult) -> float | None:
    """(IS Sharpe - OOS Sharpe) / |IS Sharpe|; None when undefined."""
    is_sharpe = in_sample.metrics.sharpe_ratio
    oos_sharpe = out_of_sample.metrics.sharpe_ratio
    if is_sharpe is None or oos_sharpe is None or is_sharpe == 0.0:
        return None
    return (is_sharpe - oos_sharpe) / abs(is_sharpe)


def summarize_walk_forward(periods: Sequence[WalkForwardPeriod]) -> WalkForwardSummary:
    """Aggregate periods into one robustness summary.

    Raises:
        InsufficientData: ``periods`` is empty.
    """
    if not periods:
        raise InsufficientData("No walk-forward periods to summarize")

    degradations = [p.degradation for p in periods if p.degradation is not None]
    oos_returns = [p.out_of_sample.metrics.total_return for p in periods]
    is_returns = [p.in_sample.metrics.total_return for p in periods]

    compounded = math.prod(1.0 + r for r in oos_returns) - 1.0
    mean_is = sum(is_returns) / len(is_returns)
    mean_oos = sum(oos_returns) / len(oos_returns)

    return WalkForwardSummary(
        period_count=len(periods),
        mean_degradation=sum(degradations) / len(degradations) if degradations else None,
        out_of_sample_return=compounded,
        profitable_fraction=sum(1 for r in oos_returns if r > 0.0) / len(periods),
        efficiency=mean_oos / mean_is if mean_is != 0.0 else None,
    )
