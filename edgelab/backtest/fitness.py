"""Fitness functions that rank backtest results for the optimizer.

Single-metric objectives rank a run whose metric is undefined below every
run with a defined value (-inf). In the multi-objective blend an undefined
term contributes nothing; the drawdown and return terms are always
defined.
"""

from __future__ import annotations

import math

from edgelab.backtest.metrics import PerformanceMetrics
from edgelab.config import FitnessFunction, MultiObjectiveWeights
from edgelab.errors import UndefinedMetric

UNDEFINED_FITNESS = -math.inf


def score(
    metrics: PerformanceMetrics,
    function: FitnessFunction,
    weights: MultiObjectiveWeights | None = None,
) -> float:
    """Compute the fitness of one run. Higher is better."""
    if function is FitnessFunction.RETURN:
        return metrics.total_return
    if function is FitnessFunction.SHARPE:
        return _required(metrics, "sharpe_ratio")
    if function is FitnessFunction.CALMAR:
        return _required(metrics, "calmar_ratio")
    return multi_objective(metrics, weights if weights is not None else MultiObjectiveWeights())


def multi_objective(metrics: PerformanceMetrics, weights: MultiObjectiveWeights) -> float:
    """Weighted blend of return, Sharpe, drawdown penalty and win rate.

    Win rate enters centred on 0.5, so a coin-flip strategy adds nothing.
    """
    value = metrics.total_return * weights.total_return
    value += metrics.max_drawdown * weights.max_drawdown
    if metrics.sharpe_ratio is not None:
        value += metrics.sharpe_ratio * weights.sharpe
    if metrics.win_rate is not None:
        value += (metrics.win_rate - 0.5) * weights.win_rate
    return value


def _required(metrics: PerformanceMetrics, name: str) -> float:
    try:
        return metrics.require(name)
    except UndefinedMetric:
        return UNDEFINED_FITNESS
