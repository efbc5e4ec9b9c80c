"""Backtesting engine: simulation, metrics, search and robustness analysis."""

__all__ = [
    "BacktestConfig",
    "BacktestResult",
    "ClosedTrade",
    "EquityPoint",
    "ExitReason",
    "Individual",
    "MonteCarloResult",
    "OptimizationResult",
    "ParameterSpace",
    "PerformanceMetrics",
    "RegimeLabel",
    "RiskBounds",
    "SearchMethod",
    "SqlResultStore",
    "WalkForwardPeriod",
    "classify",
    "optimize",
    "run_backtest",
    "run_walk_forward",
    "simulate",
    "simulate_monte_carlo",
    "summarize",
    "summarize_walk_forward",
]

from edgelab.backtest.config import BacktestConfig, ClosedTrade, EquityPoint, ExitReason
from edgelab.backtest.metrics import PerformanceMetrics, summarize
from edgelab.backtest.simulator import BacktestResult, run_backtest, simulate
from edgelab.backtest.regime import RegimeLabel, classify
from edgelab.backtest.space import ParameterSpace, RiskBounds
from edgelab.backtest.genetic import Individual
from edgelab.backtest.optimizer import OptimizationResult, SearchMethod, optimize
from edgelab.backtest.walk_forward import (
    WalkForwardPeriod,
    run_walk_forward,
    summarize_walk_forward,
)
from edgelab.backtest.monte_carlo import MonteCarloResult, simulate_monte_carlo
from edgelab.backtest.store import SqlResultStore
