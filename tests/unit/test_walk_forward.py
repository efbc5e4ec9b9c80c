"""Tests for walk-forward analysis."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

import pytest

from edgelab.backtest.optimizer import OptimizationResult, SearchMethod, optimize
from edgelab.backtest.space import ParameterSpace
from edgelab.backtest.walk_forward import (
    run_walk_forward,
    sharpe_degradation,
    split_window,
    summarize_walk_forward,
)
from edgelab.config import WalkForwardConfig
from edgelab.errors import InsufficientData, InvalidConfig
from edgelab.market.types import Bar
from edgelab.strategy.base import SignalGenerator
from edgelab.utils.cancellation import CancellationToken
from edgelab.utils.rng import make_rng
from tests.factories import ScriptedGenerator, buy, make_config, make_result, wave_series

_SPACE = ParameterSpace(parameters={"fire_at": [1, 5, 10]})


def _factory(parameters: Mapping[str, Any]) -> SignalGenerator:
    return ScriptedGenerator({int(parameters["fire_at"]): [buy()]})


class SpyOptimizer:
    """Wraps optimize() and records the bars it is handed."""

    def __init__(self) -> None:
        self.seen: list[list[Bar]] = []

    def __call__(self, config: Any, bars: Sequence[Bar], *args: Any, **kwargs: Any) -> OptimizationResult:
        self.seen.append(list(bars))
        return optimize(config, bars, *args, **kwargs)


class TestSplitWindow:
    """In/out-of-sample geometry."""

    def test_split(self) -> None:
        assert split_window(40, 0.25) == (30, 10)
        assert split_window(252, 0.25) == (189, 63)

    def test_empty_segment_rejected(self) -> None:
        with pytest.raises(InvalidConfig):
            split_window(2, 0.9)


class TestRunWalkForward:
    """Sliding windows."""

    def test_windows_slide_by_step(self) -> None:
        bars = wave_series(100)
        periods = run_walk_forward(
            make_config(), bars, _SPACE, _factory, 40, 20, 0.25,
            method=SearchMethod.GRID,
        )

        assert [p.window_start for p in periods] == [0, 20, 40, 60]
        assert all(p.window_end - p.window_start == 40 for p in periods)
        assert all(p.in_sample_end - p.window_start == 30 for p in periods)
        assert [p.index for p in periods] == [0, 1, 2, 3]

    def test_optimizer_only_sees_in_sample_bars(self) -> None:
        bars = wave_series(100)
        spy = SpyOptimizer()
        periods = run_walk_forward(
            make_config(), bars, _SPACE, _factory, 40, 20, 0.25,
            method=SearchMethod.GRID, optimizer=spy,
        )

        assert len(spy.seen) == len(periods)
        for seen, period in zip(spy.seen, periods):
            assert seen == bars[period.window_start:period.in_sample_end]
            assert all(b.timestamp < period.out_of_sample_start_time for b in seen)

    def test_out_of_sample_replays_winning_parameters(self) -> None:
        bars = wave_series(100)
        periods = run_walk_forward(
            make_config(), bars, _SPACE, _factory, 40, 20, 0.25,
            method=SearchMethod.GRID,
        )
        for p in periods:
            assert p.out_of_sample.config.parameters == dict(p.parameters)
            assert len(p.out_of_sample.equity_curve) == 10
            assert len(p.in_sample.equity_curve) == 30

    def test_stops_when_full_window_no_longer_fits(self) -> None:
        bars = wave_series(100)
        periods = run_walk_forward(
            make_config(), bars, _SPACE, _factory, 40, 25, 0.25,
            method=SearchMethod.GRID,
        )
        assert [p.window_start for p in periods] == [0, 25, 50]
        assert periods[-1].window_end == 90

    def test_settings_supply_defaults(self) -> None:
        bars = wave_series(60)
        settings = WalkForwardConfig(window_size=30, step_size=30, out_of_sample_ratio=0.5)
        periods = run_walk_forward(
            make_config(), bars, _SPACE, _factory,
            settings=settings, method=SearchMethod.GRID,
        )
        assert [(p.window_start, p.in_sample_end, p.window_end) for p in periods] == [
            (0, 15, 30),
            (30, 45, 60),
        ]

    def test_genetic_inner_search_is_reproducible(self) -> None:
        bars = wave_series(80)
        runs = [
            run_walk_forward(
                make_config(), bars, _SPACE, _factory, 40, 20, 0.25,
                budget=2, rng=make_rng(4),
            )
            for _ in range(2)
        ]
        assert [dict(p.parameters) for p in runs[0]] == [dict(p.parameters) for p in runs[1]]

    def test_too_few_bars(self) -> None:
        with pytest.raises(InsufficientData):
            run_walk_forward(make_config(), wave_series(30), _SPACE, _factory, 40, 10, 0.25)

    def test_bad_step_rejected(self) -> None:
        with pytest.raises(InvalidConfig):
            run_walk_forward(make_config(), wave_series(100), _SPACE, _factory, 40, 0, 0.25)

    def test_cancellation_keeps_completed_periods(self) -> None:
        token = CancellationToken()
        token.cancel()
        periods = run_walk_forward(
            make_config(), wave_series(100), _SPACE, _factory, 40, 20, 0.25,
            method=SearchMethod.GRID, cancel=token,
        )
        assert len(periods) == 1


class TestDegradation:
    """Sharpe degradation between segments."""

    def test_defined(self) -> None:
        in_sample = make_result([0.01, 0.02, -0.005, 0.015])
        out_of_sample = make_result([0.01, -0.02, 0.005, -0.01])
        is_sharpe = in_sample.metrics.sharpe_ratio
        oos_sharpe = out_of_sample.metrics.sharpe_ratio

        assert sharpe_degradation(in_sample, out_of_sample) == pytest.approx(
            (is_sharpe - oos_sharpe) / abs(is_sharpe),
        )

    def test_undefined_when_sharpe_missing(self) -> None:
        defined = make_result([0.01, 0.02, -0.005])
        flat = make_result([])
        assert sharpe_degradation(flat, defined) is None
        assert sharpe_degradation(defined, flat) is None


class TestSummary:
    """Aggregation across periods."""

    def test_summary_over_periods(self) -> None:
        periods = run_walk_forward(
            make_config(), wave_series(100), _SPACE, _factory, 40, 20, 0.25,
            method=SearchMethod.GRID,
        )
        summary = summarize_walk_forward(periods)

        oos = [p.out_of_sample.metrics.total_return for p in periods]
        expected = 1.0
        for r in oos:
            expected *= 1.0 + r
        assert summary.period_count == 4
        assert summary.out_of_sample_return == pytest.approx(expected - 1.0)
        assert summary.profitable_fraction == pytest.approx(
            sum(1 for r in oos if r > 0) / 4,
        )

    def test_empty_rejected(self) -> None:
        with pytest.raises(InsufficientData):
            summarize_walk_forward([])
