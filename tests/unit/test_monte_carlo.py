"""Tests for the Monte Carlo trade bootstrap."""

from __future__ import annotations

import numpy as np
import pytest

from edgelab.backtest.monte_carlo import bootstrap, simulate_monte_carlo
from edgelab.errors import InsufficientTrades, InvalidConfig
from edgelab.utils.cancellation import CancellationToken
from edgelab.utils.rng import make_rng
from tests.factories import make_result


class TestTwoTradeBootstrap:
    """Trade returns [+0.01, -0.02] resampled 10,000 times.

    The four equally likely ordered pairs compound to +0.0201, -0.0102,
    -0.0102 and -0.0396: mean -0.009975, three of four lose money.
    """

    def test_mean_terminal_return_converges(self) -> None:
        mc = bootstrap([0.01, -0.02], 10000.0, num_simulations=10_000, rng=make_rng(42))
        assert mc.statistics.expected_return == pytest.approx(-0.009975, abs=0.002)

    def test_probability_of_loss(self) -> None:
        mc = bootstrap([0.01, -0.02], 10000.0, num_simulations=10_000, rng=make_rng(42))
        assert mc.statistics.probability_of_loss == pytest.approx(0.75, abs=0.02)

    def test_var_and_cvar_at_worst_outcome(self) -> None:
        mc = bootstrap([0.01, -0.02], 10000.0, num_simulations=10_000, rng=make_rng(42))
        # The worst quarter of paths all end at 0.98**2 - 1
        assert mc.statistics.value_at_risk == pytest.approx(0.0396)
        assert mc.statistics.expected_shortfall == pytest.approx(0.0396)

    def test_expected_shortfall_excludes_the_quantile(self) -> None:
        returns = [0.05, 0.02, -0.01, -0.03, 0.04, -0.06, 0.01, 0.03, -0.02, 0.06]
        mc = bootstrap(returns, 10000.0, num_simulations=1000, confidence_level=0.95, rng=make_rng(7))
        assert mc.paths is not None
        ordered = np.sort(mc.paths[:, -1] / 10000.0 - 1.0)

        # floor(0.05 * 1000) = 50: VaR is outcome 50, CVaR averages outcomes 0..49
        assert mc.statistics.value_at_risk == pytest.approx(-ordered[50])
        assert mc.statistics.expected_shortfall == pytest.approx(-ordered[:50].mean())
        assert mc.statistics.expected_shortfall > mc.statistics.value_at_risk

    def test_confidence_interval_brackets_outcomes(self) -> None:
        mc = bootstrap([0.01, -0.02], 10000.0, num_simulations=10_000, rng=make_rng(42))
        low, high = mc.statistics.confidence_interval
        assert low == pytest.approx(-0.0396)
        assert high == pytest.approx(0.0201)


class TestPaths:
    """Path shape, bands and reproducibility."""

    def test_paths_start_at_initial_capital(self) -> None:
        mc = bootstrap([0.01, -0.02, 0.03], 5000.0, num_simulations=50, rng=make_rng(1))

        assert mc.paths is not None
        assert mc.paths.shape == (50, 4)
        assert np.all(mc.paths[:, 0] == 5000.0)

    def test_bands_are_ordered(self) -> None:
        mc = bootstrap([0.01, -0.02, 0.03, -0.01], 10000.0, num_simulations=500, rng=make_rng(2))

        assert len(mc.p5) == len(mc.p50) == len(mc.p95) == 5
        for lo, mid, hi in zip(mc.p5, mc.p50, mc.p95):
            assert lo <= mid <= hi

    def test_same_seed_same_paths(self) -> None:
        first = bootstrap([0.01, -0.02, 0.005], 10000.0, num_simulations=2500, rng=make_rng(9))
        second = bootstrap([0.01, -0.02, 0.005], 10000.0, num_simulations=2500, rng=make_rng(9))
        assert np.array_equal(first.paths, second.paths)
        assert first.statistics == second.statistics

    def test_paths_can_be_dropped(self) -> None:
        mc = bootstrap([0.01, -0.02], 10000.0, num_simulations=10, rng=make_rng(3), keep_paths=False)
        assert mc.paths is None
        assert mc.statistics.simulations == 10

    def test_cancellation_keeps_first_chunk(self) -> None:
        token = CancellationToken()
        token.cancel()
        mc = bootstrap(
            [0.01, -0.02], 10000.0, num_simulations=5000, rng=make_rng(3), cancel=token,
        )
        assert mc.cancelled
        assert mc.statistics.simulations == 1000
        assert mc.paths is not None
        assert mc.paths.shape == (1000, 3)
        assert np.all(mc.paths[:, -1] > 0.0)


class TestFromBacktestResult:
    """simulate_monte_carlo() on a completed run."""

    def test_uses_trade_returns_and_capital(self) -> None:
        result = make_result([0.02, 0.02, 0.02])
        mc = simulate_monte_carlo(result, num_simulations=20, rng=make_rng(0))

        # Every resample is the same sequence
        assert mc.statistics.expected_return == pytest.approx(1.02**3 - 1)
        assert mc.statistics.std_dev == pytest.approx(0.0, abs=1e-12)
        assert mc.statistics.probability_of_loss == 0.0
        assert mc.paths[0, 0] == 10000.0

    def test_requires_two_trades(self) -> None:
        with pytest.raises(InsufficientTrades) as exc_info:
            simulate_monte_carlo(make_result([0.01]), rng=make_rng(0))
        assert exc_info.value.trade_count == 1

    @pytest.mark.parametrize("confidence", [0.0, 1.0, 1.5])
    def test_confidence_level_bounds(self, confidence: float) -> None:
        with pytest.raises(InvalidConfig):
            simulate_monte_carlo(make_result([0.01, 0.02]), confidence_level=confidence)

    def test_simulation_count_bounds(self) -> None:
        with pytest.raises(InvalidConfig):
            simulate_monte_carlo(make_result([0.01, 0.02]), num_simulations=0)
