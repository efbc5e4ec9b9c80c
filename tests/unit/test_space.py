"""Tests for the searchable parameter space."""

from __future__ import annotations

import math

import pytest

from edgelab.backtest.space import ParameterSpace, RiskBounds
from edgelab.errors import InvalidConfig
from edgelab.utils.rng import make_rng


class TestRiskBounds:
    """Continuous domains."""

    def test_clamp(self) -> None:
        bounds = RiskBounds(0.01, 0.05)
        assert bounds.clamp(0.001) == 0.01
        assert bounds.clamp(0.03) == 0.03
        assert bounds.clamp(0.5) == 0.05

    @pytest.mark.parametrize(
        ("low", "high"),
        [(0.0, 0.05), (-0.01, 0.05), (0.05, 0.01), (0.01, math.inf), (math.nan, 0.05)],
    )
    def test_invalid_bounds(self, low: float, high: float) -> None:
        with pytest.raises(InvalidConfig):
            RiskBounds(low, high)

    def test_degenerate_range_allowed(self) -> None:
        assert RiskBounds(0.02, 0.02).clamp(0.9) == 0.02


class TestParameterSpace:
    """Discrete domains and validation."""

    def test_grid_is_cartesian_product_in_declaration_order(self) -> None:
        space = ParameterSpace(parameters={"fast": [5, 10], "slow": [20, 30, 40]})
        combos = list(space.grid())

        assert space.grid_size == 6
        assert len(combos) == 6
        assert combos[0] == {"fast": 5, "slow": 20}
        assert combos[1] == {"fast": 5, "slow": 30}
        assert combos[-1] == {"fast": 10, "slow": 40}

    def test_risk_only_space_has_single_grid_point(self) -> None:
        space = ParameterSpace(risk_parameters={"stop_loss_pct": RiskBounds(0.01, 0.03)})
        assert space.grid_size == 1
        assert list(space.grid()) == [{}]

    def test_empty_domain_rejected(self) -> None:
        with pytest.raises(InvalidConfig):
            ParameterSpace(parameters={"fast": []})

    def test_unknown_risk_parameter_rejected(self) -> None:
        with pytest.raises(InvalidConfig):
            ParameterSpace(risk_parameters={"leverage": RiskBounds(1.0, 2.0)})

    def test_empty_space_rejected(self) -> None:
        with pytest.raises(InvalidConfig):
            ParameterSpace()

    def test_domains_are_read_only(self) -> None:
        source = {"fast": [5, 10]}
        space = ParameterSpace(parameters=source)
        source["fast"].append(15)

        assert space.parameters["fast"] == (5, 10)
        with pytest.raises(TypeError):
            space.parameters["slow"] = (1,)  # type: ignore[index]


class TestSampling:
    """Random draws stay inside their domains."""

    def test_samples_within_domains(self) -> None:
        space = ParameterSpace(
            parameters={"fast": [5, 10, 15]},
            risk_parameters={"risk_per_trade": RiskBounds(0.01, 0.05)},
        )
        rng = make_rng(0)
        for _ in range(50):
            assert space.sample_parameters(rng)["fast"] in (5, 10, 15)
            assert 0.01 <= space.sample_risk(rng)["risk_per_trade"] <= 0.05

    def test_same_seed_same_draws(self) -> None:
        space = ParameterSpace(parameters={"fast": list(range(100))})
        first = [space.sample_value("fast", make_rng(8)) for _ in range(3)]
        second = [space.sample_value("fast", make_rng(8)) for _ in range(3)]
        assert first == second
