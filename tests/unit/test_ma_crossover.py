"""Tests for the moving-average crossover reference generator."""

from __future__ import annotations

import pytest

from edgelab.errors import InvalidConfig
from edgelab.market.types import Direction
from edgelab.strategy import available_strategies, resolve_generator_factory
from edgelab.strategy.ma_crossover import MovingAverageCrossover
from tests.factories import make_series


def _feed(generator: MovingAverageCrossover, closes: list[str]) -> list[tuple[int, Direction]]:
    """Replay closes bar by bar and collect (index, direction) of every intent."""
    bars = make_series(closes)
    fired = []
    for i in range(len(bars)):
        for intent in generator.generate(bars[: i + 1]):
            fired.append((i, intent.direction))
    return fired


class TestCrossover:
    """Signals fire on the bar of the cross only."""

    def test_bullish_cross(self) -> None:
        closes = ["10", "10", "10", "10", "12", "14", "16"]
        fired = _feed(MovingAverageCrossover(fast_period=2, slow_period=4), closes)
        assert fired == [(4, Direction.BUY)]

    def test_bearish_cross(self) -> None:
        closes = ["10", "10", "10", "10", "8", "6", "4"]
        fired = _feed(MovingAverageCrossover(fast_period=2, slow_period=4), closes)
        assert fired == [(4, Direction.SELL)]

    def test_confidence_is_carried(self) -> None:
        gen = MovingAverageCrossover(fast_period=2, slow_period=4, confidence=0.7)
        bars = make_series(["10", "10", "10", "10", "12"])
        intents = [gen.generate(bars[: i + 1]) for i in range(len(bars))]
        assert intents[-1][0].confidence == 0.7

    def test_fast_not_below_slow_never_fires(self) -> None:
        closes = ["10", "10", "10", "10", "12", "14", "8", "4"]
        assert _feed(MovingAverageCrossover(fast_period=4, slow_period=4), closes) == []

    def test_required_history(self) -> None:
        assert MovingAverageCrossover(fast_period=3, slow_period=7).required_history == 8


class TestRegistry:
    """Factory lookup by name."""

    def test_factory_builds_from_parameters(self) -> None:
        factory = resolve_generator_factory("ma_crossover")
        gen = factory({"fast_period": 3, "slow_period": 9})
        assert isinstance(gen, MovingAverageCrossover)
        assert gen.required_history == 10

    def test_available(self) -> None:
        assert available_strategies() == ["ma_crossover"]

    def test_unknown_strategy(self) -> None:
        with pytest.raises(InvalidConfig):
            resolve_generator_factory("velez")
