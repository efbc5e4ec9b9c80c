"""Signal generators and the registry used by the CLI."""

from __future__ import annotations

from edgelab.errors import InvalidConfig
from edgelab.strategy.base import GeneratorFactory, SignalGenerator
from edgelab.strategy.ma_crossover import MovingAverageCrossover

__all__ = [
    "GeneratorFactory",
    "MovingAverageCrossover",
    "SignalGenerator",
    "available_strategies",
    "resolve_generator_factory",
]

_REGISTRY: dict[str, GeneratorFactory] = {
    "ma_crossover": MovingAverageCrossover.from_parameters,
}


def available_strategies() -> list[str]:
    return sorted(_REGISTRY)


def resolve_generator_factory(name: str) -> GeneratorFactory:
    """Look up a generator factory. Raises InvalidConfig for unknown names."""
    try:
        return _REGISTRY[name]
    except KeyError:
        raise InvalidConfig(
            f"Unknown strategy: {name!r}. "
            f"Available: {', '.join(available_strategies())}"
        ) from None
