"""Searchable parameter space: discrete generator parameters plus bounded
continuous risk parameters.
"""

from __future__ import annotations

import itertools
import math
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

import numpy as np

from edgelab.errors import InvalidConfig

# BacktestConfig fields the optimizer may tune as continuous values.
RISK_PARAMETER_NAMES = frozenset({"risk_per_trade", "stop_loss_pct", "take_profit_pct"})


@dataclass(frozen=True)
class RiskBounds:
    """Inclusive [low, high] domain of one continuous risk parameter."""

    low: float
    high: float

    def __post_init__(self) -> None:
        if not (math.isfinite(self.low) and math.isfinite(self.high)):
            raise InvalidConfig(f"Risk bounds must be finite, got [{self.low}, {self.high}]")
        if self.low <= 0.0:
            raise InvalidConfig(f"Risk bounds must be positive, got low={self.low}")
        if self.low > self.high:
            raise InvalidConfig(f"Risk bounds low {self.low} exceeds high {self.high}")

    def clamp(self, value: float) -> float:
        return min(max(value, self.low), self.high)


@dataclass(frozen=True)
class ParameterSpace:
    """Domains to search.

    ``parameters`` maps generator parameter names to candidate values.
    ``risk_parameters`` maps risk fields of BacktestConfig to their bounds;
    grid search leaves them at the config's values.
    """

    parameters: Mapping[str, Sequence[Any]] = field(default_factory=dict)
    risk_parameters: Mapping[str, RiskBounds] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name, values in self.parameters.items():
            if len(values) == 0:
                raise InvalidConfig(f"Parameter {name!r} has an empty domain")
        unknown = set(self.risk_parameters) - RISK_PARAMETER_NAMES
        if unknown:
            raise InvalidConfig(
                f"Unknown risk parameters {sorted(unknown)}; "
                f"allowed: {sorted(RISK_PARAMETER_NAMES)}"
            )
        if not self.parameters and not self.risk_parameters:
            raise InvalidConfig("Parameter space is empty")
        object.__setattr__(
            self, "parameters",
            MappingProxyType({k: tuple(v) for k, v in self.parameters.items()}),
        )
        object.__setattr__(self, "risk_parameters", MappingProxyType(dict(self.risk_parameters)))

    @property
    def grid_size(self) -> int:
        return math.prod(len(values) for values in self.parameters.values())

    def grid(self) -> Iterator[dict[str, Any]]:
        """Cartesian product of the discrete domains, in declaration order."""
        names = list(self.parameters)
        for combo in itertools.product(*(self.parameters[n] for n in names)):
            yield dict(zip(names, combo))

    def sample_parameters(self, rng: np.random.Generator) -> dict[str, Any]:
        return {
            name: self.sample_value(name, rng) for name in self.parameters
        }

    def sample_value(self, name: str, rng: np.random.Generator) -> Any:
        values = self.parameters[name]
        return values[int(rng.integers(len(values)))]

    def sample_risk(self, rng: np.random.Generator) -> dict[str, float]:
        return {
            name: float(rng.uniform(bounds.low, bounds.high))
            for name, bounds in self.risk_parameters.items()
        }
