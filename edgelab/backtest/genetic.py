"""Genetic search over a ParameterSpace.

Elitist generational GA with tournament selection, uniform crossover and
per-parameter mutation. All randomness comes from the injected numpy
Generator and is consumed on the calling thread only, so a seeded run
breeds the same populations however the evaluation step is parallelised.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

import numpy as np
import structlog

from edgelab.backtest.space import ParameterSpace
from edgelab.config import GeneticConfig
from edgelab.utils.cancellation import CancellationToken, is_cancelled

if TYPE_CHECKING:
    from edgelab.backtest.simulator import BacktestResult

log = structlog.get_logger()


@dataclass(frozen=True)
class Individual:
    """One candidate. Never mutated; breeding and scoring return new objects."""

    parameters: Mapping[str, Any]
    risk_parameters: Mapping[str, float] = field(default_factory=dict)
    fitness: float | None = None
    result: BacktestResult | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "parameters", MappingProxyType(dict(self.parameters)))
        object.__setattr__(
            self, "risk_parameters", MappingProxyType(dict(self.risk_parameters)),
        )

    @property
    def evaluated(self) -> bool:
        return self.fitness is not None

    @property
    def key(self) -> tuple:
        """Hashable identity of the genome, used to cache evaluations."""
        return candidate_key(self.parameters, self.risk_parameters)

    def with_evaluation(self, fitness: float, result: BacktestResult) -> Individual:
        return replace(self, fitness=fitness, result=result)

    def offspring(
        self,
        parameters: Mapping[str, Any] | None = None,
        risk_parameters: Mapping[str, float] | None = None,
    ) -> Individual:
        """Unevaluated copy with optionally replaced genes."""
        return Individual(
            parameters=self.parameters if parameters is None else parameters,
            risk_parameters=self.risk_parameters if risk_parameters is None else risk_parameters,
        )


def candidate_key(parameters: Mapping[str, Any], risk_parameters: Mapping[str, float]) -> tuple:
    return (
        tuple(sorted(parameters.items())),
        tuple(sorted(risk_parameters.items())),
    )


@dataclass(frozen=True)
class GenerationStats:
    """Fitness summary of one evaluated generation."""

    generation: int
    best_fitness: float
    mean_fitness: float | None
    best_so_far: float


# Scores a batch of individuals and returns them evaluated, in order.
Evaluate = Callable[[Sequence[Individual]], list[Individual]]


@dataclass(frozen=True)
class GeneticOutcome:
    best: Individual
    history: tuple[GenerationStats, ...]
    cancelled: bool


class GeneticSearch:
    """Runs a fixed number of generations and keeps the best individual seen."""

    def __init__(
        self,
        space: ParameterSpace,
        settings: GeneticConfig,
        rng: np.random.Generator,
    ) -> None:
        self._space = space
        self._settings = settings
        self._rng = rng

    def run(
        self,
        evaluate: Evaluate,
        generations: int | None = None,
        cancel: CancellationToken | None = None,
    ) -> GeneticOutcome:
        generations = generations if generations is not None else self._settings.generations
        population = [self._random_individual() for _ in range(self._settings.population_size)]

        best: Individual | None = None
        history: list[GenerationStats] = []
        cancelled = False

        for generation in range(generations):
            if generation > 0 and is_cancelled(cancel):
                cancelled = True
                log.info("genetic_search_cancelled", completed_generations=generation)
                break

            population = evaluate(population)
            for individual in population:
                if best is None or individual.fitness > best.fitness:
                    best = individual

            stats = _generation_stats(generation, population, best)
            history.append(stats)
            log.info(
                "genetic_generation_complete",
                generation=generation,
                best_fitness=stats.best_fitness,
                mean_fitness=stats.mean_fitness,
                best_so_far=stats.best_so_far,
            )

            if generation < generations - 1:
                population = self._next_generation(population)

        assert best is not None
        return GeneticOutcome(best=best, history=tuple(history), cancelled=cancelled)

    # ------------------------------------------------------------------
    # Breeding
    # ------------------------------------------------------------------

    def _random_individual(self) -> Individual:
        return Individual(
            parameters=self._space.sample_parameters(self._rng),
            risk_parameters=self._space.sample_risk(self._rng),
        )

    def _next_generation(self, population: Sequence[Individual]) -> list[Individual]:
        # sorted() is stable, also with reverse=True
        ranked = sorted(population, key=lambda ind: ind.fitness, reverse=True)
        settings = self._settings

        next_population = list(ranked[: settings.elite_size])
        while len(next_population) < settings.population_size:
            first = self._tournament(ranked)
            second = self._tournament(ranked)
            if self._rng.random() < settings.crossover_rate:
                child = self._crossover(first, second)
            else:
                child = first.offspring()
            next_population.append(self._mutate(child))
        return next_population

    def _tournament(self, ranked: Sequence[Individual]) -> Individual:
        k = min(self._settings.tournament_size, len(ranked))
        picks = self._rng.integers(len(ranked), size=k)
        winner = ranked[int(picks[0])]
        for idx in picks[1:]:
            contender = ranked[int(idx)]
            if contender.fitness > winner.fitness:
                winner = contender
        return winner

    def _crossover(self, first: Individual, second: Individual) -> Individual:
        parameters = {
            name: first.parameters[name] if self._rng.random() < 0.5 else second.parameters[name]
            for name in first.parameters
        }
        risk = {
            name: first.risk_parameters[name]
            if self._rng.random() < 0.5
            else second.risk_parameters[name]
            for name in first.risk_parameters
        }
        return Individual(parameters=parameters, risk_parameters=risk)

    def _mutate(self, individual: Individual) -> Individual:
        rate = self._settings.mutation_rate
        half_width = self._settings.risk_perturbation / 2

        parameters = dict(individual.parameters)
        for name in parameters:
            if self._rng.random() < rate:
                parameters[name] = self._space.sample_value(name, self._rng)

        risk = dict(individual.risk_parameters)
        for name, value in risk.items():
            if self._rng.random() < rate:
                u = float(self._rng.uniform(-half_width, half_width))
                risk[name] = self._space.risk_parameters[name].clamp(value * (1.0 + u))

        return Individual(parameters=parameters, risk_parameters=risk)


def _generation_stats(
    generation: int,
    population: Sequence[Individual],
    best: Individual,
) -> GenerationStats:
    scores = [ind.fitness for ind in population]
    finite = [s for s in scores if math.isfinite(s)]
    return GenerationStats(
        generation=generation,
        best_fitness=max(scores),
        mean_fitness=sum(finite) / len(finite) if finite else None,
        best_so_far=best.fitness,
    )
