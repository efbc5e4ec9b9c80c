"""Pydantic Settings configuration models.

3-tier config hierarchy (lowest to highest priority):
1. Pydantic defaults (in code below)
2. .env file (loaded by Pydantic Settings)
3. Environment variables (e.g., EDGELAB_GENETIC__POPULATION_SIZE=40)

Run-level parameters (symbol, dates, strategy parameters) live on
BacktestConfig instead, because a run is always launched with explicit
arguments.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})
VALID_LOG_FORMATS = frozenset({"console", "json"})


class FitnessFunction(str, Enum):
    """Objective maximized by the parameter optimizer.

    Runs optimized under different fitness functions are not comparable.
    """

    RETURN = "return"
    SHARPE = "sharpe"
    CALMAR = "calmar"
    MULTI_OBJECTIVE = "multi_objective"


class BacktestDefaults(BaseModel):
    """Defaults applied to runs launched without explicit risk settings."""

    initial_capital: Decimal = Field(
        default=Decimal("10000"),
        gt=Decimal("0"),
    )
    risk_per_trade: Decimal = Field(
        default=Decimal("0.02"),
        gt=Decimal("0"),
        le=Decimal("1"),
    )
    max_positions: int = Field(default=3, ge=1, le=100)
    annualization_factor: int = Field(default=252, ge=1)
    stop_loss_pct: Decimal | None = Field(default=None, gt=Decimal("0"))
    take_profit_pct: Decimal | None = Field(default=None, gt=Decimal("0"))
    max_holding_bars: int | None = Field(default=None, ge=1)


class MultiObjectiveWeights(BaseModel):
    """Weights of the multi-objective fitness blend.

    Defaults are the values observed in production use and have not been
    tuned; treat them as a starting point.
    """

    total_return: float = 2.0
    sharpe: float = 0.5
    max_drawdown: float = -3.0
    win_rate: float = 0.5


class GeneticConfig(BaseModel):
    """Genetic search parameters."""

    population_size: int = Field(default=30, ge=2, le=500)
    generations: int = Field(default=50, ge=1, le=1000)
    mutation_rate: float = Field(default=0.1, ge=0.0, le=1.0)
    crossover_rate: float = Field(default=0.8, ge=0.0, le=1.0)
    elite_size: int = Field(default=4, ge=1)
    tournament_size: int = Field(default=3, ge=1)
    risk_perturbation: float = Field(default=0.1, gt=0.0, le=1.0)
    fitness_function: FitnessFunction = FitnessFunction.MULTI_OBJECTIVE
    weights: MultiObjectiveWeights = MultiObjectiveWeights()

    @model_validator(mode="after")
    def validate_elite_size(self) -> GeneticConfig:
        """Elites must leave room for at least one offspring."""
        if self.elite_size >= self.population_size:
            raise ValueError(
                f"elite_size ({self.elite_size}) must be smaller than "
                f"population_size ({self.population_size})"
            )
        return self


class WalkForwardConfig(BaseModel):
    """Walk-forward window geometry, in bars."""

    window_size: int = Field(default=252, ge=2)
    step_size: int = Field(default=63, ge=1)
    out_of_sample_ratio: float = Field(default=0.25, gt=0.0, lt=1.0)


class MonteCarloConfig(BaseModel):
    """Bootstrap simulation parameters."""

    num_simulations: int = Field(default=1000, ge=1, le=1_000_000)
    confidence_level: float = Field(default=0.95, gt=0.0, lt=1.0)


class RegimeConfig(BaseModel):
    """Regime classification window and thresholds (per-period values)."""

    window_size: int = Field(default=20, ge=2)
    high_volatility: float = Field(default=0.02, gt=0.0)
    low_volatility: float = Field(default=0.005, ge=0.0)
    trend: float = Field(default=0.001, ge=0.0)

    @model_validator(mode="after")
    def validate_volatility_band(self) -> RegimeConfig:
        if self.low_volatility >= self.high_volatility:
            raise ValueError(
                "low_volatility must be below high_volatility "
                f"({self.low_volatility} >= {self.high_volatility})"
            )
        return self


class AppConfig(BaseSettings):
    """Top-level application configuration.

    Env var examples:
        EDGELAB_LOG_LEVEL=DEBUG
        EDGELAB_BACKTEST__INITIAL_CAPITAL=50000
        EDGELAB_GENETIC__FITNESS_FUNCTION=sharpe
        EDGELAB_MONTE_CARLO__NUM_SIMULATIONS=5000
    """

    model_config = SettingsConfigDict(
        env_prefix="EDGELAB_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "INFO"
    log_format: str = "console"
    backtest: BacktestDefaults = BacktestDefaults()
    genetic: GeneticConfig = GeneticConfig()
    walk_forward: WalkForwardConfig = WalkForwardConfig()
    monte_carlo: MonteCarloConfig = MonteCarloConfig()
    regime: RegimeConfig = RegimeConfig()
    db_path: str = "data/edgelab.db"
    seed: int | None = None

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in VALID_LOG_LEVELS:
            raise ValueError(
                f"log_level must be one of {sorted(VALID_LOG_LEVELS)}, got {v}"
            )
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in VALID_LOG_FORMATS:
            raise ValueError(
                f"log_format must be one of {sorted(VALID_LOG_FORMATS)}, got {v}"
            )
        return v
