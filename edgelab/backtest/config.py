"""Backtest configuration and shared data types.

BacktestConfig is a standalone frozen BaseModel (not nested under
AppConfig) because every run is launched with explicit parameters;
AppConfig only supplies the defaults via BacktestConfig.from_defaults().
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from edgelab.config import BacktestDefaults
from edgelab.market.types import Direction


class BacktestConfig(BaseModel):
    """Configuration for a single backtest run. Immutable once built.

    max_positions is deliberately unbounded here; the simulator rejects
    values below 1 with InvalidConfig.
    """

    model_config = ConfigDict(frozen=True)

    symbol: str
    timeframe: str = "1d"
    start: datetime | None = None
    end: datetime | None = None
    strategy: str = "ma_crossover"
    parameters: dict[str, Any] = Field(default_factory=dict)
    initial_capital: Decimal = Field(default=Decimal("10000"), gt=Decimal("0"))
    risk_per_trade: Decimal = Field(
        default=Decimal("0.02"),
        gt=Decimal("0"),
        le=Decimal("1"),
    )
    max_positions: int = 3
    stop_loss_pct: Decimal | None = Field(default=None, gt=Decimal("0"))
    take_profit_pct: Decimal | None = Field(default=None, gt=Decimal("0"))
    max_holding_bars: int | None = Field(default=None, ge=1)
    slippage: Decimal = Field(default=Decimal("0"), ge=Decimal("0"))
    annualization_factor: int = Field(default=252, ge=1)

    @field_validator("symbol")
    @classmethod
    def validate_symbol(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("symbol must not be empty")
        return v

    @model_validator(mode="after")
    def validate_date_range(self) -> BacktestConfig:
        if self.start is not None and self.end is not None and self.end < self.start:
            raise ValueError("end must not be before start")
        return self

    @classmethod
    def from_defaults(cls, defaults: BacktestDefaults, **overrides: Any) -> BacktestConfig:
        """Build a run config from AppConfig.backtest plus explicit overrides."""
        values: dict[str, Any] = defaults.model_dump()
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


class ExitReason(str, Enum):
    """Why a simulated position was closed."""

    STOP_HIT = "stop_hit"
    TARGET_HIT = "target_hit"
    TIME_EXIT = "time_exit"
    END_OF_DATA = "end_of_data"


@dataclass
class SimulatedPosition:
    """Open position state, mutated once per bar by the simulator."""

    symbol: str
    side: Direction
    size: Decimal
    entry_price: Decimal
    entry_time: datetime
    entry_index: int
    stop_price: Decimal | None = None
    target_price: Decimal | None = None
    bars_held: int = 0
    unrealized_pnl: Decimal = Decimal("0")

    def pnl_at(self, price: Decimal) -> Decimal:
        return (price - self.entry_price) * self.size * self.side.sign


@dataclass(frozen=True)
class ClosedTrade:
    """One completed round-trip trade."""

    symbol: str
    side: Direction
    size: Decimal
    entry_price: Decimal
    exit_price: Decimal
    entry_time: datetime
    exit_time: datetime
    pnl: Decimal
    pnl_pct: float
    holding_bars: int
    holding_seconds: int
    exit_reason: ExitReason


@dataclass(frozen=True)
class EquityPoint:
    """Marked-to-market equity after one bar.

    drawdown is (running_peak - equity) / running_peak, in the 0-1 range.
    """

    timestamp: datetime
    equity: Decimal
    drawdown: float
