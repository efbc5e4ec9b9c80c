"""Market domain types shared across the engine.

Frozen dataclasses for value objects. Prices use Decimal (never float);
confidence and other ratios use float.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum


class Direction(str, Enum):
    """Direction of a trade intent or simulated position."""

    BUY = "buy"
    SELL = "sell"

    @property
    def sign(self) -> int:
        """+1 for long exposure, -1 for short."""
        return 1 if self is Direction.BUY else -1


@dataclass(frozen=True)
class Bar:
    """OHLCV bar (candlestick) data."""

    symbol: str
    timestamp: datetime
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: int


@dataclass(frozen=True)
class SignalIntent:
    """A directional trade intent emitted by a signal generator.

    stop_price / target_price are optional absolute levels. When omitted,
    the simulator falls back to the percentage levels of the run config.
    """

    direction: Direction
    confidence: float = 1.0
    stop_price: Decimal | None = None
    target_price: Decimal | None = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(
                f"confidence must be within [0, 1], got {self.confidence}"
            )
