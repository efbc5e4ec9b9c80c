"""Position sizing -- pure Decimal math, no I/O.

A sizer turns (equity, entry, stop, risk fraction) into a position size.
Sizes are fractional; the engine models notional exposure, not lots.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

_ZERO = Decimal("0")


@dataclass(frozen=True)
class SizingResult:
    """Result of position size calculation."""

    size: Decimal
    risk_amount: Decimal
    reason: str = ""


class PositionSizer(Protocol):
    """Pluggable sizing function used by the simulator."""

    def calculate(
        self,
        equity: Decimal,
        entry_price: Decimal,
        stop_price: Decimal | None,
        risk_per_trade: Decimal,
    ) -> SizingResult:
        """Return size 0 with a reason when a position cannot be sized."""
        ...


class RiskFractionSizer:
    """Default sizer: risk_per_trade x equity / entry_price.

    Ignores the stop level; the risk fraction is read as the share of
    equity committed to the position.
    """

    def calculate(
        self,
        equity: Decimal,
        entry_price: Decimal,
        stop_price: Decimal | None,
        risk_per_trade: Decimal,
    ) -> SizingResult:
        if entry_price <= _ZERO:
            return SizingResult(size=_ZERO, risk_amount=_ZERO, reason="Invalid entry price")
        if equity <= _ZERO:
            return SizingResult(size=_ZERO, risk_amount=_ZERO, reason="No equity")

        risk_amount = equity * risk_per_trade
        return SizingResult(size=risk_amount / entry_price, risk_amount=risk_amount)


class StopDistanceSizer:
    """Risk budget divided by stop distance, capped at full equity notional.

    Falls back to RiskFractionSizer when the position has no stop.
    """

    def __init__(self, max_notional_fraction: Decimal = Decimal("1")) -> None:
        self._max_notional_fraction = max_notional_fraction
        self._fallback = RiskFractionSizer()

    def calculate(
        self,
        equity: Decimal,
        entry_price: Decimal,
        stop_price: Decimal | None,
        risk_per_trade: Decimal,
    ) -> SizingResult:
        if stop_price is None:
            return self._fallback.calculate(equity, entry_price, stop_price, risk_per_trade)
        if entry_price <= _ZERO:
            return SizingResult(size=_ZERO, risk_amount=_ZERO, reason="Invalid entry price")
        if equity <= _ZERO:
            return SizingResult(size=_ZERO, risk_amount=_ZERO, reason="No equity")

        stop_distance = abs(entry_price - stop_price)
        if stop_distance == _ZERO:
            return SizingResult(size=_ZERO, risk_amount=_ZERO, reason="Stop distance is zero")

        risk_amount = equity * risk_per_trade
        size = risk_amount / stop_distance

        # Clamp to max notional exposure
        max_size = equity * self._max_notional_fraction / entry_price
        return SizingResult(size=min(size, max_size), risk_amount=risk_amount)
