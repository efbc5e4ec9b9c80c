"""Exit rules evaluated against every open position on every bar.

Fill prices respect gaps: a bar that opens through a level fills at the
open, never at a price the bar did not trade.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from edgelab.backtest.config import ExitReason, SimulatedPosition
from edgelab.market.types import Bar, Direction


@dataclass(frozen=True)
class ExitDecision:
    """Close the position at ``price`` for ``reason``."""

    price: Decimal
    reason: ExitReason


class ExitRule(Protocol):
    """Pluggable exit predicate."""

    def check(self, position: SimulatedPosition, bar: Bar) -> ExitDecision | None:
        """Return a decision to close, or None to keep the position open."""
        ...


class StopTargetTimeExit:
    """Stop first, then target, then maximum holding period.

    Checking the stop first is the conservative reading of a bar whose
    range spans both levels.
    """

    def __init__(self, max_holding_bars: int | None = None) -> None:
        self._max_holding_bars = max_holding_bars

    def check(self, position: SimulatedPosition, bar: Bar) -> ExitDecision | None:
        if position.side is Direction.BUY:
            decision = self._check_long(position, bar)
        else:
            decision = self._check_short(position, bar)
        if decision is not None:
            return decision

        if (
            self._max_holding_bars is not None
            and position.bars_held >= self._max_holding_bars
        ):
            return ExitDecision(price=bar.close, reason=ExitReason.TIME_EXIT)
        return None

    def _check_long(self, position: SimulatedPosition, bar: Bar) -> ExitDecision | None:
        stop, target = position.stop_price, position.target_price
        if stop is not None and bar.low <= stop:
            return ExitDecision(price=min(bar.open, stop), reason=ExitReason.STOP_HIT)
        if target is not None and bar.high >= target:
            return ExitDecision(price=max(bar.open, target), reason=ExitReason.TARGET_HIT)
        return None

    def _check_short(self, position: SimulatedPosition, bar: Bar) -> ExitDecision | None:
        stop, target = position.stop_price, position.target_price
        if stop is not None and bar.high >= stop:
            return ExitDecision(price=max(bar.open, stop), reason=ExitReason.STOP_HIT)
        if target is not None and bar.low <= target:
            return ExitDecision(price=min(bar.open, target), reason=ExitReason.TARGET_HIT)
        return None
