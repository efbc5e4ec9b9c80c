"""Moving-average crossover reference generator.

Emits BUY when the fast SMA crosses above the slow SMA and SELL when it
crosses below. Used by the CLI and as the test-suite's conforming
generator; the engine itself never depends on it.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from edgelab.market.types import Bar, Direction, SignalIntent
from edgelab.strategy.base import SignalGenerator
from edgelab.strategy.indicators import SMA

DEFAULT_FAST_PERIOD = 10
DEFAULT_SLOW_PERIOD = 30
DEFAULT_CONFIDENCE = 0.7


class MovingAverageCrossover(SignalGenerator):
    """SMA crossover signal generator.

    Parameters with ``fast_period >= slow_period`` are accepted but never
    fire, so a search space may contain them without aborting the search.
    """

    def __init__(
        self,
        fast_period: int = DEFAULT_FAST_PERIOD,
        slow_period: int = DEFAULT_SLOW_PERIOD,
        confidence: float = DEFAULT_CONFIDENCE,
    ) -> None:
        self._fast = SMA(fast_period)
        self._slow = SMA(slow_period)
        self._fast_period = fast_period
        self._slow_period = slow_period
        self._confidence = confidence
        self._seen = 0
        self._prev_fast: float | None = None
        self._prev_slow: float | None = None

    @classmethod
    def from_parameters(cls, parameters: Mapping[str, Any]) -> MovingAverageCrossover:
        return cls(
            fast_period=int(parameters.get("fast_period", DEFAULT_FAST_PERIOD)),
            slow_period=int(parameters.get("slow_period", DEFAULT_SLOW_PERIOD)),
            confidence=float(parameters.get("confidence", DEFAULT_CONFIDENCE)),
        )

    @property
    def required_history(self) -> int:
        return self._slow_period + 1

    def generate(self, history: Sequence[Bar]) -> list[SignalIntent]:
        # Feed only bars not yet seen; history grows by one bar per call.
        for bar in history[self._seen:]:
            self._prev_fast = self._fast.value
            self._prev_slow = self._slow.value
            close = float(bar.close)
            self._fast.update(close)
            self._slow.update(close)
        self._seen = len(history)

        if self._fast_period >= self._slow_period:
            return []

        fast, slow = self._fast.value, self._slow.value
        prev_fast, prev_slow = self._prev_fast, self._prev_slow
        if fast is None or slow is None or prev_fast is None or prev_slow is None:
            return []

        if fast > slow and prev_fast <= prev_slow:
            return [SignalIntent(Direction.BUY, confidence=self._confidence)]
        if fast < slow and prev_fast >= prev_slow:
            return [SignalIntent(Direction.SELL, confidence=self._confidence)]
        return []
