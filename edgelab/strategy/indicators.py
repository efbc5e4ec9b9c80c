"""Incremental moving averages for the reference generators.

Generators feed floats; Decimal closes are converted where the generator
reads the bar.
"""

from __future__ import annotations

from collections import deque


class SMA:
    """Fixed-window mean kept as a running total over a bounded deque.

    Each update adds the new value and subtracts the one falling out of the
    window, so the total can drift by float rounding on very long series.
    The drift is far below the price resolution crossovers care about.
    """

    __slots__ = ("_period", "_sum", "_window")

    def __init__(self, period: int) -> None:
        if period < 1:
            raise ValueError(f"SMA period must be >= 1, got {period}")
        self._period = period
        self._window: deque[float] = deque(maxlen=period)
        self._sum: float = 0.0

    def update(self, value: float) -> None:
        """Push one observation, dropping the oldest once the window is full."""
        if len(self._window) == self._period:
            self._sum -= self._window[0]
        self._window.append(value)
        self._sum += value

    @property
    def value(self) -> float | None:
        """Mean of the window; None until ``period`` values have arrived."""
        if not self.is_warm:
            return None
        return self._sum / self._period

    @property
    def is_warm(self) -> bool:
        return len(self._window) == self._period
