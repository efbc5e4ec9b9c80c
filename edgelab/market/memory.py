"""InMemorySeriesProvider: canned bars for tests and notebooks."""

from __future__ import annotations

from datetime import datetime

from edgelab.market.types import Bar


class InMemorySeriesProvider:
    """In-memory MarketSeriesProvider.

    Supply bars at construction or add them later via add_bars(). The
    timeframe argument is accepted for protocol compliance and ignored.
    """

    def __init__(self, bars: list[Bar] | None = None) -> None:
        self._bars: list[Bar] = list(bars) if bars is not None else []

    def add_bars(self, bars: list[Bar]) -> None:
        self._bars.extend(bars)

    def fetch(
        self,
        symbol: str,
        timeframe: str,
        start: datetime,
        end: datetime,
    ) -> list[Bar]:
        selected = [
            b for b in self._bars
            if b.symbol == symbol and start <= b.timestamp <= end
        ]
        selected.sort(key=lambda b: b.timestamp)
        return selected
