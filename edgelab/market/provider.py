"""MarketSeriesProvider protocol: abstract interface for historical bars.

The engine reads a whole series once, up front, before any simulation
starts. Gap handling and timestamp normalisation are the provider's job.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from edgelab.market.types import Bar


@runtime_checkable
class MarketSeriesProvider(Protocol):
    """Synchronous source of chronologically ordered OHLCV bars."""

    def fetch(
        self,
        symbol: str,
        timeframe: str,
        start: datetime,
        end: datetime,
    ) -> list[Bar]:
        """Fetch bars for a symbol between start and end (inclusive).

        Returns:
            List of Bar objects ordered by timestamp ascending.
        """
        ...
