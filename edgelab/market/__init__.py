"""Market data types and series providers."""

__all__ = [
    "Bar",
    "CsvSeriesProvider",
    "Direction",
    "InMemorySeriesProvider",
    "MarketSeriesProvider",
    "SignalIntent",
]

from edgelab.market.csv_provider import CsvSeriesProvider
from edgelab.market.memory import InMemorySeriesProvider
from edgelab.market.provider import MarketSeriesProvider
from edgelab.market.types import Bar, Direction, SignalIntent
