"""Database models package."""

from edgelab.models.backtest import (
    BacktestRunModel,
    BacktestTradeModel,
    WalkForwardPeriodModel,
)
from edgelab.models.base import Base, DecimalText, create_db_engine

__all__ = [
    "BacktestRunModel",
    "BacktestTradeModel",
    "Base",
    "DecimalText",
    "WalkForwardPeriodModel",
    "create_db_engine",
]
