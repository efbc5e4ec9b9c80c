"""Result tables.

Tables: backtest_run, backtest_trade, walk_forward_period
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from edgelab.models.base import Base, DecimalText


class BacktestRunModel(Base):
    """One backtest run with its headline metrics."""

    __tablename__ = "backtest_run"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    strategy: Mapped[str] = mapped_column(String, nullable=False)
    symbol: Mapped[str] = mapped_column(String, nullable=False)
    timeframe: Mapped[str] = mapped_column(String, nullable=False)
    start_date: Mapped[str] = mapped_column(String, nullable=False)
    end_date: Mapped[str] = mapped_column(String, nullable=False)
    initial_capital: Mapped[Decimal] = mapped_column(DecimalText, nullable=False)
    final_equity: Mapped[Decimal] = mapped_column(DecimalText, nullable=False)
    params: Mapped[str] = mapped_column(Text, nullable=False)  # JSON of the run config
    total_return: Mapped[float] = mapped_column(Float, nullable=False)
    win_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    profit_factor: Mapped[float | None] = mapped_column(Float, nullable=True)
    sharpe_ratio: Mapped[float | None] = mapped_column(Float, nullable=True)
    sortino_ratio: Mapped[float | None] = mapped_column(Float, nullable=True)
    calmar_ratio: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_drawdown: Mapped[float] = mapped_column(Float, nullable=False)
    total_trades: Mapped[int] = mapped_column(Integer, nullable=False)
    equity_curve: Mapped[str] = mapped_column(Text, nullable=False)  # JSON array
    created_at: Mapped[str] = mapped_column(String, nullable=False)


class BacktestTradeModel(Base):
    """Closed trades of a backtest run."""

    __tablename__ = "backtest_trade"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("backtest_run.id"),
        nullable=False,
    )
    symbol: Mapped[str] = mapped_column(String, nullable=False)
    side: Mapped[str] = mapped_column(String, nullable=False)
    qty: Mapped[Decimal] = mapped_column(DecimalText, nullable=False)
    entry_price: Mapped[Decimal] = mapped_column(DecimalText, nullable=False)
    exit_price: Mapped[Decimal] = mapped_column(DecimalText, nullable=False)
    entry_at: Mapped[str] = mapped_column(String, nullable=False)
    exit_at: Mapped[str] = mapped_column(String, nullable=False)
    pnl: Mapped[Decimal] = mapped_column(DecimalText, nullable=False)
    pnl_pct: Mapped[float] = mapped_column(Float, nullable=False)
    holding_bars: Mapped[int] = mapped_column(Integer, nullable=False)
    duration_seconds: Mapped[int] = mapped_column(Integer, nullable=False)
    exit_reason: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (Index("ix_backtest_trade_run", "run_id"),)


class WalkForwardPeriodModel(Base):
    """One walk-forward window; both segment runs live in backtest_run."""

    __tablename__ = "walk_forward_period"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    analysis_id: Mapped[str] = mapped_column(String, nullable=False)
    period_index: Mapped[int] = mapped_column(Integer, nullable=False)
    window_start: Mapped[int] = mapped_column(Integer, nullable=False)
    in_sample_end: Mapped[int] = mapped_column(Integer, nullable=False)
    window_end: Mapped[int] = mapped_column(Integer, nullable=False)
    params: Mapped[str] = mapped_column(Text, nullable=False)  # JSON of chosen parameters
    in_sample_fitness: Mapped[float] = mapped_column(Float, nullable=False)
    degradation: Mapped[float | None] = mapped_column(Float, nullable=True)
    in_sample_run_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("backtest_run.id"),
        nullable=False,
    )
    out_of_sample_run_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("backtest_run.id"),
        nullable=False,
    )
    created_at: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (Index("ix_walk_forward_period_analysis", "analysis_id"),)
