"""Result persistence.

Computation never depends on the store: a result is complete before it is
saved, and persist_safely() logs and drops storage failures so a valid
result is never lost to a database error.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Callable, Sequence
from datetime import UTC as _UTC
from datetime import datetime
from typing import Protocol, TypeVar

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from edgelab.backtest.simulator import BacktestResult
from edgelab.backtest.walk_forward import WalkForwardPeriod
from edgelab.errors import ResultStoreError
from edgelab.models.backtest import BacktestRunModel, BacktestTradeModel, WalkForwardPeriodModel
from edgelab.models.base import Base, create_db_engine

log = structlog.get_logger()

T = TypeVar("T")


class ResultStore(Protocol):
    """Where completed results go."""

    def persist(self, result: BacktestResult) -> int:
        """Save one run with its trades. Returns the run ID."""
        ...

    def persist_walk_forward(self, periods: Sequence[WalkForwardPeriod]) -> str:
        """Save every period and both of its segment runs. Returns the analysis ID."""
        ...


class SqlResultStore:
    """ResultStore backed by SQLAlchemy (SQLite by default).

    Raises ResultStoreError for any database failure.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def persist(self, result: BacktestResult) -> int:
        try:
            with self._session_factory() as session:
                run_id = self._add_run(session, result)
                session.commit()
        except SQLAlchemyError as exc:
            raise ResultStoreError(f"Failed to persist backtest run: {exc}") from exc

        log.info("backtest_results_stored", run_id=run_id, trades=len(result.trades))
        return run_id

    def persist_walk_forward(self, periods: Sequence[WalkForwardPeriod]) -> str:
        analysis_id = uuid.uuid4().hex
        created_at = datetime.now(tz=_UTC).isoformat()
        try:
            with self._session_factory() as session:
                for period in periods:
                    in_sample_id = self._add_run(session, period.in_sample)
                    out_of_sample_id = self._add_run(session, period.out_of_sample)
                    session.add(WalkForwardPeriodModel(
                        analysis_id=analysis_id,
                        period_index=period.index,
                        window_start=period.window_start,
                        in_sample_end=period.in_sample_end,
                        window_end=period.window_end,
                        params=json.dumps({
                            "parameters": dict(period.parameters),
                            "risk_parameters": dict(period.risk_parameters),
                        }),
                        in_sample_fitness=period.in_sample_fitness,
                        degradation=period.degradation,
                        in_sample_run_id=in_sample_id,
                        out_of_sample_run_id=out_of_sample_id,
                        created_at=created_at,
                    ))
                session.commit()
        except (SQLAlchemyError, TypeError, ValueError) as exc:
            raise ResultStoreError(f"Failed to persist walk-forward analysis: {exc}") from exc

        log.info("walk_forward_results_stored", analysis_id=analysis_id, periods=len(periods))
        return analysis_id

    @staticmethod
    def _add_run(session: Session, result: BacktestResult) -> int:
        config = result.config
        metrics = result.metrics
        curve = result.equity_curve

        run = BacktestRunModel(
            strategy=config.strategy,
            symbol=config.symbol,
            timeframe=config.timeframe,
            start_date=(config.start or curve[0].timestamp).isoformat(),
            end_date=(config.end or curve[-1].timestamp).isoformat(),
            initial_capital=config.initial_capital,
            final_equity=metrics.final_equity,
            params=config.model_dump_json(),
            total_return=metrics.total_return,
            win_rate=metrics.win_rate,
            profit_factor=metrics.profit_factor,
            sharpe_ratio=metrics.sharpe_ratio,
            sortino_ratio=metrics.sortino_ratio,
            calmar_ratio=metrics.calmar_ratio,
            max_drawdown=metrics.max_drawdown,
            total_trades=metrics.total_trades,
            equity_curve=json.dumps([
                {"timestamp": p.timestamp.isoformat(), "equity": str(p.equity)}
                for p in curve
            ]),
            created_at=datetime.now(tz=_UTC).isoformat(),
        )
        session.add(run)
        session.flush()

        for t in result.trades:
            session.add(BacktestTradeModel(
                run_id=run.id,
                symbol=t.symbol,
                side=t.side.value,
                qty=t.size,
                entry_price=t.entry_price,
                exit_price=t.exit_price,
                entry_at=t.entry_time.isoformat(),
                exit_at=t.exit_time.isoformat(),
                pnl=t.pnl,
                pnl_pct=t.pnl_pct,
                holding_bars=t.holding_bars,
                duration_seconds=t.holding_seconds,
                exit_reason=t.exit_reason.value,
            ))
        return run.id


def create_store(db_path: str) -> SqlResultStore:
    """Open (and if needed create) the result database at ``db_path``.

    Raises:
        ResultStoreError: The path is unusable or the schema cannot be created.
    """
    try:
        engine = create_db_engine(db_path)
        Base.metadata.create_all(engine)
    except (OSError, SQLAlchemyError) as exc:
        raise ResultStoreError(f"Cannot open result database {db_path}: {exc}") from exc
    return SqlResultStore(sessionmaker(engine, expire_on_commit=False))


def persist_safely(action: Callable[[], T]) -> T | None:
    """Run a persistence call; log and swallow ResultStoreError.

    Usage: ``persist_safely(lambda: store.persist(result))``
    """
    try:
        return action()
    except ResultStoreError as exc:
        log.error("result_persist_failed", error=str(exc))
        return None
