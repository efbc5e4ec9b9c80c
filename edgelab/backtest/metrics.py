"""Backtest performance metrics: pure functions, no I/O.

Monetary values use Decimal, ratios use float (project convention).
A ratio whose denominator is legitimately zero is reported as None,
never coerced to 0 or infinity; PerformanceMetrics.require() turns such
a None into UndefinedMetric for callers that need a number.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from edgelab.backtest.config import ClosedTrade, EquityPoint
from edgelab.errors import UndefinedMetric

_ZERO = Decimal("0")
DEFAULT_ANNUALIZATION_FACTOR = 252

# Sentinel reported when every closed trade is a winner (gross loss is 0).
PROFIT_FACTOR_CAP = 9999.99


@dataclass(frozen=True)
class MonthlyReturn:
    """Equity return over one calendar month (``month`` is YYYY-MM)."""

    month: str
    return_pct: float


@dataclass(frozen=True)
class PerformanceMetrics:
    """Complete performance metrics for a backtest run.

    Optional float fields are None when the ratio is undefined for the run.
    """

    total_return: float
    total_pnl: Decimal
    final_equity: Decimal
    total_trades: int
    winning_trades: int
    losing_trades: int
    win_rate: float | None
    profit_factor: float | None
    sharpe_ratio: float | None
    sortino_ratio: float | None
    calmar_ratio: float | None
    max_drawdown: float
    volatility: float | None
    recovery_factor: float | None
    avg_win: Decimal
    avg_loss: Decimal
    largest_win: Decimal
    largest_loss: Decimal
    avg_trade_return: float | None
    avg_holding_bars: float | None
    max_consecutive_wins: int
    max_consecutive_losses: int
    monthly_returns: tuple[MonthlyReturn, ...] = ()

    def require(self, name: str) -> float:
        """Return a ratio field as float, raising UndefinedMetric if it is None."""
        value = getattr(self, name)
        if value is None:
            raise UndefinedMetric(name)
        return float(value)


def summarize(
    trades: Sequence[ClosedTrade],
    equity_curve: Sequence[EquityPoint],
    initial_capital: Decimal,
    annualization_factor: int = DEFAULT_ANNUALIZATION_FACTOR,
) -> PerformanceMetrics:
    """Compute all metrics.

    Args:
        trades: Closed round-trip trades, in close order.
        equity_curve: One marked-to-market point per bar.
        initial_capital: Starting capital.
        annualization_factor: Periods per year for Sharpe/Sortino/volatility.
    """
    total_trades = len(trades)

    # Separate winners, losers (break-even is neither)
    winners = [t for t in trades if t.pnl > _ZERO]
    losers = [t for t in trades if t.pnl < _ZERO]

    total_pnl = sum((t.pnl for t in trades), _ZERO)
    final_equity = equity_curve[-1].equity if equity_curve else initial_capital + total_pnl
    total_return = float(final_equity / initial_capital) - 1.0

    returns = _period_returns(equity_curve)
    mean_return, std_return = _mean_std(returns)

    sharpe = _safe_ratio(mean_return, std_return)
    if sharpe is not None:
        sharpe *= math.sqrt(annualization_factor)

    sortino = _compute_sortino(returns, mean_return)
    if sortino is not None:
        sortino *= math.sqrt(annualization_factor)

    volatility = (
        std_return * math.sqrt(annualization_factor)
        if std_return is not None
        else None
    )

    max_drawdown = max((p.drawdown for p in equity_curve), default=0.0)
    calmar = _safe_ratio(total_return, max_drawdown)

    avg_win = (
        sum((t.pnl for t in winners), _ZERO) / Decimal(len(winners))
        if winners
        else _ZERO
    )
    avg_loss = (
        sum((t.pnl for t in losers), _ZERO) / Decimal(len(losers))
        if losers
        else _ZERO
    )

    win_streak, loss_streak = _max_streaks(trades)

    return PerformanceMetrics(
        total_return=total_return,
        total_pnl=total_pnl,
        final_equity=final_equity,
        total_trades=total_trades,
        winning_trades=len(winners),
        losing_trades=len(losers),
        win_rate=len(winners) / total_trades if total_trades > 0 else None,
        profit_factor=_compute_profit_factor(winners, losers),
        sharpe_ratio=sharpe,
        sortino_ratio=sortino,
        calmar_ratio=calmar,
        max_drawdown=max_drawdown,
        volatility=volatility,
        recovery_factor=_compute_recovery_factor(total_pnl, equity_curve, initial_capital),
        avg_win=avg_win,
        avg_loss=avg_loss,
        largest_win=max((t.pnl for t in winners), default=_ZERO),
        largest_loss=min((t.pnl for t in losers), default=_ZERO),
        avg_trade_return=(
            sum(t.pnl_pct for t in trades) / total_trades if total_trades > 0 else None
        ),
        avg_holding_bars=(
            sum(t.holding_bars for t in trades) / total_trades if total_trades > 0 else None
        ),
        max_consecutive_wins=win_streak,
        max_consecutive_losses=loss_streak,
        monthly_returns=tuple(monthly_returns(equity_curve, initial_capital)),
    )


def monthly_returns(
    equity_curve: Sequence[EquityPoint],
    initial_capital: Decimal,
) -> list[MonthlyReturn]:
    """Calendar-month returns; each month is measured from the prior month's close."""
    result: list[MonthlyReturn] = []
    base = initial_capital
    current_month: str | None = None
    last_equity = initial_capital

    for point in equity_curve:
        month = point.timestamp.strftime("%Y-%m")
        if current_month is not None and month != current_month:
            result.append(MonthlyReturn(current_month, _pct_change(base, last_equity)))
            base = last_equity
        current_month = month
        last_equity = point.equity

    if current_month is not None:
        result.append(MonthlyReturn(current_month, _pct_change(base, last_equity)))
    return result


def _pct_change(start: Decimal, end: Decimal) -> float:
    if start == _ZERO:
        return 0.0
    return float(end / start) - 1.0


def _period_returns(equity_curve: Sequence[EquityPoint]) -> list[float]:
    """Simple returns between consecutive equity points."""
    returns: list[float] = []
    for prev, cur in zip(equity_curve, equity_curve[1:]):
        if prev.equity == _ZERO:
            returns.append(0.0)
        else:
            returns.append(float(cur.equity / prev.equity) - 1.0)
    return returns


def _mean_std(values: Sequence[float]) -> tuple[float | None, float | None]:
    """Mean and sample std (ddof=1). std is None with fewer than 2 values."""
    n = len(values)
    if n == 0:
        return None, None
    mean = sum(values) / n
    if n < 2:
        return mean, None
    variance = sum((v - mean) ** 2 for v in values) / (n - 1)
    return mean, math.sqrt(variance)


def _safe_ratio(numerator: float | None, denominator: float | None) -> float | None:
    if numerator is None or denominator is None or denominator == 0.0:
        return None
    return numerator / denominator


def _compute_sortino(returns: Sequence[float], mean_return: float | None) -> float | None:
    """Mean return over downside deviation; None when no period lost money."""
    downside = [r for r in returns if r < 0.0]
    if not downside:
        return None
    downside_dev = math.sqrt(sum(r * r for r in downside) / len(downside))
    return _safe_ratio(mean_return, downside_dev)


def _compute_profit_factor(
    winners: Sequence[ClosedTrade],
    losers: Sequence[ClosedTrade],
) -> float | None:
    """Gross profit / gross loss. Capped at PROFIT_FACTOR_CAP (not infinity)."""
    gross_profit = sum((t.pnl for t in winners), _ZERO)
    gross_loss = abs(sum((t.pnl for t in losers), _ZERO))

    if gross_profit == _ZERO and gross_loss == _ZERO:
        return None
    if gross_loss == _ZERO:
        return PROFIT_FACTOR_CAP
    return float(gross_profit / gross_loss)


def _compute_recovery_factor(
    total_pnl: Decimal,
    equity_curve: Sequence[EquityPoint],
    initial_capital: Decimal,
) -> float | None:
    """Net profit over the largest peak-to-trough loss in money."""
    peak = initial_capital
    max_dd_amount = _ZERO
    for point in equity_curve:
        if point.equity > peak:
            peak = point.equity
        max_dd_amount = max(max_dd_amount, peak - point.equity)
    if max_dd_amount == _ZERO:
        return None
    return float(total_pnl / max_dd_amount)


def _max_streaks(trades: Sequence[ClosedTrade]) -> tuple[int, int]:
    """Longest runs of winning and losing trades; break-even ends both."""
    max_wins = max_losses = 0
    wins = losses = 0
    for t in trades:
        if t.pnl > _ZERO:
            wins += 1
            losses = 0
        elif t.pnl < _ZERO:
            losses += 1
            wins = 0
        else:
            wins = losses = 0
        max_wins = max(max_wins, wins)
        max_losses = max(max_losses, losses)
    return max_wins, max_losses
