"""Position simulator: replays bars and produces trades plus an equity curve.

Single forward pass in timestamp order. Per bar:
1. evaluate the exit rule for every open position (closes credit cash),
2. ask the signal generator for intents and open positions up to capacity,
3. mark open positions to market and record one EquityPoint.

Cash here is realized equity: opening a position does not debit it, and
closing credits only the realized P&L. Equity = cash + unrealized P&L.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

import structlog

from edgelab.backtest.config import (
    BacktestConfig,
    ClosedTrade,
    EquityPoint,
    ExitReason,
    SimulatedPosition,
)
from edgelab.backtest.exits import ExitRule, StopTargetTimeExit
from edgelab.backtest.metrics import PerformanceMetrics, summarize
from edgelab.backtest.sizing import PositionSizer, RiskFractionSizer
from edgelab.errors import InsufficientData, InvalidConfig
from edgelab.market.types import Bar, Direction, SignalIntent
from edgelab.strategy.base import GeneratorFactory, SignalGenerator

log = structlog.get_logger()

_ZERO = Decimal("0")
_ONE = Decimal("1")


@dataclass(frozen=True)
class BacktestResult:
    """Complete results of one backtest run."""

    config: BacktestConfig
    trades: tuple[ClosedTrade, ...]
    equity_curve: tuple[EquityPoint, ...]
    metrics: PerformanceMetrics
    positions_opened: int

    @property
    def final_equity(self) -> Decimal:
        return self.equity_curve[-1].equity


def simulate(
    config: BacktestConfig,
    bars: Sequence[Bar],
    generator: SignalGenerator,
    *,
    exit_rule: ExitRule | None = None,
    sizer: PositionSizer | None = None,
) -> BacktestResult:
    """Run one backtest over ``bars``.

    Raises:
        InsufficientData: ``bars`` is empty.
        InvalidConfig: ``config.max_positions`` is below 1.
    """
    if not bars:
        raise InsufficientData(f"No bars to simulate for {config.symbol}")
    if config.max_positions < 1:
        raise InvalidConfig(
            f"max_positions must be >= 1, got {config.max_positions}"
        )

    t0 = time.monotonic()
    exit_rule = exit_rule if exit_rule is not None else StopTargetTimeExit(
        config.max_holding_bars,
    )
    sizer = sizer if sizer is not None else RiskFractionSizer()

    cash = config.initial_capital
    peak = config.initial_capital
    open_positions: list[SimulatedPosition] = []
    trades: list[ClosedTrade] = []
    equity_curve: list[EquityPoint] = []
    positions_opened = 0

    for i, bar in enumerate(bars):
        # 1. Exits
        still_open: list[SimulatedPosition] = []
        for pos in open_positions:
            pos.bars_held += 1
            decision = exit_rule.check(pos, bar)
            if decision is None:
                still_open.append(pos)
                continue
            exit_price = _apply_exit_slippage(decision.price, pos.side, bar, config.slippage)
            trade = _close_position(pos, exit_price, bar, decision.reason)
            trades.append(trade)
            cash += trade.pnl
        open_positions = still_open

        # 2. Entries (generator sees bars[0..i] only)
        intents = generator.generate(bars[: i + 1])
        capacity = config.max_positions - len(open_positions)
        for intent in intents[: max(capacity, 0)]:
            equity_now = cash + sum((p.pnl_at(bar.close) for p in open_positions), _ZERO)
            position = _open_position(config, bar, i, intent, equity_now, sizer)
            if position is None:
                continue
            open_positions.append(position)
            positions_opened += 1

        # 3. Mark to market
        unrealized = _ZERO
        for pos in open_positions:
            pos.unrealized_pnl = pos.pnl_at(bar.close)
            unrealized += pos.unrealized_pnl
        equity = cash + unrealized
        if equity > peak:
            peak = equity
        drawdown = float((peak - equity) / peak)
        equity_curve.append(EquityPoint(bar.timestamp, equity, drawdown))

    # End of data: force-close at the last close (already marked above)
    last_bar = bars[-1]
    for pos in open_positions:
        trade = _close_position(pos, last_bar.close, last_bar, ExitReason.END_OF_DATA)
        trades.append(trade)
        cash += trade.pnl

    metrics = summarize(
        trades,
        equity_curve,
        config.initial_capital,
        annualization_factor=config.annualization_factor,
    )

    elapsed = time.monotonic() - t0
    log.debug(
        "backtest_complete",
        symbol=config.symbol,
        parameters=config.parameters,
        bars_total=len(bars),
        trades=len(trades),
        final_equity=str(equity_curve[-1].equity),
        elapsed_sec=round(elapsed, 4),
    )

    return BacktestResult(
        config=config,
        trades=tuple(trades),
        equity_curve=tuple(equity_curve),
        metrics=metrics,
        positions_opened=positions_opened,
    )


def run_backtest(
    config: BacktestConfig,
    bars: Sequence[Bar],
    generator_factory: GeneratorFactory,
    *,
    exit_rule: ExitRule | None = None,
    sizer: PositionSizer | None = None,
) -> BacktestResult:
    """Build a fresh generator from ``config.parameters`` and simulate."""
    generator = generator_factory(config.parameters)
    return simulate(config, bars, generator, exit_rule=exit_rule, sizer=sizer)


# ----------------------------------------------------------------------
# Position lifecycle
# ----------------------------------------------------------------------


def _open_position(
    config: BacktestConfig,
    bar: Bar,
    index: int,
    intent: SignalIntent,
    equity: Decimal,
    sizer: PositionSizer,
) -> SimulatedPosition | None:
    entry_price = _apply_entry_slippage(bar.close, intent.direction, bar, config.slippage)
    stop_price, target_price = _exit_levels(config, intent, entry_price)

    sizing = sizer.calculate(equity, entry_price, stop_price, config.risk_per_trade)
    if sizing.size <= _ZERO:
        log.debug(
            "position_not_sized",
            symbol=config.symbol,
            timestamp=bar.timestamp.isoformat(),
            reason=sizing.reason,
        )
        return None

    return SimulatedPosition(
        symbol=config.symbol,
        side=intent.direction,
        size=sizing.size,
        entry_price=entry_price,
        entry_time=bar.timestamp,
        entry_index=index,
        stop_price=stop_price,
        target_price=target_price,
    )


def _exit_levels(
    config: BacktestConfig,
    intent: SignalIntent,
    entry_price: Decimal,
) -> tuple[Decimal | None, Decimal | None]:
    """Intent levels win; otherwise derive from the config percentages."""
    sign = intent.direction.sign
    stop = intent.stop_price
    if stop is None and config.stop_loss_pct is not None:
        stop = entry_price * (_ONE - sign * config.stop_loss_pct)
    target = intent.target_price
    if target is None and config.take_profit_pct is not None:
        target = entry_price * (_ONE + sign * config.take_profit_pct)
    return stop, target


def _close_position(
    pos: SimulatedPosition,
    exit_price: Decimal,
    bar: Bar,
    reason: ExitReason,
) -> ClosedTrade:
    pnl = pos.pnl_at(exit_price)
    notional = pos.entry_price * pos.size
    return ClosedTrade(
        symbol=pos.symbol,
        side=pos.side,
        size=pos.size,
        entry_price=pos.entry_price,
        exit_price=exit_price,
        entry_time=pos.entry_time,
        exit_time=bar.timestamp,
        pnl=pnl,
        pnl_pct=float(pnl / notional) if notional != _ZERO else 0.0,
        holding_bars=pos.bars_held,
        holding_seconds=int((bar.timestamp - pos.entry_time).total_seconds()),
        exit_reason=reason,
    )


def _apply_entry_slippage(
    price: Decimal, side: Direction, bar: Bar, slippage: Decimal,
) -> Decimal:
    """Adverse slippage on entry, clamped to the bar's range."""
    if slippage == _ZERO:
        return price
    if side is Direction.BUY:
        return min(price + slippage, bar.high)
    return max(price - slippage, bar.low)


def _apply_exit_slippage(
    price: Decimal, side: Direction, bar: Bar, slippage: Decimal,
) -> Decimal:
    """Adverse slippage on exit, clamped to the bar's range."""
    if slippage == _ZERO:
        return price
    if side is Direction.BUY:
        return max(price - slippage, bar.low)
    return min(price + slippage, bar.high)
