"""Tests for the position simulator."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from edgelab.backtest.config import ExitReason
from edgelab.backtest.simulator import run_backtest, simulate
from edgelab.backtest.sizing import StopDistanceSizer
from edgelab.errors import InsufficientData, InvalidConfig, UndefinedMetric
from edgelab.market.types import Direction, SignalIntent
from tests.factories import (
    ScriptedGenerator,
    buy,
    flat_series,
    make_bar,
    make_config,
    make_series,
    scripted_factory,
    sell,
)

_TOLERANCE = Decimal("1e-12")


def _scenario_b_bars() -> list:
    """Flat at 1.1000 through bar 10, then +0.0010 per bar to 1.1100 at bar 20."""
    closes = ["1.1000"] * 11
    closes += [f"{Decimal('1.1000') + Decimal('0.0010') * i:.4f}" for i in range(1, 11)]
    closes += ["1.1100"] * 4
    return make_series(closes)


class TestFlatSeriesNoSignals:
    """100 flat bars with a generator that never fires."""

    def test_no_trades_and_constant_equity(self) -> None:
        bars = flat_series(100)
        result = simulate(make_config(), bars, ScriptedGenerator({}))

        assert result.trades == ()
        assert len(result.equity_curve) == 100
        assert all(p.equity == Decimal("10000") for p in result.equity_curve)
        assert all(p.drawdown == 0.0 for p in result.equity_curve)

    def test_total_return_zero_and_ratios_undefined(self) -> None:
        result = simulate(make_config(), flat_series(100), ScriptedGenerator({}))
        m = result.metrics

        assert m.total_return == 0.0
        assert m.sharpe_ratio is None
        assert m.sortino_ratio is None
        assert m.calmar_ratio is None
        assert m.win_rate is None
        assert m.profit_factor is None
        for name in ("sharpe_ratio", "sortino_ratio", "calmar_ratio", "win_rate", "profit_factor"):
            with pytest.raises(UndefinedMetric):
                m.require(name)


class TestTargetHit:
    """One long opened at bar 10, target reached at bar 20."""

    def test_single_trade_exits_at_target(self) -> None:
        bars = _scenario_b_bars()
        intent = buy(stop_price=Decimal("1.0950"), target_price=Decimal("1.1100"))
        result = simulate(make_config(), bars, ScriptedGenerator({10: [intent]}))

        assert len(result.trades) == 1
        trade = result.trades[0]
        assert trade.exit_reason is ExitReason.TARGET_HIT
        assert trade.entry_price == Decimal("1.1000")
        assert trade.exit_price == Decimal("1.1100")
        assert trade.entry_time == bars[10].timestamp
        assert trade.exit_time == bars[20].timestamp
        assert trade.holding_bars == 10
        assert trade.pnl_pct == pytest.approx(0.00909, abs=1e-4)

    def test_pnl_reconciles_with_final_equity(self) -> None:
        intent = buy(stop_price=Decimal("1.0950"), target_price=Decimal("1.1100"))
        result = simulate(make_config(), _scenario_b_bars(), ScriptedGenerator({10: [intent]}))

        total_pnl = sum(t.pnl for t in result.trades)
        assert abs(total_pnl - (result.final_equity - Decimal("10000"))) < _TOLERANCE


class TestExitRules:
    """Stop, target, time and end-of-data exits."""

    def test_stop_fills_at_open_on_gap(self) -> None:
        bars = make_series(["100", "100", "100"])
        gap = make_bar(
            timestamp=bars[-1].timestamp + timedelta(days=1),
            open=Decimal("92"),
            high=Decimal("93"),
            low=Decimal("89"),
            close=Decimal("90"),
        )
        bars.append(gap)
        result = simulate(
            make_config(), bars, ScriptedGenerator({1: [buy(stop_price=Decimal("95"))]}),
        )

        trade = result.trades[0]
        assert trade.exit_reason is ExitReason.STOP_HIT
        assert trade.exit_price == Decimal("92")

    def test_stop_checked_before_target(self) -> None:
        bars = make_series(["100", "100"])
        wide = make_bar(
            timestamp=bars[-1].timestamp + timedelta(days=1),
            open=Decimal("100"),
            high=Decimal("110"),
            low=Decimal("90"),
            close=Decimal("100"),
        )
        bars.append(wide)
        intent = buy(stop_price=Decimal("95"), target_price=Decimal("105"))
        result = simulate(make_config(), bars, ScriptedGenerator({1: [intent]}))

        assert result.trades[0].exit_reason is ExitReason.STOP_HIT
        assert result.trades[0].exit_price == Decimal("95")

    def test_short_target_hit(self) -> None:
        bars = make_series(["100", "100", "98", "96"])
        intent = sell(target_price=Decimal("97"))
        result = simulate(make_config(), bars, ScriptedGenerator({1: [intent]}))

        trade = result.trades[0]
        assert trade.side is Direction.SELL
        assert trade.exit_reason is ExitReason.TARGET_HIT
        assert trade.exit_price == Decimal("97")
        # size = 10000 * 0.02 / 100 = 2
        assert trade.pnl == Decimal("6")

    def test_time_exit_after_max_holding_bars(self) -> None:
        bars = flat_series(10, "100", spread=Decimal("1"))
        config = make_config(max_holding_bars=3)
        result = simulate(config, bars, ScriptedGenerator({2: [buy()]}))

        trade = result.trades[0]
        assert trade.exit_reason is ExitReason.TIME_EXIT
        assert trade.holding_bars == 3
        assert trade.exit_time == bars[5].timestamp

    def test_config_percentages_used_without_intent_levels(self) -> None:
        bars = make_series(["100", "100", "101", "103"])
        config = make_config(take_profit_pct=Decimal("0.02"))
        result = simulate(config, bars, ScriptedGenerator({1: [buy()]}))

        trade = result.trades[0]
        assert trade.exit_reason is ExitReason.TARGET_HIT
        assert trade.exit_price == Decimal("102.00")

    def test_open_positions_closed_at_end_of_data(self) -> None:
        bars = make_series(["100", "100", "101", "102"])
        result = simulate(make_config(), bars, ScriptedGenerator({1: [buy()]}))

        trade = result.trades[0]
        assert trade.exit_reason is ExitReason.END_OF_DATA
        assert trade.exit_price == Decimal("102")
        assert trade.exit_time == bars[-1].timestamp


class TestCapacityAndSizing:
    """max_positions, sizers and slippage."""

    def test_opens_at_most_max_positions(self) -> None:
        bars = flat_series(5, "100")
        config = make_config(max_positions=2)
        result = simulate(config, bars, ScriptedGenerator({1: [buy()] * 5}))

        assert result.positions_opened == 2
        assert len(result.trades) == 2

    def test_default_size_is_risk_fraction_of_equity(self) -> None:
        bars = make_series(["100", "100", "110"])
        result = simulate(make_config(), bars, ScriptedGenerator({1: [buy()]}))

        assert result.trades[0].size == Decimal("2")
        assert result.trades[0].pnl == Decimal("20")

    def test_injected_sizer_is_used(self) -> None:
        bars = make_series(["100", "100", "101"])
        intent = buy(stop_price=Decimal("98"))
        result = simulate(
            make_config(),
            bars,
            ScriptedGenerator({1: [intent]}),
            sizer=StopDistanceSizer(),
        )

        # risk 200 / stop distance 2 = 100 units, capped at 10000/100 = 100
        assert result.trades[0].size == Decimal("100")

    def test_entry_slippage_is_adverse(self) -> None:
        bars = flat_series(3, "100", spread=Decimal("1"))
        config = make_config(slippage=Decimal("0.5"))
        result = simulate(config, bars, ScriptedGenerator({1: [buy()]}))

        trade = result.trades[0]
        assert trade.entry_price == Decimal("100.5")
        assert trade.pnl < 0

    def test_exit_slippage_is_adverse_and_clamped(self) -> None:
        bars = flat_series(4, "100", spread=Decimal("1"))
        config = make_config(slippage=Decimal("2"), max_holding_bars=1)
        result = simulate(config, bars, ScriptedGenerator({1: [buy()]}))

        trade = result.trades[0]
        assert trade.exit_reason is ExitReason.TIME_EXIT
        # Both fills clamp to the bar range: entry at the high, exit at the low
        assert trade.entry_price == Decimal("101")
        assert trade.exit_price == Decimal("99")


class TestValidation:
    """Rejected inputs."""

    def test_empty_bars(self) -> None:
        with pytest.raises(InsufficientData):
            simulate(make_config(), [], ScriptedGenerator({}))

    def test_max_positions_below_one(self) -> None:
        with pytest.raises(InvalidConfig):
            simulate(make_config(max_positions=0), flat_series(5), ScriptedGenerator({}))


class TestLookahead:
    """The generator only ever sees bars up to the current one."""

    def test_generator_called_once_per_bar_with_growing_history(self) -> None:
        bars = flat_series(25)
        generator = ScriptedGenerator({})
        simulate(make_config(), bars, generator)

        assert generator.calls == 25
        assert generator.max_history == 25

    def test_run_backtest_builds_generator_from_parameters(self) -> None:
        seen: list[dict] = []

        def factory(parameters):
            seen.append(dict(parameters))
            return ScriptedGenerator({})

        run_backtest(make_config(parameters={"fast_period": 5}), flat_series(3), factory)
        assert seen == [{"fast_period": 5}]


_intent_kinds = st.sampled_from(["buy", "sell"])


class TestSimulatorInvariants:
    """Property tests over random price paths and signal schedules."""

    @given(
        closes=st.lists(st.integers(min_value=50, max_value=150), min_size=1, max_size=60),
        schedule=st.dictionaries(
            st.integers(min_value=0, max_value=59),
            st.lists(_intent_kinds, min_size=1, max_size=3),
            max_size=15,
        ),
        max_positions=st.integers(min_value=1, max_value=3),
        max_holding_bars=st.none() | st.integers(min_value=1, max_value=10),
    )
    @settings(max_examples=150, deadline=None)
    def test_invariants_hold(
        self,
        closes: list[int],
        schedule: dict[int, list[str]],
        max_positions: int,
        max_holding_bars: int | None,
    ) -> None:
        bars = make_series(closes, spread=Decimal("1"))
        config = make_config(
            max_positions=max_positions,
            max_holding_bars=max_holding_bars,
            stop_loss_pct=Decimal("0.05"),
            take_profit_pct=Decimal("0.05"),
        )
        intents = {
            i: [SignalIntent(Direction(kind)) for kind in kinds]
            for i, kinds in schedule.items()
        }
        result = run_backtest(config, bars, scripted_factory(intents))

        # One equity point per bar
        assert len(result.equity_curve) == len(bars)

        # Realized P&L reconciles with final equity
        total_pnl = sum((t.pnl for t in result.trades), Decimal("0"))
        assert abs(total_pnl - (result.final_equity - config.initial_capital)) < _TOLERANCE

        # Drawdown non-negative, running peak non-decreasing
        peak = config.initial_capital
        for point in result.equity_curve:
            assert point.drawdown >= 0.0
            new_peak = max(peak, point.equity)
            assert new_peak >= peak
            peak = new_peak

        # Every opened position is closed by end of data
        assert len(result.trades) == result.positions_opened
        assert all(t.holding_bars >= 0 for t in result.trades)
