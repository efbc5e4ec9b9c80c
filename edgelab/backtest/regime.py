"""Regime classification and regime-conditioned trade analysis.

Labels are a pure function of (bars, window_size, thresholds), so
walk-forward comparisons across runs see identical regimes.
"""

from __future__ import annotations

import math
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from edgelab.backtest.config import ClosedTrade
from edgelab.config import RegimeConfig
from edgelab.errors import InvalidConfig
from edgelab.market.types import Bar

_ZERO = Decimal("0")
_PERIODS_PER_YEAR = 252


class VolatilityRegime(str, Enum):
    NORMAL = "normal"
    HIGH = "high_volatility"
    LOW = "low_volatility"


class TrendRegime(str, Enum):
    NEUTRAL = "neutral"
    BULLISH = "bullish"
    BEARISH = "bearish"


@dataclass(frozen=True)
class RegimeLabel:
    """Regime of the trailing window that ends at bar ``index``.

    volatility is the per-period stdev of log returns; trend is the
    cumulative log return over the window.
    """

    timestamp: datetime
    index: int
    volatility_regime: VolatilityRegime
    trend_regime: TrendRegime
    volatility: float
    annualized_volatility: float
    trend: float

    @property
    def tag(self) -> str:
        """Combined tag, e.g. ``normal``, ``high_volatility_bullish``."""
        if self.trend_regime is TrendRegime.NEUTRAL:
            return self.volatility_regime.value
        return f"{self.volatility_regime.value}_{self.trend_regime.value}"


def classify(
    bars: Sequence[Bar],
    window_size: int = 20,
    thresholds: RegimeConfig | None = None,
) -> list[RegimeLabel]:
    """Label every bar from index ``window_size`` on.

    The label at bar i uses the ``window_size`` log returns ending at bar i.
    Earlier bars are unlabeled.
    """
    if window_size < 2:
        raise InvalidConfig(f"window_size must be >= 2, got {window_size}")
    thresholds = thresholds if thresholds is not None else RegimeConfig()

    closes = [float(b.close) for b in bars]
    for i, c in enumerate(closes):
        if c <= 0.0:
            raise InvalidConfig(f"Non-positive close at bar {i}: {c}")

    log_returns = [math.log(cur / prev) for prev, cur in zip(closes, closes[1:])]

    labels: list[RegimeLabel] = []
    for i in range(window_size, len(bars)):
        window = log_returns[i - window_size:i]
        volatility = _sample_std(window)
        trend = sum(window)
        labels.append(RegimeLabel(
            timestamp=bars[i].timestamp,
            index=i,
            volatility_regime=_volatility_regime(volatility, thresholds),
            trend_regime=_trend_regime(trend, thresholds),
            volatility=volatility,
            annualized_volatility=volatility * math.sqrt(_PERIODS_PER_YEAR),
            trend=trend,
        ))
    return labels


def _sample_std(values: Sequence[float]) -> float:
    n = len(values)
    if n < 2:
        return 0.0
    mean = sum(values) / n
    return math.sqrt(sum((v - mean) ** 2 for v in values) / (n - 1))


def _volatility_regime(volatility: float, thresholds: RegimeConfig) -> VolatilityRegime:
    if volatility > thresholds.high_volatility:
        return VolatilityRegime.HIGH
    if volatility < thresholds.low_volatility:
        return VolatilityRegime.LOW
    return VolatilityRegime.NORMAL


def _trend_regime(trend: float, thresholds: RegimeConfig) -> TrendRegime:
    if abs(trend) <= thresholds.trend:
        return TrendRegime.NEUTRAL
    return TrendRegime.BULLISH if trend > 0 else TrendRegime.BEARISH


# ----------------------------------------------------------------------
# Regime-conditioned analysis
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class RegimePerformance:
    """Trades grouped by the regime tag in force at entry."""

    tag: str
    trade_count: int
    win_rate: float
    avg_pnl_pct: float
    total_pnl: Decimal


@dataclass(frozen=True)
class RegimeTransition:
    """A change of regime tag and the trades entered around it.

    impact is the mean pnl_pct of trades entered within the window, or
    None when no trade was entered near the transition.
    """

    timestamp: datetime
    index: int
    from_tag: str
    to_tag: str
    trade_count: int
    impact: float | None


def label_at(labels: Sequence[RegimeLabel], timestamp: datetime) -> RegimeLabel | None:
    """Most recent label at or before ``timestamp`` (labels must be ordered)."""
    found: RegimeLabel | None = None
    for label in labels:
        if label.timestamp > timestamp:
            break
        found = label
    return found


def regime_breakdown(
    trades: Sequence[ClosedTrade],
    labels: Sequence[RegimeLabel],
) -> list[RegimePerformance]:
    """Group closed trades by entry regime. Trades before the first label go to ``unlabeled``."""
    groups: dict[str, list[ClosedTrade]] = defaultdict(list)
    for trade in trades:
        label = label_at(labels, trade.entry_time)
        groups[label.tag if label is not None else "unlabeled"].append(trade)

    result: list[RegimePerformance] = []
    for tag in sorted(groups):
        group = groups[tag]
        winners = sum(1 for t in group if t.pnl > _ZERO)
        result.append(RegimePerformance(
            tag=tag,
            trade_count=len(group),
            win_rate=winners / len(group),
            avg_pnl_pct=sum(t.pnl_pct for t in group) / len(group),
            total_pnl=sum((t.pnl for t in group), _ZERO),
        ))
    return result


def regime_transitions(
    labels: Sequence[RegimeLabel],
    trades: Sequence[ClosedTrade],
    bars: Sequence[Bar],
    window: int = 5,
) -> list[RegimeTransition]:
    """List tag changes with the mean pnl_pct of trades entered within ``window`` bars."""
    index_by_time = {b.timestamp: i for i, b in enumerate(bars)}
    entry_indices = [
        (index_by_time[t.entry_time], t) for t in trades if t.entry_time in index_by_time
    ]

    transitions: list[RegimeTransition] = []
    for prev, cur in zip(labels, labels[1:]):
        if prev.tag == cur.tag:
            continue
        nearby = [t for idx, t in entry_indices if abs(idx - cur.index) <= window]
        transitions.append(RegimeTransition(
            timestamp=cur.timestamp,
            index=cur.index,
            from_tag=prev.tag,
            to_tag=cur.tag,
            trade_count=len(nearby),
            impact=sum(t.pnl_pct for t in nearby) / len(nearby) if nearby else None,
        ))
    return transitions
