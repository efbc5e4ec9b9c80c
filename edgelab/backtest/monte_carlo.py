"""Monte Carlo bootstrap of a completed run's trade returns.

Each path resamples ``len(trades)`` trade returns with replacement and
compounds them onto the initial capital. This measures sequencing and
sampling risk of the realized trades, not the risk of the strategy
itself.
"""

from __future__ import annotations

import math
import time
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
import structlog

from edgelab.backtest.simulator import BacktestResult
from edgelab.errors import InsufficientTrades, InvalidConfig
from edgelab.utils.cancellation import CancellationToken, is_cancelled
from edgelab.utils.rng import make_rng

log = structlog.get_logger()

# Paths are generated in chunks; cancellation is checked between chunks.
_CHUNK_SIZE = 1000
_BAND_PERCENTILES = (5.0, 50.0, 95.0)


@dataclass(frozen=True)
class MonteCarloStatistics:
    """Distribution of terminal returns across paths.

    value_at_risk and expected_shortfall are losses (positive = loss).
    """

    simulations: int
    expected_return: float
    std_dev: float
    value_at_risk: float
    expected_shortfall: float
    probability_of_loss: float
    confidence_level: float
    confidence_interval: tuple[float, float]


@dataclass(frozen=True)
class MonteCarloResult:
    """Statistics plus per-step equity bands.

    ``paths`` has shape (simulations, trades + 1), column 0 being the
    initial capital. It is None when paths were not kept.
    """

    statistics: MonteCarloStatistics
    p5: tuple[float, ...]
    p50: tuple[float, ...]
    p95: tuple[float, ...]
    paths: np.ndarray | None
    cancelled: bool = False


def simulate_monte_carlo(
    result: BacktestResult,
    num_simulations: int = 1000,
    confidence_level: float = 0.95,
    rng: np.random.Generator | None = None,
    *,
    keep_paths: bool = True,
    cancel: CancellationToken | None = None,
) -> MonteCarloResult:
    """Bootstrap ``result.trades`` returns (pnl_pct).

    Raises:
        InsufficientTrades: Fewer than two closed trades.
        InvalidConfig: Non-positive simulation count or a confidence level
            outside (0, 1).
    """
    return bootstrap(
        [t.pnl_pct for t in result.trades],
        float(result.config.initial_capital),
        num_simulations=num_simulations,
        confidence_level=confidence_level,
        rng=rng,
        keep_paths=keep_paths,
        cancel=cancel,
    )


def bootstrap(
    trade_returns: Sequence[float],
    initial_capital: float,
    num_simulations: int = 1000,
    confidence_level: float = 0.95,
    rng: np.random.Generator | None = None,
    *,
    keep_paths: bool = True,
    cancel: CancellationToken | None = None,
) -> MonteCarloResult:
    """Resample ``trade_returns`` into equity paths and summarize them.

    The percentile bands need every path, so the full (simulations,
    trades + 1) float64 matrix is held in memory even when ``keep_paths``
    is False: about 8 * simulations * (trades + 1) bytes. ``keep_paths``
    only controls whether it is returned.
    """
    if len(trade_returns) < 2:
        raise InsufficientTrades(len(trade_returns))
    if num_simulations < 1:
        raise InvalidConfig(f"num_simulations must be >= 1, got {num_simulations}")
    if not 0.0 < confidence_level < 1.0:
        raise InvalidConfig(f"confidence_level must be in (0, 1), got {confidence_level}")
    if initial_capital <= 0.0:
        raise InvalidConfig(f"initial_capital must be positive, got {initial_capital}")

    rng = rng if rng is not None else make_rng()
    returns = np.asarray(trade_returns, dtype=float)
    n_trades = len(returns)

    t0 = time.monotonic()
    paths = np.empty((num_simulations, n_trades + 1))
    paths[:, 0] = initial_capital
    done = 0
    cancelled = False
    while done < num_simulations:
        if done and is_cancelled(cancel):
            cancelled = True
            log.info("monte_carlo_cancelled", completed_paths=done)
            break
        size = min(_CHUNK_SIZE, num_simulations - done)
        picks = rng.integers(n_trades, size=(size, n_trades))
        growth = np.cumprod(1.0 + returns[picks], axis=1)
        paths[done:done + size, 1:] = initial_capital * growth
        done += size

    paths = paths[:done]
    terminal = paths[:, -1] / initial_capital - 1.0
    statistics = _statistics(terminal, confidence_level)
    bands = np.percentile(paths, _BAND_PERCENTILES, axis=0)

    log.info(
        "monte_carlo_complete",
        simulations=statistics.simulations,
        trades=n_trades,
        expected_return=round(statistics.expected_return, 6),
        value_at_risk=round(statistics.value_at_risk, 6),
        probability_of_loss=round(statistics.probability_of_loss, 4),
        elapsed_sec=round(time.monotonic() - t0, 3),
    )
    return MonteCarloResult(
        statistics=statistics,
        p5=tuple(float(v) for v in bands[0]),
        p50=tuple(float(v) for v in bands[1]),
        p95=tuple(float(v) for v in bands[2]),
        paths=paths if keep_paths else None,
        cancelled=cancelled,
    )


def _statistics(terminal: np.ndarray, confidence_level: float) -> MonteCarloStatistics:
    ordered = np.sort(terminal)
    n = len(ordered)

    var_index = min(math.floor((1.0 - confidence_level) * n), n - 1)
    value_at_risk = -float(ordered[var_index])
    # Mean of the outcomes strictly beyond the quantile; the worst outcome
    # alone when the quantile is the minimum.
    tail = ordered[:var_index] if var_index > 0 else ordered[:1]
    expected_shortfall = -float(tail.mean())

    lower = ordered[min(math.floor((1.0 - confidence_level) / 2 * n), n - 1)]
    upper = ordered[min(math.floor((1.0 + confidence_level) / 2 * n), n - 1)]

    return MonteCarloStatistics(
        simulations=n,
        expected_return=float(ordered.mean()),
        std_dev=float(ordered.std()),
        value_at_risk=value_at_risk,
        expected_shortfall=expected_shortfall,
        probability_of_loss=float(np.count_nonzero(ordered < 0.0)) / n,
        confidence_level=confidence_level,
        confidence_interval=(float(lower), float(upper)),
    )
