"""Click CLI commands for edgelab."""

from __future__ import annotations

import functools
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click
from pydantic import ValidationError

from edgelab.config import AppConfig, FitnessFunction
from edgelab.errors import EdgelabError
from edgelab.utils.logging import new_correlation_id, setup_logging

if TYPE_CHECKING:
    from edgelab.backtest.config import BacktestConfig
    from edgelab.backtest.metrics import PerformanceMetrics
    from edgelab.backtest.space import ParameterSpace
    from edgelab.market.types import Bar


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Edgelab: backtesting and parameter optimization for trading rules."""
    try:
        cfg = AppConfig()
    except ValidationError as e:
        raise click.ClickException(f"Invalid configuration: {e}") from e
    setup_logging(level=cfg.log_level, log_format=cfg.log_format)
    ctx.obj = cfg


# ----------------------------------------------------------------------
# Shared options and parsing
# ----------------------------------------------------------------------


def _run_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options every command that runs a backtest accepts."""
    options = [
        click.option(
            "--csv", "csv_path", required=True,
            type=click.Path(exists=True, dir_okay=False, path_type=Path),
            help="CSV file with timestamp,open,high,low,close,volume columns.",
        ),
        click.option("--symbol", default=None, help="Symbol name (default: CSV file stem)."),
        click.option("--strategy", default="ma_crossover", help="Signal generator name."),
        click.option(
            "--param", "params", multiple=True,
            help="Generator parameter as NAME=VALUE (repeatable).",
        ),
        click.option("--capital", default=None, type=str, help="Initial capital."),
        click.option("--risk-per-trade", default=None, type=str, help="Fraction of equity risked."),
        click.option("--max-positions", default=None, type=int, help="Max concurrent positions."),
        click.option("--stop-loss", default=None, type=str, help="Stop distance as a fraction."),
        click.option("--take-profit", default=None, type=str, help="Target distance as a fraction."),
        click.option("--max-holding-bars", default=None, type=int, help="Time exit after N bars."),
        click.option("--slippage", default="0", type=str, help="Price slippage per fill."),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _search_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options of commands that run the parameter optimizer."""
    options = [
        click.option(
            "--space", "space_specs", multiple=True, required=True,
            help="Discrete domain as NAME=V1,V2,... (repeatable).",
        ),
        click.option(
            "--risk-range", "risk_specs", multiple=True,
            help="Risk domain as NAME=LOW:HIGH (repeatable).",
        ),
        click.option(
            "--method", default="genetic",
            type=click.Choice(["grid", "random", "genetic"]),
            help="Search method (default: genetic).",
        ),
        click.option(
            "--budget", default=None, type=int,
            help="Grid cap, random draws or genetic generations.",
        ),
        click.option(
            "--fitness", default=None,
            type=click.Choice([f.value for f in FitnessFunction]),
            help="Fitness function (default from config).",
        ),
        click.option("--seed", default=None, type=int, help="Random seed."),
        click.option("--workers", default=1, type=int, help="Parallel backtest workers."),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _domain_errors(func: Callable[..., Any]) -> Callable[..., Any]:
    """Turn engine errors into ClickException with a readable message."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except EdgelabError as e:
            raise click.ClickException(str(e)) from e

    return wrapper


def parse_value(raw: str) -> Any:
    """Parse a CLI literal as int, then float, else keep the string."""
    for cast in (int, float):
        try:
            return cast(raw)
        except ValueError:
            continue
    return raw


def _split_assignment(spec: str, what: str) -> tuple[str, str]:
    name, sep, value = spec.partition("=")
    if not sep or not name.strip() or not value.strip():
        raise click.BadParameter(f"expected NAME=VALUE, got {spec!r}", param_hint=what)
    return name.strip(), value.strip()


def _parse_params(specs: tuple[str, ...]) -> dict[str, Any]:
    params: dict[str, Any] = {}
    for spec in specs:
        name, value = _split_assignment(spec, "--param")
        params[name] = parse_value(value)
    return params


def _parse_space(space_specs: tuple[str, ...], risk_specs: tuple[str, ...]) -> ParameterSpace:
    from edgelab.backtest.space import ParameterSpace, RiskBounds

    parameters: dict[str, list[Any]] = {}
    for spec in space_specs:
        name, values = _split_assignment(spec, "--space")
        parameters[name] = [parse_value(v.strip()) for v in values.split(",") if v.strip()]

    risk: dict[str, RiskBounds] = {}
    for spec in risk_specs:
        name, bounds = _split_assignment(spec, "--risk-range")
        low, sep, high = bounds.partition(":")
        try:
            risk[name] = RiskBounds(float(low), float(high))
        except ValueError as e:
            raise click.BadParameter(
                f"expected NAME=LOW:HIGH, got {spec!r}", param_hint="--risk-range",
            ) from e
        if not sep:
            raise click.BadParameter(
                f"expected NAME=LOW:HIGH, got {spec!r}", param_hint="--risk-range",
            )
    return ParameterSpace(parameters=parameters, risk_parameters=risk)


def _decimal(raw: str | None, what: str) -> Decimal | None:
    if raw is None:
        return None
    try:
        return Decimal(raw)
    except ArithmeticError as e:
        raise click.BadParameter(f"not a number: {raw!r}", param_hint=what) from e


def _build_run(cfg: AppConfig, options: dict[str, Any]) -> tuple[BacktestConfig, list[Bar]]:
    """Load bars and build the run config from the shared run options."""
    from edgelab.backtest.config import BacktestConfig
    from edgelab.market.csv_provider import load_csv_bars

    csv_path: Path = options["csv_path"]
    symbol = options["symbol"] or csv_path.stem
    bars = load_csv_bars(csv_path, symbol)

    try:
        bt_config = BacktestConfig.from_defaults(
            cfg.backtest,
            symbol=symbol,
            strategy=options["strategy"],
            parameters=_parse_params(options["params"]),
            initial_capital=_decimal(options["capital"], "--capital"),
            risk_per_trade=_decimal(options["risk_per_trade"], "--risk-per-trade"),
            max_positions=options["max_positions"],
            stop_loss_pct=_decimal(options["stop_loss"], "--stop-loss"),
            take_profit_pct=_decimal(options["take_profit"], "--take-profit"),
            max_holding_bars=options["max_holding_bars"],
            slippage=_decimal(options["slippage"], "--slippage"),
        )
    except ValidationError as e:
        raise click.ClickException(f"Invalid backtest configuration: {e}") from e
    return bt_config, bars


def _pop_run_options(kwargs: dict[str, Any]) -> dict[str, Any]:
    keys = (
        "csv_path", "symbol", "strategy", "params", "capital", "risk_per_trade",
        "max_positions", "stop_loss", "take_profit", "max_holding_bars", "slippage",
    )
    return {k: kwargs.pop(k) for k in keys}


def _fmt_ratio(value: float | None, pct: bool = False) -> str:
    if value is None:
        return "n/a"
    return f"{value * 100:.2f}%" if pct else f"{value:.2f}"


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------


@cli.command()
@_run_options
@click.option("--save", is_flag=True, help="Persist the run to the result database.")
@click.pass_obj
@_domain_errors
def backtest(cfg: AppConfig, save: bool, **kwargs: Any) -> None:
    """Run one backtest over a CSV price series."""
    from edgelab.backtest.simulator import run_backtest
    from edgelab.backtest.store import create_store, persist_safely
    from edgelab.strategy import resolve_generator_factory

    run_id = new_correlation_id()
    bt_config, bars = _build_run(cfg, _pop_run_options(kwargs))
    factory = resolve_generator_factory(bt_config.strategy)
    result = run_backtest(bt_config, bars, factory)

    click.echo(f"\nBacktest Results: {bt_config.strategy} on {bt_config.symbol} (run {run_id})")
    click.echo(f"Bars:            {len(bars)}")
    click.echo(f"Parameters:      {bt_config.parameters or 'defaults'}")
    _print_metrics(result.metrics, bt_config)

    if save:
        stored = persist_safely(lambda: create_store(cfg.db_path).persist(result))
        if stored is not None:
            click.echo(f"\nResults saved to database (run_id: {stored})")
        else:
            click.echo("\nResults could not be saved (see log).")


@cli.command()
@_run_options
@_search_options
@click.option("--save", is_flag=True, help="Persist the best run to the result database.")
@click.pass_obj
@_domain_errors
def optimize(cfg: AppConfig, save: bool, **kwargs: Any) -> None:
    """Search generator and risk parameters for the best fitness."""
    from edgelab.backtest.optimizer import SearchMethod
    from edgelab.backtest.optimizer import optimize as run_optimize
    from edgelab.backtest.store import create_store, persist_safely
    from edgelab.strategy import resolve_generator_factory
    from edgelab.utils.rng import make_rng

    new_correlation_id()
    bt_config, bars = _build_run(cfg, _pop_run_options(kwargs))
    space = _parse_space(kwargs["space_specs"], kwargs["risk_specs"])
    factory = resolve_generator_factory(bt_config.strategy)
    seed = kwargs["seed"] if kwargs["seed"] is not None else cfg.seed
    fitness = FitnessFunction(kwargs["fitness"]) if kwargs["fitness"] else None

    with _executor(kwargs["workers"]) as executor:
        best = run_optimize(
            bt_config,
            bars,
            space,
            factory,
            SearchMethod(kwargs["method"]),
            kwargs["budget"],
            genetic=cfg.genetic,
            fitness_function=fitness,
            rng=make_rng(seed),
            executor=executor,
        )

    click.echo(f"\nOptimization Results: {best.method.value} search on {bt_config.symbol}")
    click.echo(f"Evaluations:     {best.evaluations}")
    click.echo(f"Best Fitness:    {best.fitness:.4f}")
    click.echo(f"Parameters:      {dict(best.parameters)}")
    if best.risk_parameters:
        risk = {k: round(v, 6) for k, v in best.risk_parameters.items()}
        click.echo(f"Risk Parameters: {risk}")
    if best.history:
        click.echo("\nGenerations:")
        for stats in best.history:
            click.echo(f"  {stats.generation:>4}  best {stats.best_fitness:.4f}")
    _print_metrics(best.result.metrics, best.result.config)

    if save:
        stored = persist_safely(lambda: create_store(cfg.db_path).persist(best.result))
        if stored is not None:
            click.echo(f"\nBest run saved to database (run_id: {stored})")


@cli.command("walk-forward")
@_run_options
@_search_options
@click.option("--window", default=None, type=int, help="Window size in bars.")
@click.option("--step", default=None, type=int, help="Step size in bars.")
@click.option("--oos-ratio", default=None, type=float, help="Out-of-sample fraction.")
@click.option("--save", is_flag=True, help="Persist every period to the result database.")
@click.pass_obj
@_domain_errors
def walk_forward(cfg: AppConfig, save: bool, **kwargs: Any) -> None:
    """Optimize in-sample and validate out-of-sample over sliding windows."""
    from edgelab.backtest.optimizer import SearchMethod
    from edgelab.backtest.store import create_store, persist_safely
    from edgelab.backtest.walk_forward import run_walk_forward, summarize_walk_forward
    from edgelab.strategy import resolve_generator_factory
    from edgelab.utils.rng import make_rng

    new_correlation_id()
    bt_config, bars = _build_run(cfg, _pop_run_options(kwargs))
    space = _parse_space(kwargs["space_specs"], kwargs["risk_specs"])
    factory = resolve_generator_factory(bt_config.strategy)
    seed = kwargs["seed"] if kwargs["seed"] is not None else cfg.seed
    fitness = FitnessFunction(kwargs["fitness"]) if kwargs["fitness"] else None

    with _executor(kwargs["workers"]) as executor:
        periods = run_walk_forward(
            bt_config,
            bars,
            space,
            factory,
            kwargs["window"],
            kwargs["step"],
            kwargs["oos_ratio"],
            settings=cfg.walk_forward,
            method=SearchMethod(kwargs["method"]),
            budget=kwargs["budget"],
            genetic=cfg.genetic,
            fitness_function=fitness,
            rng=make_rng(seed),
            executor=executor,
        )
    summary = summarize_walk_forward(periods)

    click.echo(f"\nWalk-Forward Results: {bt_config.symbol} ({summary.period_count} periods)")
    click.echo(f"  {'#':>3}  {'IS return':>10}  {'OOS return':>10}  {'degradation':>11}  parameters")
    for p in periods:
        click.echo(
            f"  {p.index:>3}  "
            f"{_fmt_ratio(p.in_sample.metrics.total_return, pct=True):>10}  "
            f"{_fmt_ratio(p.out_of_sample.metrics.total_return, pct=True):>10}  "
            f"{_fmt_ratio(p.degradation):>11}  {dict(p.parameters)}"
        )
    click.echo("\nSummary:")
    click.echo(f"  OOS Return:        {_fmt_ratio(summary.out_of_sample_return, pct=True)}")
    click.echo(f"  Profitable OOS:    {_fmt_ratio(summary.profitable_fraction, pct=True)}")
    click.echo(f"  Mean Degradation:  {_fmt_ratio(summary.mean_degradation)}")
    click.echo(f"  Efficiency:        {_fmt_ratio(summary.efficiency)}")

    if save:
        stored = persist_safely(lambda: create_store(cfg.db_path).persist_walk_forward(periods))
        if stored is not None:
            click.echo(f"\nPeriods saved to database (analysis_id: {stored})")


@cli.command("monte-carlo")
@_run_options
@click.option("--simulations", default=None, type=int, help="Number of bootstrap paths.")
@click.option("--confidence", default=None, type=float, help="VaR confidence level.")
@click.option("--seed", default=None, type=int, help="Random seed.")
@click.pass_obj
@_domain_errors
def monte_carlo(
    cfg: AppConfig,
    simulations: int | None,
    confidence: float | None,
    seed: int | None,
    **kwargs: Any,
) -> None:
    """Bootstrap the trades of one backtest to estimate tail risk."""
    from edgelab.backtest.monte_carlo import simulate_monte_carlo
    from edgelab.backtest.simulator import run_backtest
    from edgelab.strategy import resolve_generator_factory
    from edgelab.utils.rng import make_rng

    new_correlation_id()
    bt_config, bars = _build_run(cfg, _pop_run_options(kwargs))
    result = run_backtest(bt_config, bars, resolve_generator_factory(bt_config.strategy))
    mc = simulate_monte_carlo(
        result,
        num_simulations=simulations or cfg.monte_carlo.num_simulations,
        confidence_level=confidence or cfg.monte_carlo.confidence_level,
        rng=make_rng(seed if seed is not None else cfg.seed),
        keep_paths=False,
    )
    s = mc.statistics

    click.echo(f"\nMonte Carlo: {s.simulations} paths over {len(result.trades)} trades")
    click.echo(f"  Expected Return:     {_fmt_ratio(s.expected_return, pct=True)}")
    click.echo(f"  Std Dev:             {_fmt_ratio(s.std_dev, pct=True)}")
    click.echo(f"  VaR ({s.confidence_level:.0%}):          {_fmt_ratio(s.value_at_risk, pct=True)}")
    click.echo(f"  CVaR:                {_fmt_ratio(s.expected_shortfall, pct=True)}")
    click.echo(f"  Probability of Loss: {_fmt_ratio(s.probability_of_loss, pct=True)}")
    low, high = s.confidence_interval
    click.echo(f"  Interval:            [{low * 100:.2f}%, {high * 100:.2f}%]")
    click.echo(f"  Final Equity p5/p50/p95: {mc.p5[-1]:,.2f} / {mc.p50[-1]:,.2f} / {mc.p95[-1]:,.2f}")


@cli.command()
@_run_options
@click.option("--window", default=None, type=int, help="Regime window in bars.")
@click.pass_obj
@_domain_errors
def regimes(cfg: AppConfig, window: int | None, **kwargs: Any) -> None:
    """Label market regimes and break down backtest trades by regime."""
    from collections import Counter

    from edgelab.backtest.regime import classify, regime_breakdown, regime_transitions
    from edgelab.backtest.simulator import run_backtest
    from edgelab.strategy import resolve_generator_factory

    new_correlation_id()
    bt_config, bars = _build_run(cfg, _pop_run_options(kwargs))
    labels = classify(bars, window or cfg.regime.window_size, cfg.regime)
    result = run_backtest(bt_config, bars, resolve_generator_factory(bt_config.strategy))

    click.echo(f"\nRegimes: {bt_config.symbol} ({len(labels)} labeled bars)")
    for tag, count in sorted(Counter(label.tag for label in labels).items()):
        click.echo(f"  {tag:<28} {count:>6} bars")

    click.echo("\nTrades by Regime:")
    for perf in regime_breakdown(result.trades, labels):
        click.echo(
            f"  {perf.tag:<28} {perf.trade_count:>4} trades  "
            f"win {perf.win_rate * 100:5.1f}%  avg {perf.avg_pnl_pct * 100:6.2f}%  "
            f"pnl {perf.total_pnl:,.2f}"
        )

    transitions = regime_transitions(labels, result.trades, bars)
    click.echo(f"\nTransitions: {len(transitions)}")


@cli.command()
@click.pass_obj
def config(cfg: AppConfig) -> None:
    """Show current configuration."""
    click.echo("=== Edgelab Configuration ===\n")

    click.echo(f"Log Level:    {cfg.log_level}")
    click.echo(f"Log Format:   {cfg.log_format}")
    click.echo(f"DB Path:      {cfg.db_path}")
    click.echo(f"Seed:         {cfg.seed if cfg.seed is not None else 'random'}")
    click.echo("")

    click.echo("[Backtest]")
    click.echo(f"  Initial Capital:     {cfg.backtest.initial_capital}")
    click.echo(f"  Risk/Trade:          {cfg.backtest.risk_per_trade}")
    click.echo(f"  Max Positions:       {cfg.backtest.max_positions}")
    click.echo("")

    g = cfg.genetic
    click.echo("[Genetic]")
    click.echo(f"  Population:          {g.population_size}")
    click.echo(f"  Generations:         {g.generations}")
    click.echo(f"  Mutation/Crossover:  {g.mutation_rate} / {g.crossover_rate}")
    click.echo(f"  Elite/Tournament:    {g.elite_size} / {g.tournament_size}")
    click.echo(f"  Fitness:             {g.fitness_function.value}")
    click.echo("")

    click.echo("[Walk-Forward]")
    click.echo(f"  Window/Step:         {cfg.walk_forward.window_size} / {cfg.walk_forward.step_size}")
    click.echo(f"  OOS Ratio:           {cfg.walk_forward.out_of_sample_ratio}")
    click.echo("")

    click.echo("[Monte Carlo]")
    click.echo(f"  Simulations:         {cfg.monte_carlo.num_simulations}")
    click.echo(f"  Confidence:          {cfg.monte_carlo.confidence_level}")
    click.echo("")

    click.echo("[Regime]")
    click.echo(f"  Window:              {cfg.regime.window_size}")
    click.echo(
        f"  Volatility Band:     {cfg.regime.low_volatility} - {cfg.regime.high_volatility}"
    )


# ----------------------------------------------------------------------
# Output helpers
# ----------------------------------------------------------------------


class _NullExecutor:
    """Stand-in context for sequential evaluation."""

    def __enter__(self) -> None:
        return None

    def __exit__(self, *exc: object) -> None:
        return None


def _executor(workers: int) -> Any:
    if workers < 1:
        raise click.BadParameter("must be >= 1", param_hint="--workers")
    if workers == 1:
        return _NullExecutor()
    return ThreadPoolExecutor(max_workers=workers)


def _print_metrics(m: PerformanceMetrics, bt_config: BacktestConfig) -> None:
    click.echo(f"Initial Capital: ${bt_config.initial_capital:,.2f}")

    click.echo("\nPerformance:")
    click.echo(f"  Total Return:    ${m.total_pnl:,.2f} ({_fmt_ratio(m.total_return, pct=True)})")
    click.echo(f"  Final Equity:    ${m.final_equity:,.2f}")
    click.echo(f"  Sharpe Ratio:    {_fmt_ratio(m.sharpe_ratio)}")
    click.echo(f"  Sortino Ratio:   {_fmt_ratio(m.sortino_ratio)}")
    click.echo(f"  Calmar Ratio:    {_fmt_ratio(m.calmar_ratio)}")
    click.echo(f"  Max Drawdown:    -{m.max_drawdown * 100:.2f}%")
    click.echo(f"  Profit Factor:   {_fmt_ratio(m.profit_factor)}")

    click.echo("\nTrades:")
    click.echo(f"  Total:           {m.total_trades}")
    if m.total_trades > 0 and m.win_rate is not None:
        click.echo(f"  Winners:         {m.winning_trades} ({m.win_rate * 100:.1f}%)")
        click.echo(f"  Losers:          {m.losing_trades}")
        click.echo(f"  Avg Win:         ${m.avg_win:,.2f}")
        click.echo(f"  Avg Loss:        -${abs(m.avg_loss):,.2f}")
        click.echo(f"  Largest Win:     ${m.largest_win:,.2f}")
        click.echo(f"  Largest Loss:    -${abs(m.largest_loss):,.2f}")
        click.echo(f"  Max Win Streak:  {m.max_consecutive_wins}")
        click.echo(f"  Max Loss Streak: {m.max_consecutive_losses}")
        if m.avg_holding_bars is not None:
            click.echo(f"  Avg Holding:     {m.avg_holding_bars:.1f} bars")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
