"""Engine error hierarchy.

All engine exceptions inherit from EdgelabError, so callers at the CLI or
service boundary can handle every domain failure with a single except
clause. Every error is local and synchronous: it is raised by the call
that detects it, and a failed run produces no partial result.
"""

from __future__ import annotations


class EdgelabError(Exception):
    """Base exception for all engine errors."""


class InsufficientData(EdgelabError):
    """Bar series is empty or too short for the requested operation."""


class InvalidConfig(EdgelabError):
    """Run, search or analysis configuration is inconsistent."""


class BudgetExceeded(EdgelabError):
    """A search would evaluate more candidates than the caller allows.

    Raised before any evaluation starts.
    """

    def __init__(self, required: int, budget: int) -> None:
        self.required = required
        self.budget = budget
        super().__init__(
            f"Search requires {required} evaluations, budget is {budget}"
        )


class InsufficientTrades(EdgelabError):
    """Too few closed trades to resample."""

    def __init__(self, trade_count: int, minimum: int = 2) -> None:
        self.trade_count = trade_count
        self.minimum = minimum
        super().__init__(
            f"At least {minimum} closed trades required, got {trade_count}"
        )


class UndefinedMetric(EdgelabError):
    """A ratio whose denominator is legitimately zero was requested.

    Metrics store undefined ratios as None; this is raised when a caller
    demands a concrete number via PerformanceMetrics.require().
    """

    def __init__(self, metric: str) -> None:
        self.metric = metric
        super().__init__(f"Metric {metric!r} is undefined for this run")


class MarketDataError(EdgelabError):
    """A series provider could not produce bars (bad file, bad rows)."""


class ResultStoreError(EdgelabError):
    """Persisting a computed result failed."""
