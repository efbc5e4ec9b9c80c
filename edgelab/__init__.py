"""Edgelab: backtesting, parameter optimization and robustness analysis."""

__version__ = "0.1.0"
