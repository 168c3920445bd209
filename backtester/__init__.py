"""Backtesting engine for translated EA strategies."""

__version__ = "0.1.0"
