"""
Indicator capability handed to strategy code.

Strategies call indicators by their documented names (``calculateRSI``,
``calculateBB``...). The names are bound into a fresh namespace per run;
nothing here holds state.
"""
from types import MappingProxyType
from typing import Any, Callable

from backtester.indicators import library

INDICATOR_FUNCTIONS: MappingProxyType = MappingProxyType({
    "calculateSMA": library.sma,
    "calculateEMA": library.ema,
    "calculateSMMA": library.smma,
    "calculateLWMA": library.lwma,
    "calculateStdDev": library.stddev,
    "calculateRSI": library.rsi,
    "calculateStochastic": library.stochastic,
    "calculateMACD": library.macd,
    "calculateCCI": library.cci,
    "calculateMomentum": library.momentum,
    "calculateWilliamsR": library.williams_r,
    "calculateATR": library.atr,
    "calculateRVI": library.rvi,
    "calculateBB": library.bollinger_bands,
    "calculateEnvelopes": library.envelopes,
    "calculateSAR": library.parabolic_sar,
    "calculateIchimoku": library.ichimoku,
    "calculateADX": library.adx,
    "calculateOBV": library.obv,
    "calculateAD": library.accumulation_distribution,
    "calculateMFI": library.mfi,
    "calculateAO": library.awesome_oscillator,
    "calculateAC": library.accelerator_oscillator,
    "calculateAlligator": library.alligator,
    "calculateFractals": library.fractals,
    "calculateGator": library.gator,
})


class IndicatorLibrary:
    """Read-only attribute/mapping view over the indicator functions."""

    __slots__ = ()

    def __getattr__(self, name: str) -> Callable[..., Any]:
        try:
            return INDICATOR_FUNCTIONS[name]
        except KeyError:
            raise AttributeError(f"Unknown indicator: {name}") from None

    def __getitem__(self, name: str) -> Callable[..., Any]:
        return INDICATOR_FUNCTIONS[name]

    def __contains__(self, name: object) -> bool:
        return name in INDICATOR_FUNCTIONS

    def __dir__(self) -> list[str]:
        return sorted(INDICATOR_FUNCTIONS)

    def names(self) -> list[str]:
        return sorted(INDICATOR_FUNCTIONS)

    def bindings(self) -> dict[str, Callable[..., Any]]:
        return dict(INDICATOR_FUNCTIONS)


__all__ = ["INDICATOR_FUNCTIONS", "IndicatorLibrary"]
