"""
Technical indicators available to strategy code.

Every function takes plain sequences (oldest first) and returns the value
for the most recent bar. The simplified variants (SAR, ADX, Stochastic %D,
MACD signal) mirror what translated strategies were written against, so
their numbers must not silently change.
"""
from __future__ import annotations

import math
from typing import Optional, Sequence

import numpy as np

Series = Sequence[float]

NAN = float("nan")


def _tail(values: Series, period: int) -> np.ndarray:
    arr = np.asarray(values, dtype=float)
    if period <= 0:
        return arr[:0]
    return arr[-period:]


# === MOVING AVERAGES ===

def sma(prices: Series, period: int) -> float:
    if not len(prices) or period <= 0:
        return NAN
    return float(_tail(prices, period).sum() / period)


def ema(prices: Series, period: int) -> float:
    if not len(prices):
        return NAN
    k = 2 / (period + 1)
    value = float(prices[0])
    for price in prices[1:]:
        value = float(price) * k + value * (1 - k)
    return value


def smma(prices: Series, period: int) -> float:
    if not len(prices):
        return NAN
    if len(prices) < period:
        return float(prices[-1])
    value = float(np.mean(np.asarray(prices[:period], dtype=float)))
    for price in prices[period:]:
        value = (value * (period - 1) + float(price)) / period
    return value


def lwma(prices: Series, period: int) -> float:
    window = _tail(prices, period)
    if not len(window):
        return NAN
    weights = np.arange(1, len(window) + 1, dtype=float)
    return float((window * weights).sum() / weights.sum())


def stddev(prices: Series, period: int) -> float:
    window = _tail(prices, period)
    if not len(window):
        return NAN
    mean = window.sum() / period
    return float(math.sqrt(((window - mean) ** 2).sum() / period))


# === OSCILLATORS ===

def rsi(prices: Series, period: int = 14) -> float:
    if len(prices) < period + 1:
        return 50.0
    changes = np.diff(np.asarray(prices, dtype=float)[-(period + 1):])
    gains = changes[changes > 0].sum()
    losses = -changes[changes < 0].sum()
    if losses == 0:
        return 100.0
    rs = (gains / period) / (losses / period)
    return float(100 - 100 / (1 + rs))


def stochastic(
    highs: Series,
    lows: Series,
    closes: Series,
    k_period: int = 14,
    d_period: int = 3,
) -> dict[str, float]:
    highest = float(_tail(highs, k_period).max())
    lowest = float(_tail(lows, k_period).min())
    span = highest - lowest
    k = ((float(closes[-1]) - lowest) / span) * 100 if span else 50.0
    return {"k": k, "d": k}


def macd(
    prices: Series,
    fast_period: int = 12,
    slow_period: int = 26,
    signal_period: int = 9,
) -> dict[str, float]:
    value = ema(prices, fast_period) - ema(prices, slow_period)
    return {"macd": value, "signal": value, "histogram": 0.0}


def cci(highs: Series, lows: Series, closes: Series, period: int = 20) -> float:
    tp = (float(highs[-1]) + float(lows[-1]) + float(closes[-1])) / 3
    mean = sma(closes, period)
    mean_dev = float(np.abs(_tail(closes, period) - mean).sum() / period)
    if mean_dev == 0:
        return 0.0
    return (tp - mean) / (0.015 * mean_dev)


def momentum(prices: Series, period: int = 14) -> float:
    if len(prices) <= period:
        return 0.0
    return float(prices[-1]) - float(prices[-1 - period])


def williams_r(highs: Series, lows: Series, closes: Series, period: int = 14) -> float:
    highest = float(_tail(highs, period).max())
    lowest = float(_tail(lows, period).min())
    span = highest - lowest
    if span == 0:
        return -50.0
    return ((highest - float(closes[-1])) / span) * -100


def atr(highs: Series, lows: Series, closes: Series, period: int = 14) -> float:
    if len(highs) < period + 1:
        return 0.0
    total = 0.0
    start = max(1, len(highs) - period)
    for i in range(start, len(highs)):
        h = float(highs[i])
        lo = float(lows[i])
        prev_close = float(closes[i - 1])
        total += max(h - lo, abs(h - prev_close), abs(lo - prev_close))
    return total / min(period, len(highs) - 1)


def rvi(opens: Series, closes: Series, highs: Series, lows: Series, period: int = 10) -> float:
    num = float(closes[-1]) - float(opens[-1])
    den = float(highs[-1]) - float(lows[-1])
    return 0.0 if den == 0 else num / den


# === TREND ===

def bollinger_bands(prices: Series, period: int = 20, deviation: float = 2) -> dict[str, float]:
    middle = sma(prices, period)
    std = stddev(prices, period)
    return {
        "upper": middle + deviation * std,
        "middle": middle,
        "lower": middle - deviation * std,
    }


def envelopes(prices: Series, period: int = 14, deviation: float = 0.1) -> dict[str, float]:
    ma = sma(prices, period)
    return {"upper": ma * (1 + deviation), "lower": ma * (1 - deviation)}


def parabolic_sar(
    highs: Series,
    lows: Series,
    closes: Series,
    acceleration: float = 0.02,
    maximum: float = 0.2,
) -> float:
    # Simplified: recent extreme on the side opposite the last close move.
    if len(closes) < 2:
        return float(lows[-1])
    if float(closes[-1]) > float(closes[-2]):
        return float(_tail(lows, 5).min())
    return float(_tail(highs, 5).max())


def ichimoku(
    highs: Series,
    lows: Series,
    tenkan: int = 9,
    kijun: int = 26,
    senkou_b: int = 52,
) -> dict[str, float]:
    def midpoint(period: int) -> float:
        return (float(_tail(highs, period).max()) + float(_tail(lows, period).min())) / 2

    tenkan_sen = midpoint(tenkan)
    kijun_sen = midpoint(kijun)
    return {
        "tenkan": tenkan_sen,
        "kijun": kijun_sen,
        "spanA": (tenkan_sen + kijun_sen) / 2,
        "spanB": midpoint(senkou_b),
    }


def adx(highs: Series, lows: Series, closes: Series, period: int = 14) -> float:
    last_close = float(closes[-1])
    if last_close == 0:
        return 0.0
    return min(100.0, atr(highs, lows, closes, period) / last_close * 100)


# === VOLUMES ===

def obv(closes: Series, volumes: Series) -> float:
    total = 0.0
    for i in range(1, len(closes)):
        if closes[i] > closes[i - 1]:
            total += float(volumes[i])
        elif closes[i] < closes[i - 1]:
            total -= float(volumes[i])
    return total


def accumulation_distribution(highs: Series, lows: Series, closes: Series, volumes: Series) -> float:
    total = 0.0
    for h, lo, c, v in zip(highs, lows, closes, volumes):
        span = h - lo
        if span == 0:
            continue
        clv = ((c - lo) - (h - c)) / span
        total += clv * v
    return float(total)


def mfi(highs: Series, lows: Series, closes: Series, volumes: Series, period: int = 14) -> float:
    pos_flow = 0.0
    neg_flow = 0.0
    for i in range(max(1, len(closes) - period), len(closes)):
        money_flow = (highs[i] + lows[i] + closes[i]) / 3 * volumes[i]
        if closes[i] > closes[i - 1]:
            pos_flow += money_flow
        else:
            neg_flow += money_flow
    if neg_flow == 0:
        return 100.0
    return float(100 - 100 / (1 + pos_flow / neg_flow))


# === BILL WILLIAMS ===

def awesome_oscillator(highs: Series, lows: Series) -> float:
    medians = [(h + lo) / 2 for h, lo in zip(highs, lows)]
    return sma(medians, 5) - sma(medians, 34)


def accelerator_oscillator(highs: Series, lows: Series) -> float:
    ao = awesome_oscillator(highs, lows)
    return ao - sma([ao], 5)


def alligator(highs: Series, lows: Series, closes: Series) -> dict[str, float]:
    median = (float(highs[-1]) + float(lows[-1])) / 2
    return {
        "jaw": smma([median], 13),
        "teeth": smma([median], 8),
        "lips": smma([median], 5),
    }


def fractals(highs: Series, lows: Series) -> dict[str, Optional[float]]:
    n = len(highs)
    if n < 5:
        return {"up": None, "down": None}

    pivot_high = highs[n - 3]
    pivot_low = lows[n - 3]
    up = all(pivot_high > highs[j] for j in (n - 5, n - 4, n - 2, n - 1))
    down = all(pivot_low < lows[j] for j in (n - 5, n - 4, n - 2, n - 1))
    return {
        "up": float(pivot_high) if up else None,
        "down": float(pivot_low) if down else None,
    }


def gator(highs: Series, lows: Series, closes: Series) -> dict[str, float]:
    lines = alligator(highs, lows, closes)
    return {
        "upper": abs(lines["jaw"] - lines["teeth"]),
        "lower": abs(lines["teeth"] - lines["lips"]),
    }
