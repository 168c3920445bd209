from backtester.models.candle import Candle
from backtester.models.trade import Trade, NormalizedTrade, EquityCurvePoint
from backtester.models.report import BacktestRequest, BacktestReport

__all__ = [
    "Candle",
    "Trade",
    "NormalizedTrade",
    "EquityCurvePoint",
    "BacktestRequest",
    "BacktestReport",
]
