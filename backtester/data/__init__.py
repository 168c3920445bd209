from backtester.data.candles import (
    CandleStore,
    CsvFileCandleStore,
    filter_by_date,
    parse_candles_csv,
    to_epoch_ms,
)
from backtester.data.resample import TIMEFRAME_MINUTES, convert_timeframe
from backtester.data.strategies import StrategyRecord, StrategyRepository

__all__ = [
    "CandleStore",
    "CsvFileCandleStore",
    "filter_by_date",
    "parse_candles_csv",
    "to_epoch_ms",
    "TIMEFRAME_MINUTES",
    "convert_timeframe",
    "StrategyRecord",
    "StrategyRepository",
]
