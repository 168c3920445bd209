from backtester.strategy.source import (
    ENTRY_POINT,
    CleanedSource,
    clean_strategy_source,
    parse_conversion_response,
)
from backtester.strategy.host import (
    InlineExecutor,
    StrategyHost,
    StrategyProgram,
    SubprocessExecutor,
    check_entry_point,
    validate_result,
)
from backtester.strategy.translator import ConversionResult, StrategyTranslator

__all__ = [
    "ENTRY_POINT",
    "CleanedSource",
    "clean_strategy_source",
    "parse_conversion_response",
    "InlineExecutor",
    "StrategyHost",
    "StrategyProgram",
    "SubprocessExecutor",
    "check_entry_point",
    "validate_result",
    "ConversionResult",
    "StrategyTranslator",
]
