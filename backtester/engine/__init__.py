# The simulator lives in backtester.engine.simulator; it imports the strategy
# host, which itself needs the ledger from this package.
from backtester.engine.settings import (
    FUTURES_FEE_PERCENT,
    SPOT_FEE_PERCENT,
    RISK_DEFAULTS,
    default_fee_percent,
    normalize_settings,
)
from backtester.engine.ledger import Ledger
from backtester.engine.normalizer import normalize_result

__all__ = [
    "FUTURES_FEE_PERCENT",
    "SPOT_FEE_PERCENT",
    "RISK_DEFAULTS",
    "default_fee_percent",
    "normalize_settings",
    "Ledger",
    "normalize_result",
]
