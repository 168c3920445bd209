"""
Settings normalization.

Merges caller settings with the defaulted risk/money-management knobs so
strategy code never has to guess whether a key exists. Values are not
range-checked; an odd value is the strategy's problem.
"""
from __future__ import annotations

from types import MappingProxyType
from typing import Any, Mapping, Optional

from loguru import logger

FUTURES_FEE_PERCENT = 0.05
SPOT_FEE_PERCENT = 0.1

REQUEST_DEFAULTS = MappingProxyType({
    "symbol": None,
    "market_type": "futures",
    "timeframe": "1h",
    "startDate": None,
    "endDate": None,
    "initialBalance": 10000.0,
})

RISK_DEFAULTS = MappingProxyType({
    # Position sizing
    "leverage": 1,
    "equityPercent": 10.0,
    "maxPositionSize": None,
    "minPositionSize": None,
    # Stop loss / take profit
    "useStopLoss": False,
    "stopLossType": "percent",
    "stopLossPercent": 2.0,
    "atrPeriod": 14,
    "atrStopMultiplier": 2.0,
    "useTakeProfit": False,
    "takeProfitType": "percent",
    "takeProfitPercent": 4.0,
    "atrTakeProfitMultiplier": 3.0,
    "riskRewardRatio": 2.0,
    # Trailing stop / break-even
    "useTrailingStop": False,
    "trailingStopPercent": 1.0,
    "trailingStartPercent": 0.5,
    "useBreakEven": False,
    "breakEvenTriggerPercent": 1.0,
    "breakEvenOffsetPercent": 0.1,
    # Partial close / scaling
    "usePartialClose": False,
    "partialClosePercent": 50.0,
    "partialCloseTriggerPercent": 2.0,
    "useScaleIn": False,
    "scaleInMaxCount": 3,
    "scaleInStepPercent": 1.0,
    "useScaleOut": False,
    "scaleOutPercent": 25.0,
    # Martingale family
    "useMartingale": False,
    "martingaleMultiplier": 2.0,
    "martingaleMaxSteps": 4,
    "useAntiMartingale": False,
    "antiMartingaleMultiplier": 1.5,
    "useRecoveryMode": False,
    "recoveryMultiplier": 1.5,
    # Position and loss limits
    "maxOpenPositions": 1,
    "maxTradesPerDay": None,
    "maxDailyLossPercent": None,
    "maxConsecutiveLosses": None,
    # Direction control
    "tradeDirection": "both",
    "masterReverse": False,
    # Time filter (hours are UTC)
    "useTimeFilter": False,
    "tradingStartHour": 0,
    "tradingEndHour": 23,
    "tradingDays": "0,1,2,3,4,5,6",
    # Market filters
    "useVolatilityFilter": False,
    "minAtrPercent": None,
    "maxAtrPercent": None,
    "useVolumeFilter": False,
    "minVolume": None,
    "useSpreadFilter": False,
    "maxSpreadPercent": None,
    "useTrendFilter": False,
    "trendMaPeriod": 200,
    # Hedging
    "useHedging": False,
    # Grid trading
    "useGridTrading": False,
    "gridLevels": 5,
    "gridSpacingPercent": 1.0,
    # Pyramiding
    "usePyramiding": False,
    "pyramidingMaxEntries": 3,
    "pyramidingStepPercent": 1.0,
    # Costs
    "feePercent": None,
    "slippagePercent": 0.0,
})

RECOGNIZED_KEYS = frozenset(REQUEST_DEFAULTS) | frozenset(RISK_DEFAULTS) | {"effectiveLeverage"}


def default_fee_percent(market_type: Optional[str]) -> float:
    if market_type == "futures":
        return FUTURES_FEE_PERCENT
    return SPOT_FEE_PERCENT


def normalize_settings(
    user_settings: Optional[Mapping[str, Any]],
    parameter_schema: Optional[Mapping[str, Any]] = None,
) -> dict[str, Any]:
    """
    Build the complete settings mapping for one run.

    Args:
        user_settings: Caller-supplied settings (may be partial)
        parameter_schema: Optional strategy parameter schema, e.g.
            ``{"rsiPeriod": {"default": 14, ...}}``; missing strategy
            parameters take their schema default

    Returns:
        A new dict holding every recognized knob. ``None`` from the caller
        counts as "not supplied" for knobs that have a default.
    """
    supplied = dict(user_settings or {})
    normalized: dict[str, Any] = {}

    for key, default in {**REQUEST_DEFAULTS, **RISK_DEFAULTS}.items():
        value = supplied.pop(key, None)
        normalized[key] = default if value is None else value

    for name, entry in (parameter_schema or {}).items():
        if supplied.get(name) is None and isinstance(entry, Mapping) and "default" in entry:
            supplied[name] = entry["default"]

    # Strategy-specific and unknown keys pass through untouched.
    normalized.update(supplied)

    if normalized["feePercent"] is None:
        normalized["feePercent"] = default_fee_percent(normalized["market_type"])

    normalized["effectiveLeverage"] = (
        normalized["leverage"] if normalized["market_type"] == "futures" else 1
    )

    logger.debug(
        f"Settings normalized: {len(normalized)} keys, "
        f"market_type={normalized['market_type']}, fee={normalized['feePercent']}%"
    )
    return normalized
