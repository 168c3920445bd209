"""
Result Normalizer - reshapes a raw strategy result into the report schema.

Coercion never raises: a missing or non-numeric summary value becomes 0
(``final_balance`` falls back to the initial balance).
"""
from __future__ import annotations

import math
from typing import Any, Mapping, Optional

from loguru import logger

from backtester.models import BacktestReport, EquityCurvePoint, NormalizedTrade

DEFAULT_INITIAL_BALANCE = 10000.0

FLOAT_FIELDS = (
    "roi",
    "mdd",
    "win_rate",
    "max_profit",
    "max_loss",
    "avg_profit",
    "avg_loss",
    "avg_duration",
    "max_duration",
    "total_fee",
)

INT_FIELDS = (
    "total_trades",
    "long_trades",
    "short_trades",
    "winning_trades",
    "losing_trades",
)

_SCALAR_TYPES = (str, int, float, bool, type(None))


def to_float(value: Any, default: Optional[float] = 0.0) -> Optional[float]:
    if isinstance(value, bool):
        return float(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return number


def to_int(value: Any, default: int = 0) -> int:
    number = to_float(value, None)
    if number is None:
        return default
    return int(number)


def normalize_order_type(order_type: Any, side: Any) -> str:
    text = str(order_type) if order_type else "MARKET"
    if side and "BUY" not in text.upper() and "SELL" not in text.upper():
        prefix = "BUY" if str(side).upper() == "LONG" else "SELL"
        text = f"{prefix} {text}"
    return text


def normalize_trade(trade: Mapping[str, Any]) -> Optional[NormalizedTrade]:
    """Normalize one raw trade; ``None`` when it should be dropped."""
    balance = to_float(trade.get("balance"), None)
    if balance is None or balance <= 0:
        return None

    size = to_float(trade.get("size"), 0.0)
    coin_size = round(abs(size), 8)
    entry_price = to_float(trade.get("entry_price"), None)
    usdt_size = round(coin_size * entry_price, 2) if coin_size and entry_price else 0.0

    side = trade.get("side")
    fields = dict(trade)
    fields.update(
        entry_price=entry_price,
        exit_price=to_float(trade.get("exit_price"), None),
        side=str(side).upper() if side else None,
        pnl=to_float(trade.get("pnl")),
        fee=to_float(trade.get("fee")),
        size=size,
        coin_size=coin_size,
        usdt_size=usdt_size,
        duration=to_float(trade.get("duration")),
        order_type=normalize_order_type(trade.get("order_type"), side),
        balance=balance,
    )
    return NormalizedTrade(**fields)


def normalize_equity_point(point: Any) -> Optional[EquityCurvePoint]:
    if not isinstance(point, Mapping):
        return None
    fields = dict(point)
    fields.update(
        balance=to_float(point.get("balance")),
        equity=to_float(point.get("equity")),
        drawdown=to_float(point.get("drawdown")),
    )
    return EquityCurvePoint(**fields)


def normalize_result(raw: Mapping[str, Any], settings: Mapping[str, Any]) -> BacktestReport:
    initial_balance = to_float(settings.get("initialBalance"), None) or DEFAULT_INITIAL_BALANCE

    raw_trades = raw.get("trades") or []
    trades = []
    for item in raw_trades:
        if not isinstance(item, Mapping):
            continue
        normalized = normalize_trade(item)
        if normalized is not None:
            trades.append(normalized)

    dropped = len(raw_trades) - len(trades)
    if dropped:
        logger.info(f"Dropped {dropped} trades without a positive balance")

    equity_curve = [
        point
        for point in (normalize_equity_point(p) for p in (raw.get("equity_curve") or []))
        if point is not None
    ]

    summary: dict[str, Any] = {name: to_float(raw.get(name)) for name in FLOAT_FIELDS}
    summary.update({name: to_int(raw.get(name)) for name in INT_FIELDS})

    # Auxiliary scalar stats the strategy returned ride along unchanged.
    extras = {
        key: value
        for key, value in raw.items()
        if key not in BacktestReport.model_fields
        and isinstance(value, _SCALAR_TYPES)
        and not (isinstance(value, float) and not math.isfinite(value))
    }

    final_balance = to_float(raw.get("final_balance"), None)
    if final_balance is None:
        final_balance = initial_balance

    return BacktestReport(
        **extras,
        trades=trades,
        equity_curve=equity_curve,
        **summary,
        final_balance=final_balance,
        initial_balance=initial_balance,
        symbol=settings.get("symbol"),
        timeframe=settings.get("timeframe"),
    )
