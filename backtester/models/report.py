"""Request and report models for a single backtest run."""
from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from backtester.models.trade import EquityCurvePoint, NormalizedTrade


class BacktestRequest(BaseModel):
    """Inbound backtest request: a strategy reference plus raw settings."""

    strategy_id: Optional[str] = None
    strategy_code: Optional[str] = None
    settings: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _require_strategy(self) -> "BacktestRequest":
        if not self.strategy_id and not self.strategy_code:
            raise ValueError("either strategy_id or strategy_code is required")
        return self


class BacktestReport(BaseModel):
    """Outbound report; every field is always present and typed."""

    model_config = ConfigDict(extra="allow")

    trades: list[NormalizedTrade] = []
    equity_curve: list[EquityCurvePoint] = []
    roi: float = 0.0
    mdd: float = 0.0
    win_rate: float = 0.0
    total_trades: int = 0
    long_trades: int = 0
    short_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    max_profit: float = 0.0
    max_loss: float = 0.0
    avg_profit: float = 0.0
    avg_loss: float = 0.0
    avg_duration: float = 0.0
    max_duration: float = 0.0
    total_fee: float = 0.0
    final_balance: float = 0.0
    initial_balance: float = 0.0
    symbol: Optional[str] = None
    timeframe: Optional[str] = None

    def to_response(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
