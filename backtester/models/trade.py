from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class Trade(BaseModel):
    """A closed position as recorded by strategy logic.

    ``size`` is a base-asset (coin) quantity, never a USDT notional.
    """

    model_config = ConfigDict(extra="allow")

    entry_time: Optional[int] = None
    entry_price: Optional[float] = None
    exit_time: Optional[int] = None
    exit_price: Optional[float] = None
    side: Optional[Literal["LONG", "SHORT"]] = None
    pnl: float = 0.0
    fee: float = 0.0
    size: float = Field(default=0.0, ge=0.0)
    duration: int = 0
    order_type: str = "MARKET"
    balance: Optional[float] = None

    def to_record(self) -> dict[str, Any]:
        return {
            "entry_time": self.entry_time,
            "entry_price": self.entry_price,
            "exit_time": self.exit_time,
            "exit_price": self.exit_price,
            "side": self.side,
            "pnl": self.pnl,
            "fee": self.fee,
            "size": self.size,
            "duration": self.duration,
            "order_type": self.order_type,
            "balance": self.balance,
        }


class NormalizedTrade(BaseModel):
    model_config = ConfigDict(extra="allow")

    entry_time: Any = None
    entry_price: Optional[float] = None
    exit_time: Any = None
    exit_price: Optional[float] = None
    side: Optional[str] = None
    pnl: float = 0.0
    fee: float = 0.0
    size: float = 0.0
    coin_size: float = Field(ge=0.0)
    usdt_size: float = 0.0
    duration: float = 0.0
    order_type: str
    balance: float = Field(gt=0.0)


class EquityCurvePoint(BaseModel):
    model_config = ConfigDict(extra="allow")

    timestamp: Any = None
    balance: float = 0.0
    equity: float = 0.0
    drawdown: float = 0.0
