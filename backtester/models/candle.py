from typing import Any

from pydantic import BaseModel, ConfigDict


class Candle(BaseModel):
    """One OHLCV bar; timestamp is epoch milliseconds at bar open."""

    model_config = ConfigDict(frozen=True)

    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float

    def to_strategy_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }
