"""
Ledger - single-position account bookkeeping for strategy code.

Sizing contract: margin = balance * equityPercent / 100, notional =
margin * effectiveLeverage, size = notional / entry price (coin units).
Fees are ``feePercent`` of notional on both entry and exit and are charged
when the position closes. Trade ``pnl`` is net of fees.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence

from backtester.models import Trade

LONG = "LONG"
SHORT = "SHORT"

SIDE_ALIASES = {"LONG": LONG, "BUY": LONG, "SHORT": SHORT, "SELL": SHORT}


@dataclass
class OpenPosition:
    side: str
    entry_index: int
    entry_price: float
    size: float
    order_type: str
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None

    def unrealized_pnl(self, price: float) -> float:
        direction = 1 if self.side == LONG else -1
        return (price - self.entry_price) * self.size * direction


class Ledger:
    """
    Tracks balance, equity, trades and drawdown across one simulated run.

    Strategy code drives it bar by bar::

        ledger = Ledger(candles, settings)
        for i in range(len(candles)):
            ledger.check_exits(i)
            if buy_signal:
                ledger.open(i, "LONG")
            ledger.mark(i)
        return ledger.result()
    """

    def __init__(self, candles: Sequence[Mapping[str, Any]], settings: Mapping[str, Any]) -> None:
        self.candles = candles
        self.initial_balance = float(settings.get("initialBalance") or 10000.0)
        self.balance = self.initial_balance
        self.fee_rate = float(settings.get("feePercent") or 0.0) / 100
        self.equity_percent = float(settings.get("equityPercent") or 0.0)
        self.leverage = float(settings.get("effectiveLeverage") or settings.get("leverage") or 1)
        self.reverse = bool(settings.get("masterReverse"))
        self.symbol = settings.get("symbol")
        self.timeframe = settings.get("timeframe")

        self.position: Optional[OpenPosition] = None
        self.trades: list[dict[str, Any]] = []
        self.equity_curve: list[dict[str, Any]] = []
        self.peak_equity = self.initial_balance
        self.max_drawdown = 0.0
        self.bankrupt = False

    # ------------------------------------------------------------------
    # Position lifecycle
    # ------------------------------------------------------------------
    def position_size(self, price: float) -> float:
        if price <= 0 or self.balance <= 0:
            return 0.0
        notional = self.balance * self.equity_percent / 100 * self.leverage
        return notional / price

    def open(
        self,
        index: int,
        side: str,
        price: Optional[float] = None,
        size: Optional[float] = None,
        order_type: str = "MARKET",
        stop_loss: Optional[float] = None,
        take_profit: Optional[float] = None,
    ) -> bool:
        """
        Open a position; returns False when refused (open position, bankrupt, zero size).

        ``side`` is LONG/SHORT or the order aliases BUY/SELL; anything else raises ValueError.
        """
        position_side = SIDE_ALIASES.get(str(side).upper())
        if position_side is None:
            raise ValueError(f"Unknown position side: {side!r}")
        if self.bankrupt or self.position is not None:
            return False

        if self.reverse:
            position_side = SHORT if position_side == LONG else LONG

        entry_price = float(price if price is not None else self.candles[index]["close"])
        quantity = float(size) if size is not None else self.position_size(entry_price)
        if quantity <= 0:
            return False

        self.position = OpenPosition(
            side=position_side,
            entry_index=index,
            entry_price=entry_price,
            size=quantity,
            order_type=order_type,
            stop_loss=stop_loss,
            take_profit=take_profit,
        )
        return True

    def close(
        self,
        index: int,
        price: Optional[float] = None,
        order_type: Optional[str] = None,
    ) -> Optional[dict[str, Any]]:
        position = self.position
        if position is None:
            return None

        exit_price = float(price if price is not None else self.candles[index]["close"])
        gross = position.unrealized_pnl(exit_price)
        fee = (position.entry_price + exit_price) * position.size * self.fee_rate
        self.balance += gross - fee
        self.position = None

        trade = Trade(
            entry_time=self.candles[position.entry_index]["timestamp"],
            entry_price=position.entry_price,
            exit_time=self.candles[index]["timestamp"],
            exit_price=exit_price,
            side=position.side,
            pnl=gross - fee,
            fee=fee,
            size=position.size,
            duration=index - position.entry_index,
            order_type=order_type or position.order_type,
            balance=self.balance,
        ).to_record()
        self.trades.append(trade)
        return trade

    def check_exits(self, index: int) -> Optional[dict[str, Any]]:
        """Close on stop-loss / take-profit touched by this bar; stop wins a tie."""
        position = self.position
        if position is None:
            return None

        candle = self.candles[index]
        high = float(candle["high"])
        low = float(candle["low"])

        if position.side == LONG:
            if position.stop_loss is not None and low <= position.stop_loss:
                return self.close(index, position.stop_loss, "SELL STOP")
            if position.take_profit is not None and high >= position.take_profit:
                return self.close(index, position.take_profit, "SELL LIMIT")
        else:
            if position.stop_loss is not None and high >= position.stop_loss:
                return self.close(index, position.stop_loss, "BUY STOP")
            if position.take_profit is not None and low <= position.take_profit:
                return self.close(index, position.take_profit, "BUY LIMIT")
        return None

    # ------------------------------------------------------------------
    # Per-bar accounting
    # ------------------------------------------------------------------
    def equity(self, price: float) -> float:
        if self.position is None:
            return self.balance
        return self.balance + self.position.unrealized_pnl(price)

    def mark(self, index: int) -> dict[str, Any]:
        """Record the equity-curve point for bar ``index``; liquidates on bankruptcy."""
        candle = self.candles[index]
        equity = self.equity(float(candle["close"]))

        if equity <= 0 and not self.bankrupt:
            self.bankrupt = True
            balance_before = self.balance
            trade = self.close(index, order_type="LIQUIDATION")
            # Losses stop at the account balance.
            if trade is not None and self.balance < 0:
                self.balance = 0.0
                trade["pnl"] = -balance_before
                trade["balance"] = 0.0
            equity = self.balance

        self.peak_equity = max(self.peak_equity, equity)
        drawdown = 0.0
        if self.peak_equity > 0:
            drawdown = (self.peak_equity - equity) / self.peak_equity * 100
        self.max_drawdown = max(self.max_drawdown, drawdown)

        point = {
            "timestamp": candle["timestamp"],
            "balance": self.balance,
            "equity": equity,
            "drawdown": drawdown,
        }
        self.equity_curve.append(point)
        return point

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------
    def result(self) -> dict[str, Any]:
        if self.position is not None and self.candles:
            self.close(len(self.candles) - 1, order_type="CLOSE")

        pnls = [t["pnl"] for t in self.trades]
        wins = [p for p in pnls if p > 0]
        losses = [p for p in pnls if p <= 0]
        durations = [t["duration"] for t in self.trades]
        total = len(self.trades)

        return {
            "trades": self.trades,
            "equity_curve": self.equity_curve,
            "roi": round((self.balance - self.initial_balance) / self.initial_balance * 100, 2),
            "mdd": round(self.max_drawdown, 2),
            "win_rate": round(len(wins) / total * 100, 2) if total else 0.0,
            "total_trades": total,
            "long_trades": sum(1 for t in self.trades if t["side"] == LONG),
            "short_trades": sum(1 for t in self.trades if t["side"] == SHORT),
            "winning_trades": len(wins),
            "losing_trades": len(losses),
            "max_profit": round(max(wins), 2) if wins else 0.0,
            "max_loss": round(min(losses), 2) if losses else 0.0,
            "avg_profit": round(sum(wins) / len(wins), 2) if wins else 0.0,
            "avg_loss": round(sum(losses) / len(losses), 2) if losses else 0.0,
            "avg_duration": round(sum(durations) / total, 2) if total else 0.0,
            "max_duration": max(durations) if durations else 0,
            "total_fee": round(sum(t["fee"] for t in self.trades), 2),
            "final_balance": round(self.balance, 2),
            "initial_balance": self.initial_balance,
            "bankrupt": self.bankrupt,
            "symbol": self.symbol,
            "timeframe": self.timeframe,
        }
