import pytest

from backtester.engine.ledger import LONG, SHORT, Ledger

from conftest import make_candles


def _candles(closes):
    return [c.to_strategy_dict() for c in make_candles(closes)]


def _settings(**overrides):
    settings = {
        "initialBalance": 1000.0,
        "equityPercent": 10.0,
        "effectiveLeverage": 1,
        "feePercent": 0.0,
        "masterReverse": False,
        "symbol": "BTCUSDT",
        "timeframe": "1h",
    }
    settings.update(overrides)
    return settings


class TestSizing:
    def test_percentage_of_balance(self):
        ledger = Ledger(_candles([100.0]), _settings(equityPercent=10, effectiveLeverage=5))
        # 1000 * 10% * 5 = 500 notional -> 5 coins at 100
        assert ledger.position_size(100.0) == 5.0

    def test_size_is_coin_quantity(self):
        ledger = Ledger(_candles([100.0, 110.0]), _settings())
        ledger.open(0, LONG)
        trade = ledger.close(1)
        assert trade["size"] == 1.0
        assert trade["entry_price"] == 100.0


class TestLifecycle:
    def test_long_round_trip_with_fees(self):
        ledger = Ledger(_candles([100.0, 110.0]), _settings(feePercent=0.1))
        assert ledger.open(0, "long")
        trade = ledger.close(1)

        fee = (100.0 + 110.0) * 1.0 * 0.001
        assert trade["side"] == LONG
        assert trade["fee"] == pytest.approx(fee)
        assert trade["pnl"] == pytest.approx(10.0 - fee)
        assert trade["balance"] == pytest.approx(1000.0 + 10.0 - fee)
        assert trade["duration"] == 1

    def test_short_profits_on_drop(self):
        ledger = Ledger(_candles([100.0, 90.0]), _settings())
        ledger.open(0, SHORT)
        assert ledger.close(1)["pnl"] == pytest.approx(10.0)

    def test_master_reverse_flips_side(self):
        ledger = Ledger(_candles([100.0, 90.0]), _settings(masterReverse=True))
        ledger.open(0, LONG)
        assert ledger.position.side == SHORT

    def test_single_position(self):
        ledger = Ledger(_candles([100.0, 101.0]), _settings())
        assert ledger.open(0, LONG)
        assert not ledger.open(1, SHORT)

    def test_close_without_position(self):
        assert Ledger(_candles([100.0]), _settings()).close(0) is None

    def test_buy_alias_opens_long(self):
        ledger = Ledger(_candles([100.0, 102.0, 105.0]), _settings())
        assert ledger.open(0, "BUY")
        assert ledger.position.side == LONG
        assert ledger.equity(102.0) == pytest.approx(1002.0)
        trade = ledger.close(2)
        assert trade["side"] == LONG
        assert trade["pnl"] == pytest.approx(5.0)

    def test_sell_alias_opens_short(self):
        ledger = Ledger(_candles([100.0, 90.0]), _settings())
        assert ledger.open(0, "sell")
        assert ledger.close(1)["side"] == SHORT

    def test_unknown_side_rejected(self):
        ledger = Ledger(_candles([100.0]), _settings())
        with pytest.raises(ValueError, match="Unknown position side"):
            ledger.open(0, "FLAT")
        assert ledger.position is None


class TestExits:
    def test_take_profit(self):
        ledger = Ledger(_candles([100.0, 104.0]), _settings())
        ledger.open(0, LONG, take_profit=104.5)
        trade = ledger.check_exits(1)
        assert trade["exit_price"] == 104.5
        assert trade["order_type"] == "SELL LIMIT"

    def test_stop_wins_when_both_touched(self):
        candles = _candles([100.0, 100.0])
        ledger = Ledger(candles, _settings())
        ledger.open(0, LONG, stop_loss=99.5, take_profit=100.5)
        trade = ledger.check_exits(1)
        assert trade["order_type"] == "SELL STOP"
        assert trade["exit_price"] == 99.5

    def test_short_stop(self):
        ledger = Ledger(_candles([100.0, 102.0]), _settings())
        ledger.open(0, SHORT, stop_loss=101.0)
        assert ledger.check_exits(1)["order_type"] == "BUY STOP"

    def test_no_exit(self):
        ledger = Ledger(_candles([100.0, 100.0]), _settings())
        ledger.open(0, LONG, stop_loss=50.0, take_profit=150.0)
        assert ledger.check_exits(1) is None


class TestEquity:
    def test_drawdown_tracks_unrealized_loss(self):
        ledger = Ledger(_candles([100.0, 80.0, 100.0]), _settings(equityPercent=100))
        ledger.open(0, LONG)
        for i in range(3):
            ledger.mark(i)

        assert ledger.equity_curve[1]["equity"] == pytest.approx(800.0)
        assert ledger.equity_curve[1]["drawdown"] == pytest.approx(20.0)
        assert ledger.max_drawdown == pytest.approx(20.0)

    def test_bankruptcy_liquidates_and_stops_trading(self):
        ledger = Ledger(_candles([100.0, 40.0, 50.0]), _settings(equityPercent=100, effectiveLeverage=2))
        ledger.open(0, LONG)
        ledger.mark(0)
        ledger.mark(1)

        assert ledger.bankrupt
        assert ledger.position is None
        assert ledger.trades[-1]["order_type"] == "LIQUIDATION"
        assert not ledger.open(2, LONG)

    def test_liquidation_loss_stops_at_balance(self):
        # 20 coins long at 100; a drop to 40 would lose 1200 of a 1000 balance
        ledger = Ledger(_candles([100.0, 40.0]), _settings(equityPercent=100, effectiveLeverage=2))
        ledger.open(0, LONG)
        ledger.mark(0)
        point = ledger.mark(1)

        trade = ledger.trades[-1]
        assert trade["balance"] == 0.0
        assert trade["pnl"] == pytest.approx(-1000.0)
        assert ledger.balance == 0.0
        assert point["equity"] == 0.0
        assert ledger.result()["roi"] == -100.0


class TestResult:
    def test_no_trades(self):
        candles = _candles([100.0] * 10)
        ledger = Ledger(candles, _settings())
        for i in range(len(candles)):
            ledger.mark(i)
        result = ledger.result()

        assert result["total_trades"] == 0
        assert result["roi"] == 0
        assert result["final_balance"] == 1000.0
        assert len(result["equity_curve"]) == 10
        assert result["symbol"] == "BTCUSDT"

    def test_open_position_closed_at_end(self):
        ledger = Ledger(_candles([100.0, 120.0]), _settings())
        ledger.open(0, LONG)
        result = ledger.result()

        assert result["total_trades"] == 1
        assert result["trades"][0]["order_type"] == "CLOSE"
        assert result["winning_trades"] == 1
        assert result["roi"] == 2.0
        assert result["long_trades"] == 1
