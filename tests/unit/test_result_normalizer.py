import math

import pytest

from backtester.engine.normalizer import normalize_result, normalize_trade, to_float, to_int
from backtester.models import BacktestReport

SETTINGS = {"initialBalance": 10000.0, "symbol": "BTCUSDT", "timeframe": "1h"}


def _raw_trade(**overrides):
    trade = {
        "entry_time": 1000,
        "entry_price": 50000.0,
        "exit_time": 2000,
        "exit_price": 51000.0,
        "side": "LONG",
        "pnl": 19.8,
        "fee": 0.2,
        "size": 0.02,
        "duration": 1,
        "order_type": "MARKET",
        "balance": 10019.8,
    }
    trade.update(overrides)
    return trade


class TestTrades:
    def test_sizes(self):
        trade = normalize_trade(_raw_trade(size=-0.123456789, entry_price=123.45))
        assert trade.coin_size == 0.12345679
        assert trade.usdt_size == round(0.12345679 * 123.45, 2)

    def test_usdt_zero_without_entry_price(self):
        trade = normalize_trade(_raw_trade(entry_price=None))
        assert trade.usdt_size == 0.0

    @pytest.mark.parametrize(
        "side, order_type, expected",
        [
            ("LONG", "MARKET", "BUY MARKET"),
            ("SHORT", "MARKET", "SELL MARKET"),
            ("long", None, "BUY MARKET"),
            ("SHORT", "SELL STOP", "SELL STOP"),
            ("LONG", "SELL LIMIT", "SELL LIMIT"),
            (None, None, "MARKET"),
        ],
    )
    def test_order_type(self, side, order_type, expected):
        trade = normalize_trade(_raw_trade(side=side, order_type=order_type))
        assert trade.order_type == expected

    @pytest.mark.parametrize("balance", [0, -5, None, "abc", float("nan")])
    def test_dropped_without_positive_balance(self, balance):
        assert normalize_trade(_raw_trade(balance=balance)) is None

    def test_extra_fields_survive(self):
        trade = normalize_trade(_raw_trade(reason="tp hit"))
        assert trade.model_dump()["reason"] == "tp hit"


class TestReport:
    def test_filters_and_shapes_trades(self):
        raw = {
            "trades": [_raw_trade(), _raw_trade(balance=0), "garbage", _raw_trade(side="SHORT", balance=9000)],
            "total_trades": 3,
        }
        report = normalize_result(raw, SETTINGS)

        assert len(report.trades) == 2
        for trade in report.trades:
            assert trade.balance > 0
            assert trade.coin_size >= 0
            assert "BUY" in trade.order_type or "SELL" in trade.order_type
            assert trade.usdt_size == round(trade.coin_size * trade.entry_price, 2)

    def test_summary_coercion(self):
        raw = {
            "trades": [],
            "roi": "12.5",
            "mdd": None,
            "win_rate": "n/a",
            "total_trades": "4",
            "winning_trades": 2.9,
            "max_profit": float("inf"),
        }
        report = normalize_result(raw, SETTINGS)

        assert report.roi == 12.5
        assert report.mdd == 0.0
        assert report.win_rate == 0.0
        assert report.total_trades == 4
        assert report.winning_trades == 2
        assert report.max_profit == 0.0
        assert isinstance(report.total_trades, int)

    @pytest.mark.parametrize("final_balance", [None, "bad", float("nan"), float("inf")])
    def test_final_balance_defaults_to_initial(self, final_balance):
        report = normalize_result({"trades": [], "final_balance": final_balance}, {"initialBalance": 2500})
        assert report.final_balance == 2500.0
        assert math.isfinite(report.final_balance)

    def test_initial_balance_default(self):
        report = normalize_result({"trades": []}, {})
        assert report.initial_balance == 10000.0
        assert report.final_balance == 10000.0

    def test_symbol_and_timeframe_from_settings(self):
        report = normalize_result({"trades": [], "symbol": "ETHUSDT"}, SETTINGS)
        assert report.symbol == "BTCUSDT"
        assert report.timeframe == "1h"

    def test_equity_curve_coerced(self):
        raw = {"trades": [], "equity_curve": [{"timestamp": 1, "balance": "100", "equity": None}, "junk"]}
        report = normalize_result(raw, SETTINGS)

        assert len(report.equity_curve) == 1
        point = report.equity_curve[0]
        assert point.balance == 100.0
        assert point.equity == 0.0
        assert point.drawdown == 0.0

    def test_extra_scalars_pass_through_without_overriding(self):
        raw = {"trades": [], "roi": 3, "sharpe": 1.7, "bankrupt": False, "debug": {"x": 1}}
        response = normalize_result(raw, SETTINGS).to_response()

        assert response["sharpe"] == 1.7
        assert response["bankrupt"] is False
        assert "debug" not in response
        assert response["roi"] == 3.0

    def test_response_has_every_field(self):
        response = normalize_result({"trades": []}, SETTINGS).to_response()
        for name in BacktestReport.model_fields:
            assert name in response


def test_normalization_is_idempotent():
    raw = {
        "trades": [_raw_trade(), _raw_trade(side="SHORT", size=0.5, entry_price=2.5, order_type="BUY STOP")],
        "equity_curve": [{"timestamp": 1, "balance": 1, "equity": 1, "drawdown": 0}],
        "roi": 1.25,
        "final_balance": 10100,
    }
    first = normalize_result(raw, SETTINGS).to_response()
    second = normalize_result(first, SETTINGS).to_response()
    assert second == first


def test_coercion_helpers():
    assert to_float("1.5") == 1.5
    assert to_float(True) == 1.0
    assert to_float(None) == 0.0
    assert to_float(float("nan"), None) is None
    assert to_int("7.9") == 7
    assert to_int(object()) == 0


def test_zero_final_balance_is_kept():
    report = normalize_result({"trades": [], "final_balance": 0}, SETTINGS)
    assert report.final_balance == 0.0
