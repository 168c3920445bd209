import math

import pytest

from backtester.indicators import INDICATOR_FUNCTIONS, IndicatorLibrary
from backtester.indicators import library

PRICES = [1.0, 2.0, 3.0, 4.0, 5.0]


class TestMovingAverages:
    def test_sma_uses_last_window(self):
        assert library.sma(PRICES, 3) == 4.0

    def test_ema_seeds_with_first_price(self):
        # k = 0.5: 1 -> 1.5 -> 2.25
        assert library.ema([1.0, 2.0, 3.0], 3) == 2.25

    def test_smma_short_input_returns_last(self):
        assert library.smma([3.0, 4.0], 5) == 4.0

    def test_smma(self):
        # seed mean(1, 2) = 1.5, then (1.5 + 3) / 2
        assert library.smma([1.0, 2.0, 3.0], 2) == 2.25

    def test_lwma(self):
        assert library.lwma([1.0, 2.0, 3.0], 3) == pytest.approx(14 / 6)

    @pytest.mark.parametrize("fn", [library.sma, library.ema, library.smma, library.lwma])
    def test_empty_input_is_nan(self, fn):
        assert math.isnan(fn([], 5))

    def test_stddev(self):
        assert library.stddev([2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0], 8) == 2.0


class TestOscillators:
    def test_rsi_neutral_on_short_input(self):
        assert library.rsi([1.0, 2.0], 14) == 50.0

    def test_rsi_all_gains(self):
        assert library.rsi(PRICES, 4) == 100.0

    def test_rsi_mixed(self):
        # gains 2, losses 1 over period 2 -> rs 2 -> 66.67
        assert library.rsi([10.0, 12.0, 11.0], 2) == pytest.approx(100 - 100 / 3)

    def test_stochastic(self):
        result = library.stochastic([10.0, 12.0], [8.0, 9.0], [9.0, 10.0], 2)
        assert result["k"] == 50.0
        assert result["d"] == result["k"]

    def test_cci_zero_deviation(self):
        flat = [5.0] * 20
        assert library.cci(flat, flat, flat, 20) == 0.0

    def test_momentum(self):
        assert library.momentum(PRICES, 2) == 2.0
        assert library.momentum(PRICES, 10) == 0.0

    def test_williams_r(self):
        assert library.williams_r([10.0, 12.0], [8.0, 9.0], [9.0, 10.0], 2) == -50.0

    def test_atr(self):
        highs = [2.0, 3.0, 4.0]
        lows = [1.0, 2.0, 3.0]
        closes = [1.5, 2.5, 3.5]
        assert library.atr(highs, lows, closes, 2) == 1.5
        assert library.atr(highs, lows, closes, 14) == 0.0

    def test_macd_simplified(self):
        result = library.macd(PRICES, 2, 4, 3)
        assert result["signal"] == result["macd"]
        assert result["histogram"] == 0.0


class TestBandsAndVolume:
    def test_bollinger(self):
        bands = library.bollinger_bands([2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0], 8, 2)
        assert bands == {"upper": 9.0, "middle": 5.0, "lower": 1.0}

    def test_envelopes(self):
        result = library.envelopes([10.0, 10.0], 2, 0.1)
        assert result["upper"] == pytest.approx(11.0)
        assert result["lower"] == pytest.approx(9.0)

    def test_obv(self):
        assert library.obv([1.0, 2.0, 1.5, 1.5], [10.0, 20.0, 5.0, 7.0]) == 15.0

    def test_mfi_no_negative_flow(self):
        assert library.mfi([2.0, 3.0], [1.0, 2.0], [1.5, 2.5], [1.0, 1.0], 14) == 100.0

    def test_fractals(self):
        highs = [1.0, 2.0, 5.0, 2.0, 1.0]
        lows = [1.0, 0.5, 0.8, 0.9, 1.0]
        result = library.fractals(highs, lows)
        assert result == {"up": 5.0, "down": None}
        assert library.fractals(highs[:4], lows[:4]) == {"up": None, "down": None}

    def test_ichimoku_keys(self):
        result = library.ichimoku([2.0] * 60, [1.0] * 60)
        assert result == {"tenkan": 1.5, "kijun": 1.5, "spanA": 1.5, "spanB": 1.5}


class TestLibrary:
    def test_documented_names(self):
        for name in ("calculateSMA", "calculateRSI", "calculateBB", "calculateSAR", "calculateGator", "calculateStdDev"):
            assert name in INDICATOR_FUNCTIONS

    def test_attribute_and_item_access(self):
        indicators = IndicatorLibrary()
        assert indicators.calculateSMA is library.sma
        assert indicators["calculateRSI"] is library.rsi
        assert "calculateMACD" in indicators

    def test_unknown_indicator(self):
        with pytest.raises(AttributeError):
            IndicatorLibrary().calculateNope

    def test_registry_is_read_only(self):
        with pytest.raises(TypeError):
            INDICATOR_FUNCTIONS["calculateSMA"] = len

    def test_bindings_are_copies(self):
        bindings = IndicatorLibrary().bindings()
        bindings.clear()
        assert IndicatorLibrary().names()
