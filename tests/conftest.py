from pathlib import Path

import pytest

from config.settings import Settings
from backtester.models import Candle

MINUTE_MS = 60_000
HOUR_MS = 60 * MINUTE_MS

NO_TRADE_STRATEGY = '''
def runStrategy(candles, settings):
    ledger = Ledger(candles, settings)
    for i in range(len(candles)):
        ledger.mark(i)
    return ledger.result()
'''

SMA_CROSS_STRATEGY = '''
def runStrategy(candles, settings):
    ledger = Ledger(candles, settings)
    closes = []
    for i, candle in enumerate(candles):
        closes.append(candle["close"])
        ledger.check_exits(i)
        if len(closes) >= 3:
            fast = calculateSMA(closes, 2)
            slow = calculateSMA(closes, 3)
            if fast > slow and ledger.position is None:
                ledger.open(i, "LONG")
            elif fast < slow and ledger.position is not None:
                ledger.close(i)
        ledger.mark(i)
    return ledger.result()
'''

FAILING_STRATEGY = '''
def runStrategy(candles, settings):
    total = 0
    for i, candle in enumerate(candles):
        if i == 3:
            raise ValueError("indicator blew up at bar 3")
        total += candle["close"]
    return {"trades": []}
'''


def make_candles(closes, start=0, step=HOUR_MS, volume=1.0):
    return [
        Candle(
            timestamp=start + i * step,
            open=close,
            high=close + 1,
            low=close - 1,
            close=close,
            volume=volume,
        )
        for i, close in enumerate(closes)
    ]


def candles_to_csv(candles) -> str:
    lines = ["timestamp,open,high,low,close,volume"]
    lines.extend(
        f"{c.timestamp},{c.open},{c.high},{c.low},{c.close},{c.volume}" for c in candles
    )
    return "\n".join(lines) + "\n"


def write_candles(root: Path, market_type: str, symbol: str, candles) -> Path:
    directory = root / market_type
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{symbol}.csv"
    path.write_text(candles_to_csv(candles), encoding="utf-8")
    return path


@pytest.fixture
def settings(tmp_path) -> Settings:
    settings = Settings()
    settings.data.data_path = tmp_path / "candles"
    settings.log_dir = tmp_path / "logs"
    settings.sandbox.executor = "inline"
    settings.strategy_api.base_url = None
    settings.translator.api_key = None
    return settings


@pytest.fixture
def flat_candles():
    return make_candles([100.0] * 10)
