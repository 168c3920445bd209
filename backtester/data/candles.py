"""
Candle file store.

Files are partitioned by market type under a root directory:
``{root}/{market_type}/{symbol}.csv`` or, for older uploads,
``{root}/{market_type}/{market_type}_{symbol}.csv``.
Columns: ``timestamp,open,high,low,close,volume`` with a header row.
"""
from __future__ import annotations

import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from loguru import logger

from backtester.models import Candle
from backtester.utils.exceptions import CandleDataError, NotFoundError

_SAFE_NAME = re.compile(r"^[A-Za-z0-9_.\-]+$")


class CandleStore:
    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def resolve_path(self, market_type: str, symbol: str) -> Path:
        _check_name(market_type, "market_type")
        _check_name(symbol, "symbol")

        directory = self.root / market_type
        candidates = [
            directory / f"{symbol}.csv",
            directory / f"{market_type}_{symbol}.csv",
        ]
        for path in candidates:
            if path.exists():
                return path

        raise NotFoundError("Candle file", f"{market_type}/{symbol}")

    def load(self, market_type: str, symbol: str) -> list[Candle]:
        path = self.resolve_path(market_type, symbol)
        logger.info(f"Reading candles from {path}")

        candles = parse_candles_csv(path.read_text(encoding="utf-8"), source=str(path))
        logger.info(f"Parsed {len(candles)} candles for {market_type}/{symbol}")
        return candles

    def save(self, market_type: str, symbol: str, csv_text: str) -> Path:
        _check_name(market_type, "market_type")
        _check_name(symbol, "symbol")

        directory = self.root / market_type
        directory.mkdir(parents=True, exist_ok=True)

        path = directory / f"{symbol}.csv"
        path.write_text(csv_text, encoding="utf-8")
        logger.info(f"Uploaded {market_type}/{symbol}.csv ({len(csv_text)} bytes)")
        return path


class CsvFileCandleStore(CandleStore):
    """Serves one CSV file regardless of the requested market or symbol."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        super().__init__(self.path.parent)

    def resolve_path(self, market_type: str, symbol: str) -> Path:
        if not self.path.exists():
            raise NotFoundError("Candle file", str(self.path))
        return self.path


def parse_candles_csv(csv_text: str, source: str = "<csv>") -> list[Candle]:
    """
    Parse candle CSV text; the first non-empty line is the header.

    Raises:
        CandleDataError: a row has missing or non-numeric columns
    """
    rows = [(number, line) for number, line in enumerate(csv_text.splitlines(), 1) if line.strip()]

    candles = []
    for number, line in rows[1:]:
        try:
            timestamp, open_, high, low, close, volume = line.split(",")[:6]
            candle = Candle(
                timestamp=int(float(timestamp)),
                open=float(open_),
                high=float(high),
                low=float(low),
                close=float(close),
                volume=float(volume),
            )
        except ValueError as exc:
            raise CandleDataError(f"Malformed candle row {line.strip()!r}", source, number) from exc
        candles.append(candle)
    return candles


def to_epoch_ms(value: str | int | float | None) -> int | None:
    """Parse an ISO date/datetime (UTC when naive) or pass epoch-ms through."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return int(value)

    text = str(value).strip()
    if text.isdigit():
        return int(text)

    parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


def filter_by_date(
    candles: Iterable[Candle],
    start: str | int | None,
    end: str | int | None,
) -> list[Candle]:
    """Keep candles with ``start <= timestamp <= end`` (bounds inclusive)."""
    start_ms = to_epoch_ms(start)
    end_ms = to_epoch_ms(end)

    return [
        c for c in candles
        if (start_ms is None or c.timestamp >= start_ms)
        and (end_ms is None or c.timestamp <= end_ms)
    ]


def _check_name(value: str, label: str) -> None:
    if not value or not _SAFE_NAME.match(value) or value in {".", ".."}:
        raise ValueError(f"Invalid {label}: {value!r}")
