from typing import Sequence

from backtester.models import Candle

TIMEFRAME_MINUTES = {
    "5m": 5,
    "15m": 15,
    "30m": 30,
    "1h": 60,
    "4h": 240,
    "1d": 1440,
}


def convert_timeframe(candles: Sequence[Candle], timeframe: str) -> list[Candle]:
    """
    Aggregate 1-minute candles into epoch-aligned buckets of ``timeframe``.

    "1m" and unrecognized timeframes pass through unchanged. Buckets are
    emitted in input order; a bucket starts whenever the aligned timestamp
    changes.
    """
    minutes = TIMEFRAME_MINUTES.get(timeframe)
    if minutes is None:
        return list(candles)

    bucket_ms = minutes * 60 * 1000
    result: list[Candle] = []
    bucket: list[Candle] = []
    bucket_start: int | None = None

    for candle in candles:
        aligned = (candle.timestamp // bucket_ms) * bucket_ms
        if aligned != bucket_start:
            if bucket:
                result.append(_merge(bucket_start, bucket))
            bucket_start = aligned
            bucket = []
        bucket.append(candle)

    if bucket:
        result.append(_merge(bucket_start, bucket))

    return result


def _merge(timestamp: int, bucket: list[Candle]) -> Candle:
    return Candle(
        timestamp=timestamp,
        open=bucket[0].open,
        high=max(c.high for c in bucket),
        low=min(c.low for c in bucket),
        close=bucket[-1].close,
        volume=sum(c.volume for c in bucket),
    )
