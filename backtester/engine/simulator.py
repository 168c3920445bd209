"""
Backtest Simulator - runs one translated strategy over one candle series.

The strategy is built (and rejected if malformed) before any candle file
is opened. ``runStrategy`` is called exactly once with the whole prepared
series; stepping bar by bar, and staying causal while doing so, is the
strategy's job.
"""
from __future__ import annotations

import time
from typing import Any, Optional

from loguru import logger

from config.settings import Settings
from backtester.data import CandleStore, StrategyRepository, convert_timeframe, filter_by_date
from backtester.engine.normalizer import normalize_result
from backtester.engine.settings import normalize_settings
from backtester.models import BacktestReport, BacktestRequest
from backtester.strategy import StrategyHost, clean_strategy_source


class BacktestSimulator:
    """
    Orchestrates a single backtest request.

    Collaborators are injectable so tests can swap the candle store, the
    strategy repository or the executor. Nothing is cached between runs.
    """

    def __init__(
        self,
        settings: Settings,
        candle_store: Optional[CandleStore] = None,
        repository: Optional[StrategyRepository] = None,
        host: Optional[StrategyHost] = None,
    ) -> None:
        self.settings = settings
        self.candle_store = candle_store or CandleStore(settings.data.data_path)
        self._repository = repository
        self.host = host or StrategyHost(settings.sandbox)

    @property
    def repository(self) -> StrategyRepository:
        if self._repository is None:
            self._repository = StrategyRepository(self.settings.strategy_api)
        return self._repository

    def resolve_source(self, request: BacktestRequest) -> tuple[str, dict[str, Any]]:
        if request.strategy_code:
            return request.strategy_code, {}
        record = self.repository.fetch(request.strategy_id)
        return record.code, record.parameters

    def run(self, request: BacktestRequest) -> BacktestReport:
        start_time = time.time()
        label = request.strategy_id or "inline"

        raw_source, parameters = self.resolve_source(request)
        cleaned = clean_strategy_source(raw_source)
        program = self.host.build(cleaned.code)

        settings = normalize_settings(request.settings, parameters or cleaned.parameters)
        symbol = settings["symbol"]
        if not symbol:
            raise ValueError("settings.symbol is required")

        candles = self.candle_store.load(settings["market_type"], symbol)
        candles = filter_by_date(candles, settings["startDate"], settings["endDate"])
        candles = convert_timeframe(candles, settings["timeframe"])
        logger.info(
            f"Backtesting strategy {label} on {settings['market_type']}/{symbol} "
            f"{settings['timeframe']}: {len(candles)} candles"
        )

        raw = program([c.to_strategy_dict() for c in candles], settings)

        equity_curve = raw.get("equity_curve")
        if isinstance(equity_curve, list) and len(equity_curve) > len(candles):
            logger.warning(
                f"Equity curve has {len(equity_curve)} points for {len(candles)} candles, truncating"
            )
            raw["equity_curve"] = equity_curve[: len(candles)]

        report = normalize_result(raw, settings)
        elapsed = time.time() - start_time
        logger.info(
            f"Backtest {label} done in {elapsed:.2f}s: {report.total_trades} trades, "
            f"roi={report.roi:.2f}%, final_balance={report.final_balance:.2f}"
        )
        return report

    def close(self) -> None:
        if self._repository is not None:
            self._repository.close()
