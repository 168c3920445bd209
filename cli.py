import json
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table, box

from config.settings import get_settings
from backtester import __version__
from backtester.api import run_server
from backtester.data import CandleStore, CsvFileCandleStore, convert_timeframe, parse_candles_csv
from backtester.data.resample import TIMEFRAME_MINUTES
from backtester.engine.simulator import BacktestSimulator
from backtester.models import BacktestReport, BacktestRequest
from backtester.strategy import StrategyHost, StrategyTranslator
from backtester.utils.exceptions import BacktesterError, StrategyExecutionError
from backtester.utils.logging import setup_logging

app = typer.Typer(no_args_is_help=True)
console = Console()


def _parse_settings(raw: Optional[str]) -> dict:
    if not raw:
        return {}
    path = Path(raw)
    text = path.read_text(encoding="utf-8") if path.exists() else raw
    value = json.loads(text)
    if not isinstance(value, dict):
        raise typer.BadParameter("settings must be a JSON object")
    return value


def _print_report(report: BacktestReport) -> None:
    summary = Table(title=f"Backtest {report.symbol or ''} {report.timeframe or ''}".strip(), box=box.SIMPLE)
    summary.add_column("Metric", style="bold")
    summary.add_column("Value", justify="right")

    roi_style = "green" if report.roi >= 0 else "red"
    summary.add_row("Initial balance", f"${report.initial_balance:,.2f}")
    summary.add_row("Final balance", f"${report.final_balance:,.2f}")
    summary.add_row("ROI", f"[{roi_style}]{report.roi:+.2f}%[/{roi_style}]")
    summary.add_row("Max drawdown", f"{report.mdd:.2f}%")
    summary.add_row("Win rate", f"{report.win_rate:.2f}%")
    summary.add_row(
        "Trades",
        f"{report.total_trades} ({report.long_trades} long / {report.short_trades} short)",
    )
    summary.add_row("Winning / losing", f"{report.winning_trades} / {report.losing_trades}")
    summary.add_row("Avg profit / loss", f"{report.avg_profit:.2f} / {report.avg_loss:.2f}")
    summary.add_row("Avg duration (bars)", f"{report.avg_duration:.1f}")
    summary.add_row("Total fees", f"${report.total_fee:,.2f}")
    console.print(summary)

    if not report.trades:
        return

    trades = Table(title="Last trades", box=box.SIMPLE)
    for column in ("Side", "Order", "Entry", "Exit", "Coins", "USDT", "PnL"):
        trades.add_column(column, justify="right" if column not in ("Side", "Order") else "left")
    for trade in report.trades[-10:]:
        pnl_style = "green" if trade.pnl > 0 else "red"
        trades.add_row(
            trade.side or "-",
            trade.order_type,
            f"{trade.entry_price:.4f}" if trade.entry_price is not None else "-",
            f"{trade.exit_price:.4f}" if trade.exit_price is not None else "-",
            f"{trade.coin_size:.6f}",
            f"{trade.usdt_size:,.2f}",
            f"[{pnl_style}]{trade.pnl:+.2f}[/{pnl_style}]",
        )
    console.print(trades)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address (default: HOST)"),
    port: Optional[int] = typer.Option(None, help="Port (default: PORT)"),
) -> None:
    """Run the backtest HTTP API."""
    try:
        settings = get_settings()
        setup_logging(settings.log_level, settings.log_dir)
        run_server(settings, host, port)
    except Exception as e:
        typer.echo(f"Server failed: {e}", err=True)
        logger.exception("Serve command failed")
        raise typer.Exit(code=1)


@app.command()
def backtest(
    strategy_file: Path = typer.Option(..., "--strategy-file", "-s", help="File holding runStrategy source"),
    symbol: str = typer.Option("BTCUSDT", help="Symbol to backtest"),
    market_type: str = typer.Option("futures", help="futures or spot"),
    timeframe: str = typer.Option("1h", help="Target timeframe"),
    start: Optional[str] = typer.Option(None, help="Start date (ISO or epoch ms)"),
    end: Optional[str] = typer.Option(None, help="End date (ISO or epoch ms)"),
    balance: float = typer.Option(10000.0, help="Initial balance"),
    csv: Optional[Path] = typer.Option(None, help="Read candles from this CSV instead of DATA_PATH"),
    settings_json: Optional[str] = typer.Option(None, "--settings", help="Extra settings: JSON text or file"),
    executor: Optional[str] = typer.Option(None, help="subprocess or inline (default: SANDBOX_EXECUTOR)"),
    output: Optional[Path] = typer.Option(None, help="Write the JSON report here"),
) -> None:
    """Backtest a local strategy file."""
    try:
        settings = get_settings()
        setup_logging(settings.log_level, settings.log_dir)

        sandbox = settings.sandbox
        if executor:
            if executor not in ("subprocess", "inline"):
                raise typer.BadParameter(f"unknown executor {executor}")
            sandbox = sandbox.model_copy(update={"executor": executor})

        request = BacktestRequest(
            strategy_code=strategy_file.read_text(encoding="utf-8"),
            settings={
                "symbol": symbol,
                "market_type": market_type,
                "timeframe": timeframe,
                "startDate": start,
                "endDate": end,
                "initialBalance": balance,
                **_parse_settings(settings_json),
            },
        )
        store = CsvFileCandleStore(csv) if csv else CandleStore(settings.data.data_path)
        simulator = BacktestSimulator(settings, candle_store=store, host=StrategyHost(sandbox))
        report = simulator.run(request)

        _print_report(report)
        if output:
            output.write_text(json.dumps(report.to_response(), indent=2), encoding="utf-8")
            typer.echo(f"Report written to {output}")

    except StrategyExecutionError as e:
        typer.echo(f"{e}", err=True)
        if e.source_preview:
            typer.echo(f"--- source preview ---\n{e.source_preview}", err=True)
        raise typer.Exit(code=1)
    except BacktesterError as e:
        typer.echo(f"{e}", err=True)
        raise typer.Exit(code=1)
    except Exception as e:
        typer.echo(f"Backtest failed: {e}", err=True)
        logger.exception("Backtest command failed")
        raise typer.Exit(code=1)


@app.command()
def convert(
    ea_file: Path = typer.Argument(..., help="MQL4/MQL5 source file"),
    ea_version: str = typer.Option("MQL4", help="EA language version"),
    output: Optional[Path] = typer.Option(None, help="Write the strategy source here"),
) -> None:
    """Translate an EA into a Python strategy."""
    try:
        settings = get_settings()
        setup_logging(settings.log_level, settings.log_dir)

        translator = StrategyTranslator(settings.translator)
        try:
            result = translator.convert(ea_file.read_text(encoding="utf-8"), ea_version)
        finally:
            translator.close()

        if output:
            output.write_text(result.code, encoding="utf-8")
            params_file = output.with_suffix(".params.json")
            params_file.write_text(json.dumps(result.parameters, indent=2), encoding="utf-8")
            typer.echo(f"Strategy written to {output} ({len(result.parameters)} parameters)")
        else:
            typer.echo(result.code)

    except BacktesterError as e:
        typer.echo(f"{e}", err=True)
        raise typer.Exit(code=1)
    except Exception as e:
        typer.echo(f"Conversion failed: {e}", err=True)
        logger.exception("Convert command failed")
        raise typer.Exit(code=1)


@app.command()
def resample(
    source: Path = typer.Argument(..., help="1-minute candle CSV"),
    timeframe: str = typer.Argument(..., help="Target timeframe (5m, 15m, 30m, 1h, 4h, 1d)"),
    output: Path = typer.Option(..., "--output", "-o", help="Destination CSV"),
) -> None:
    """Resample a 1-minute candle CSV into a coarser timeframe."""
    try:
        if timeframe not in TIMEFRAME_MINUTES and timeframe != "1m":
            raise typer.BadParameter(f"unsupported timeframe {timeframe}")

        candles = parse_candles_csv(source.read_text(encoding="utf-8"), source=str(source))
        resampled = convert_timeframe(candles, timeframe)

        lines = ["timestamp,open,high,low,close,volume"]
        lines.extend(
            f"{c.timestamp},{c.open},{c.high},{c.low},{c.close},{c.volume}" for c in resampled
        )
        output.write_text("\n".join(lines) + "\n", encoding="utf-8")
        typer.echo(f"Wrote {len(resampled)} {timeframe} candles to {output} (from {len(candles)})")

    except typer.BadParameter as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
    except Exception as e:
        typer.echo(f"Resample failed: {e}", err=True)
        raise typer.Exit(code=1)


@app.command()
def status() -> None:
    """Check configuration."""
    try:
        settings = get_settings()

        typer.echo(f"EA Backtester {__version__}")
        typer.echo("=" * 50)
        typer.echo(f"API bind: {settings.server.host}:{settings.server.port}")

        data_path = settings.data.data_path
        state = "EXISTS" if data_path.exists() else "MISSING"
        typer.echo(f"Candle directory: {data_path} ({state})")
        if data_path.exists():
            for market_dir in sorted(p for p in data_path.iterdir() if p.is_dir()):
                count = len(list(market_dir.glob("*.csv")))
                typer.echo(f"  {market_dir.name}: {count} files")
        typer.echo("")

        typer.echo(f"Strategy service: {settings.strategy_api.base_url or 'NOT CONFIGURED'}")
        typer.echo(f"Translator API key configured: {'YES' if settings.translator.api_key else 'NO'}")
        typer.echo(f"Translator model: {settings.translator.model}")
        typer.echo("")

        typer.echo(f"Sandbox executor: {settings.sandbox.executor}")
        typer.echo(f"Sandbox timeout: {settings.sandbox.timeout_seconds:g}s")
        typer.echo(f"Sandbox memory limit: {settings.sandbox.memory_limit_mb} MB")
        typer.echo(f"Log level: {settings.log_level}")

    except Exception as e:
        typer.echo(f"Status check failed: {e}", err=True)
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
