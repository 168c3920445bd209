from backtester.api.server import BacktestHTTPServer, run_server

__all__ = ["BacktestHTTPServer", "run_server"]
