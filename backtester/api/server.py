"""
JSON HTTP API for the backtester.

Stdlib ``ThreadingHTTPServer``: one thread per request, and every request
builds its own collaborators, so nothing mutable is shared between
requests. All failures are rendered as ``{"error": ..., "kind": ...}``.
"""
from __future__ import annotations

import json
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable

from loguru import logger
from pydantic import ValidationError

from config.settings import Settings
from backtester import __version__
from backtester.data import CandleStore
from backtester.engine.simulator import BacktestSimulator
from backtester.models import BacktestRequest
from backtester.strategy import StrategyTranslator
from backtester.utils.exceptions import BacktesterError

SERVICE_NAME = "ea-backtester"
MAX_BODY_BYTES = 100 * 1024 * 1024


class BadRequest(Exception):
    """Malformed request body; rendered as HTTP 400."""


class BacktestHTTPServer(ThreadingHTTPServer):
    """HTTP server carrying app settings for request handlers."""

    daemon_threads = True

    def __init__(self, server_address: tuple[str, int], settings: Settings) -> None:
        super().__init__(server_address, BacktestHandler)
        self.settings = settings


class BacktestHandler(BaseHTTPRequestHandler):
    """Route JSON requests to the backtest, convert and upload operations."""

    server: BacktestHTTPServer

    def do_GET(self) -> None:  # noqa: N802 (BaseHTTPRequestHandler signature)
        if self.path == "/health":
            self._send_json({"status": "ok", "service": SERVICE_NAME, "version": __version__})
            return
        self._send_error(HTTPStatus.NOT_FOUND, "Not Found", "not_found")

    def do_POST(self) -> None:  # noqa: N802
        routes: dict[str, Callable[[dict[str, Any]], dict[str, Any]]] = {
            "/api/backtest": self._handle_backtest,
            "/api/convert-mq": self._handle_convert,
            "/api/upload-candle": self._handle_upload,
        }
        handler = routes.get(self.path)
        if handler is None:
            self._send_error(HTTPStatus.NOT_FOUND, "Not Found", "not_found")
            return

        try:
            payload = handler(self._read_json())
        except BacktesterError as exc:
            logger.warning(f"{self.path} failed: {exc}")
            self._send_json(exc.to_payload(), exc.status_code)
        except (BadRequest, ValidationError, ValueError) as exc:
            logger.warning(f"{self.path} rejected: {exc}")
            self._send_error(HTTPStatus.BAD_REQUEST, str(exc), "bad_request")
        except Exception as exc:
            logger.exception(f"{self.path} crashed: {exc}")
            self._send_error(HTTPStatus.INTERNAL_SERVER_ERROR, "Internal server error", "internal_error")
        else:
            self._send_json(payload)

    def do_OPTIONS(self) -> None:  # noqa: N802
        self.send_response(HTTPStatus.NO_CONTENT)
        self._send_cors_headers()
        self.send_header("Content-Length", "0")
        self.end_headers()

    def log_message(self, fmt: str, *args: Any) -> None:
        logger.debug("api: " + fmt, *args)

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------
    def _handle_backtest(self, body: dict[str, Any]) -> dict[str, Any]:
        request = BacktestRequest.model_validate(body)
        simulator = BacktestSimulator(self.server.settings)
        try:
            return simulator.run(request).to_response()
        finally:
            simulator.close()

    def _handle_convert(self, body: dict[str, Any]) -> dict[str, Any]:
        ea_code = body.get("mq_code")
        if not isinstance(ea_code, str) or not ea_code.strip():
            raise BadRequest("mq_code is required")

        translator = StrategyTranslator(self.server.settings.translator)
        try:
            result = translator.convert(ea_code, body.get("mq_version") or "MQL4")
        finally:
            translator.close()
        return {"success": True, "js_code": result.code, "parameters": result.parameters}

    def _handle_upload(self, body: dict[str, Any]) -> dict[str, Any]:
        market_type = body.get("market_type")
        symbol = body.get("symbol")
        csv_text = body.get("csv_text")
        if not market_type or not symbol or not csv_text:
            raise BadRequest("Missing required fields")

        path = CandleStore(self.server.settings.data.data_path).save(market_type, symbol, csv_text)
        return {"success": True, "message": f"Uploaded {symbol}", "path": str(path)}

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------
    def _read_json(self) -> dict[str, Any]:
        try:
            length = int(self.headers.get("Content-Length") or 0)
        except ValueError:
            raise BadRequest("Invalid Content-Length")
        if length > MAX_BODY_BYTES:
            raise BadRequest("Request body too large")

        raw = self.rfile.read(length) if length else b""
        try:
            body = json.loads(raw or b"{}")
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise BadRequest(f"Malformed JSON body: {exc}")
        if not isinstance(body, dict):
            raise BadRequest("JSON body must be an object")
        return body

    def _send_error(self, status: HTTPStatus, message: str, kind: str) -> None:
        self._send_json({"error": message, "kind": kind}, status)

    def _send_cors_headers(self) -> None:
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Access-Control-Allow-Methods", "GET, POST, OPTIONS")
        self.send_header("Access-Control-Allow-Headers", "Content-Type")

    def _send_json(self, payload: dict[str, Any], status: int = HTTPStatus.OK) -> None:
        raw = json.dumps(payload).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Cache-Control", "no-store")
        self._send_cors_headers()
        self.send_header("Content-Length", str(len(raw)))
        self.end_headers()
        self.wfile.write(raw)


def run_server(settings: Settings, host: str | None = None, port: int | None = None) -> None:
    """Serve the API until interrupted."""
    host = host or settings.server.host
    port = port or settings.server.port
    server = BacktestHTTPServer((host, port), settings)
    logger.info(f"Backtest API listening on http://{host}:{port} (executor={settings.sandbox.executor})")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Backtest API stopped by user")
    finally:
        server.server_close()
