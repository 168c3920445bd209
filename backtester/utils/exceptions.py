from typing import Any


class BacktesterError(Exception):
    status_code = 500
    kind = "internal_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    @property
    def public_message(self) -> str:
        return self.message

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.public_message, "kind": self.kind}


class ConfigurationError(BacktesterError):
    status_code = 500
    kind = "configuration_error"

    def __init__(self, message: str, setting: str = "") -> None:
        self.setting = setting
        super().__init__(message)

    @property
    def public_message(self) -> str:
        return "Server configuration incomplete"

    def __str__(self) -> str:
        return f"Configuration error: {self.message}"


class NotFoundError(BacktesterError):
    status_code = 404
    kind = "not_found"

    def __init__(self, resource: str, identifier: str) -> None:
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found: {identifier}")


class StrategyInvalidError(BacktesterError):
    status_code = 400
    kind = "strategy_invalid"

    MISSING_ENTRY_POINT = "missing_entry_point"
    MISSING_TRADES = "missing_trades"
    SYNTAX_ERROR = "syntax_error"

    def __init__(self, message: str, reason: str) -> None:
        self.reason = reason
        super().__init__(message)

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["reason"] = self.reason
        return payload

    def __str__(self) -> str:
        return f"Invalid strategy ({self.reason}): {self.message}"


class StrategyExecutionError(BacktesterError):
    status_code = 500
    kind = "strategy_execution_error"

    def __init__(self, message: str, source_preview: str = "") -> None:
        self.source_preview = source_preview
        super().__init__(message)

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["source_preview"] = self.source_preview
        return payload

    def __str__(self) -> str:
        return f"Strategy execution failed: {self.message}"


class UpstreamError(BacktesterError):
    status_code = 502
    kind = "upstream_error"

    def __init__(self, message: str, source: str, status_code: int | None = None) -> None:
        self.source = source
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def __str__(self) -> str:
        return f"Upstream {self.source} failed: {self.message}"


class CandleDataError(BacktesterError):
    status_code = 500
    kind = "candle_data_error"

    def __init__(self, message: str, source: str, line: int) -> None:
        self.source = source
        self.line = line
        super().__init__(message)

    def __str__(self) -> str:
        return f"Bad candle data in {self.source} line {self.line}: {self.message}"
