"""
Strategy sandbox worker.

Runs one strategy job and writes a single JSON reply to stdout::

    python -m backtester.strategy.sandbox < job.json

Job: ``{"source": str, "candles": [...], "settings": {...},
"limits": {"memory_mb": int, "cpu_seconds": int}}``.
Reply: ``{"ok": true, "result": {...}}`` or
``{"ok": false, "error_type": str, "error": str, "reason": str | null}``.

The same namespace rules apply when a job runs in-process.
"""
from __future__ import annotations

import builtins
import json
import math
import sys
from typing import Any, Mapping, Sequence

from backtester.engine.ledger import Ledger
from backtester.indicators import IndicatorLibrary
from backtester.strategy.source import ENTRY_POINT
from backtester.utils.exceptions import StrategyInvalidError

ALLOWED_MODULES = frozenset({
    "math",
    "statistics",
    "itertools",
    "functools",
    "collections",
    "datetime",
    "random",
    "bisect",
    "heapq",
})

BLOCKED_BUILTINS = frozenset({
    "__import__",
    "open",
    "exec",
    "eval",
    "compile",
    "input",
    "breakpoint",
    "globals",
    "locals",
    "vars",
    "exit",
    "quit",
    "help",
    "memoryview",
})


def _restricted_import(
    name: str,
    globals: Any = None,
    locals: Any = None,
    fromlist: Sequence[str] = (),
    level: int = 0,
) -> Any:
    if level != 0 or name.split(".")[0] not in ALLOWED_MODULES:
        raise ImportError(f"Import of '{name}' is not allowed in strategy code")
    return builtins.__import__(name, globals, locals, fromlist, level)


def build_namespace() -> dict[str, Any]:
    """Fresh globals for one strategy run: indicators, Ledger, safe builtins."""
    safe_builtins = {
        name: value
        for name, value in vars(builtins).items()
        if name not in BLOCKED_BUILTINS
    }
    safe_builtins["__import__"] = _restricted_import

    indicators = IndicatorLibrary()
    namespace: dict[str, Any] = {
        "__builtins__": safe_builtins,
        "__name__": "strategy",
        "indicators": indicators,
        "Ledger": Ledger,
        "math": math,
    }
    namespace.update(indicators.bindings())
    return namespace


def execute_strategy(
    source: str,
    candles: Sequence[Mapping[str, Any]],
    settings: Mapping[str, Any],
) -> Any:
    """Execute ``source`` and call its entry point once. Errors propagate."""
    code = compile(source, "<strategy>", "exec")
    namespace = build_namespace()
    exec(code, namespace)

    entry = namespace.get(ENTRY_POINT)
    if not callable(entry):
        raise StrategyInvalidError(
            f"{ENTRY_POINT} is not callable after loading the strategy",
            StrategyInvalidError.MISSING_ENTRY_POINT,
        )
    return entry(candles, settings)


def apply_limits(memory_mb: int | None, cpu_seconds: int | None) -> None:
    try:
        import resource
    except ImportError:  # Not available on Windows; wall-clock timeout still applies.
        return

    if memory_mb:
        limit = int(memory_mb) * 1024 * 1024
        resource.setrlimit(resource.RLIMIT_AS, (limit, limit))
    if cpu_seconds:
        resource.setrlimit(resource.RLIMIT_CPU, (int(cpu_seconds), int(cpu_seconds) + 1))


def _json_default(value: Any) -> Any:
    if hasattr(value, "item"):
        return value.item()
    if isinstance(value, (set, frozenset)):
        return list(value)
    return str(value)


def _render_reply(reply: dict[str, Any]) -> str:
    try:
        return json.dumps(reply, default=_json_default)
    except (TypeError, ValueError) as exc:
        return json.dumps({
            "ok": False,
            "error_type": "SerializationError",
            "error": f"Strategy result is not serializable: {exc}",
            "reason": None,
        })


def main() -> int:
    reply_stream = sys.stdout
    # Strategy print() output must not corrupt the JSON reply.
    sys.stdout = sys.stderr

    try:
        job = json.loads(sys.stdin.read())
        limits = job.get("limits") or {}
        apply_limits(limits.get("memory_mb"), limits.get("cpu_seconds"))

        result = execute_strategy(job["source"], job["candles"], job["settings"])
        reply: dict[str, Any] = {"ok": True, "result": result}
    except StrategyInvalidError as exc:
        reply = {
            "ok": False,
            "error_type": "StrategyInvalidError",
            "error": exc.message,
            "reason": exc.reason,
        }
    except BaseException as exc:
        reply = {
            "ok": False,
            "error_type": type(exc).__name__,
            "error": str(exc),
            "reason": None,
        }

    reply_stream.write(_render_reply(reply))
    reply_stream.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())
