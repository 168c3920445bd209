"""
Strategy Host - the boundary around untrusted strategy code.

``StrategyHost.build`` proves, without executing anything, that the source
defines ``runStrategy(candles, settings)`` and returns a callable program.
Calling the program runs the strategy through an executor and converts
every failure into ``StrategyExecutionError``.
"""
from __future__ import annotations

import ast
import copy
import json
import os
import subprocess
import sys
from pathlib import Path
from typing import Any, Mapping, Optional, Protocol, Sequence

from loguru import logger

from config.settings import SandboxSettings
from backtester.strategy.sandbox import execute_strategy
from backtester.strategy.source import ENTRY_POINT
from backtester.utils.exceptions import StrategyExecutionError, StrategyInvalidError

PROJECT_ROOT = Path(__file__).resolve().parents[2]
SANDBOX_MODULE = "backtester.strategy.sandbox"


class SandboxError(Exception):
    """Raised by executors when the sandboxed run itself fails."""


class StrategyExecutor(Protocol):
    def execute(
        self,
        source: str,
        candles: Sequence[Mapping[str, Any]],
        settings: Mapping[str, Any],
    ) -> Any:
        ...


class InlineExecutor:
    """Runs the strategy in this process. No resource caps."""

    def execute(
        self,
        source: str,
        candles: Sequence[Mapping[str, Any]],
        settings: Mapping[str, Any],
    ) -> Any:
        return execute_strategy(source, copy.deepcopy(list(candles)), copy.deepcopy(dict(settings)))


class SubprocessExecutor:
    """Runs the strategy in a child interpreter with memory/CPU/wall-clock limits."""

    def __init__(self, timeout_seconds: float, memory_limit_mb: Optional[int]) -> None:
        self.timeout_seconds = timeout_seconds
        self.memory_limit_mb = memory_limit_mb

    def execute(
        self,
        source: str,
        candles: Sequence[Mapping[str, Any]],
        settings: Mapping[str, Any],
    ) -> Any:
        job = {
            "source": source,
            "candles": list(candles),
            "settings": dict(settings),
            "limits": {
                "memory_mb": self.memory_limit_mb,
                "cpu_seconds": int(self.timeout_seconds) + 1,
            },
        }

        env = dict(os.environ)
        # BLAS thread pools reserve address space that counts against RLIMIT_AS.
        env.update(OMP_NUM_THREADS="1", OPENBLAS_NUM_THREADS="1", MKL_NUM_THREADS="1")
        env["PYTHONPATH"] = os.pathsep.join(
            filter(None, [str(PROJECT_ROOT), env.get("PYTHONPATH")])
        )

        try:
            completed = subprocess.run(
                [sys.executable, "-m", SANDBOX_MODULE],
                input=json.dumps(job),
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
                env=env,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise SandboxError(
                f"Strategy exceeded the {self.timeout_seconds:g}s time limit"
            ) from exc

        if completed.stderr:
            logger.debug(f"Strategy worker stderr: {completed.stderr[-2000:]}")

        if not completed.stdout.strip():
            if completed.returncode < 0:
                raise SandboxError(f"Strategy worker terminated by signal {-completed.returncode}")
            tail = completed.stderr.strip().splitlines()[-1:] or ["no output"]
            raise SandboxError(
                f"Strategy worker exited with code {completed.returncode}: {tail[0]}"
            )

        try:
            reply = json.loads(completed.stdout)
        except json.JSONDecodeError as exc:
            raise SandboxError(f"Malformed reply from strategy worker: {exc.msg}") from exc

        if reply.get("ok"):
            return reply.get("result")

        if reply.get("error_type") == "StrategyInvalidError":
            raise StrategyInvalidError(
                reply.get("error", ""),
                reply.get("reason") or StrategyInvalidError.MISSING_ENTRY_POINT,
            )
        raise SandboxError(f"{reply.get('error_type', 'Error')}: {reply.get('error', '')}")


class StrategyProgram:
    """A validated strategy, callable as ``program(candles, settings)``."""

    def __init__(self, source: str, executor: StrategyExecutor, preview_chars: int = 500) -> None:
        self.source = source
        self.executor = executor
        self.preview_chars = preview_chars

    @property
    def source_preview(self) -> str:
        return self.source[: self.preview_chars]

    def __call__(
        self,
        candles: Sequence[Mapping[str, Any]],
        settings: Mapping[str, Any],
    ) -> dict[str, Any]:
        logger.info(f"Running strategy over {len(candles)} candles")

        try:
            result = self.executor.execute(self.source, candles, settings)
        except StrategyInvalidError:
            raise
        except SandboxError as exc:
            logger.error(f"Strategy execution failed: {exc}")
            raise StrategyExecutionError(str(exc), source_preview=self.source_preview) from exc
        except GeneratorExit:
            raise
        # SystemExit and KeyboardInterrupt from strategy code stop at this boundary too.
        except BaseException as exc:
            logger.error(f"Strategy raised {type(exc).__name__}: {exc}")
            raise StrategyExecutionError(
                f"{type(exc).__name__}: {exc}",
                source_preview=self.source_preview,
            ) from exc

        return validate_result(result)


class StrategyHost:
    def __init__(self, settings: SandboxSettings, executor: Optional[StrategyExecutor] = None) -> None:
        self.preview_chars = settings.source_preview_chars
        if executor is not None:
            self.executor = executor
        elif settings.executor == "inline":
            self.executor = InlineExecutor()
        else:
            self.executor = SubprocessExecutor(settings.timeout_seconds, settings.memory_limit_mb)

    def build(self, source: str) -> StrategyProgram:
        check_entry_point(source)
        logger.debug(f"Strategy entry point verified ({type(self.executor).__name__})")
        return StrategyProgram(source, self.executor, self.preview_chars)


def check_entry_point(source: str) -> None:
    """Statically verify a top-level ``runStrategy`` accepting two positional args."""
    try:
        tree = ast.parse(source, filename="<strategy>")
    except SyntaxError as exc:
        raise StrategyInvalidError(
            f"Strategy source is not valid Python (line {exc.lineno}): {exc.msg}",
            StrategyInvalidError.SYNTAX_ERROR,
        ) from exc

    for node in tree.body:
        if isinstance(node, ast.FunctionDef) and node.name == ENTRY_POINT:
            arguments = node.args
        elif (
            isinstance(node, ast.Assign)
            and isinstance(node.value, ast.Lambda)
            and any(isinstance(t, ast.Name) and t.id == ENTRY_POINT for t in node.targets)
        ):
            arguments = node.value.args
        else:
            continue

        if _accepts_two_positional(arguments):
            return
        raise StrategyInvalidError(
            f"{ENTRY_POINT} must accept (candles, settings)",
            StrategyInvalidError.MISSING_ENTRY_POINT,
        )

    raise StrategyInvalidError(
        f"Strategy source does not define {ENTRY_POINT}(candles, settings)",
        StrategyInvalidError.MISSING_ENTRY_POINT,
    )


def _accepts_two_positional(arguments: ast.arguments) -> bool:
    positional = len(arguments.posonlyargs) + len(arguments.args)
    required = positional - len(arguments.defaults)
    required_kwonly = sum(1 for d in arguments.kw_defaults if d is None)
    if required > 2 or required_kwonly:
        return False
    return positional >= 2 or arguments.vararg is not None


def validate_result(result: Any) -> dict[str, Any]:
    if not isinstance(result, Mapping):
        raise StrategyInvalidError(
            f"{ENTRY_POINT} must return a mapping, got {type(result).__name__}",
            StrategyInvalidError.MISSING_TRADES,
        )

    trades = result.get("trades")
    if trades is None or isinstance(trades, (str, bytes, Mapping)) or not isinstance(trades, Sequence):
        raise StrategyInvalidError(
            f"{ENTRY_POINT} result has no 'trades' list",
            StrategyInvalidError.MISSING_TRADES,
        )
    return dict(result)
