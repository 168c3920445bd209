"""
Strategy source cleaning.

Translator output and stored strategy bodies often arrive wrapped in
prose or markdown fences. Cleaning is a fixed pipeline; the first stage
whose output contains the entry-point marker wins:

1. structured JSON (``{"code": "...", "parameters": {...}}``)
2. fenced code block
3. entry-point marker (leading prose dropped)
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from loguru import logger

from backtester.utils.exceptions import StrategyInvalidError

ENTRY_POINT = "runStrategy"
ENTRY_MARKER = f"def {ENTRY_POINT}"

CODE_KEYS = ("code", "python_code", "js_code")

_JSON_FENCE = re.compile(r"```json\s*\n?", re.IGNORECASE)
_ANY_FENCE = re.compile(r"```[A-Za-z0-9_+-]*\s*\n?")
_FENCED_BLOCK = re.compile(r"```[A-Za-z0-9_+-]*[ \t]*\n(.*?)```", re.DOTALL)
_PROSE_LINE = re.compile(r"^\s*(Here's|Here is|The|This)\b", re.IGNORECASE)


@dataclass(frozen=True)
class CleanedSource:
    code: str
    stage: str
    parameters: dict[str, Any] = field(default_factory=dict)


def _json_candidates(text: str) -> list[str]:
    candidates = [_ANY_FENCE.sub("", _JSON_FENCE.sub("", text)).strip()]
    candidates.extend(block.strip() for block in _FENCED_BLOCK.findall(text))
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start : end + 1])
    return [c for c in candidates if c.startswith("{")]


def _from_json(text: str) -> Optional[CleanedSource]:
    for candidate in _json_candidates(text):
        try:
            payload = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if not isinstance(payload, dict):
            continue

        for key in CODE_KEYS:
            code = payload.get(key)
            if isinstance(code, str) and code.strip():
                parameters = payload.get("parameters")
                return CleanedSource(
                    code=code.strip() + "\n",
                    stage="json",
                    parameters=parameters if isinstance(parameters, dict) else {},
                )
    return None


def _from_fence(text: str) -> Optional[CleanedSource]:
    blocks = _FENCED_BLOCK.findall(text)
    if not blocks:
        return None
    for block in blocks:
        if ENTRY_MARKER in block:
            return CleanedSource(code=block.strip() + "\n", stage="fence")
    return CleanedSource(code=blocks[0].strip() + "\n", stage="fence")


def _from_marker(text: str) -> Optional[CleanedSource]:
    lines = _ANY_FENCE.sub("", text).replace("```", "").splitlines()

    while lines and (not lines[0].strip() or _PROSE_LINE.match(lines[0])):
        lines.pop(0)
    while lines and (not lines[-1].strip() or _is_trailing_prose(lines[-1])):
        lines.pop()

    body = "\n".join(lines)
    position = body.find(ENTRY_MARKER)
    if position == -1:
        return None

    # Keep imports/helpers that precede the entry point only if they look
    # like code, otherwise start at the marker line.
    head = body[:position]
    if any(_PROSE_LINE.match(line) for line in head.splitlines() if line.strip()):
        body = body[position:]
    return CleanedSource(code=body.strip() + "\n", stage="marker")


def _is_trailing_prose(line: str) -> bool:
    return not line[:1].isspace() and bool(_PROSE_LINE.match(line))


STAGES: tuple[tuple[str, Callable[[str], Optional[CleanedSource]]], ...] = (
    ("json", _from_json),
    ("fence", _from_fence),
    ("marker", _from_marker),
)


def clean_strategy_source(text: str) -> CleanedSource:
    """
    Extract the strategy body from raw text.

    Raises:
        StrategyInvalidError: no stage produced text defining ``runStrategy``
    """
    if not text or not text.strip():
        raise StrategyInvalidError("Strategy source is empty", StrategyInvalidError.MISSING_ENTRY_POINT)

    for name, stage in STAGES:
        candidate = stage(text)
        if candidate is not None and ENTRY_MARKER in candidate.code:
            logger.debug(f"Strategy source cleaned via {name} stage ({len(candidate.code)} chars)")
            return candidate

    raise StrategyInvalidError(
        f"Strategy source does not define {ENTRY_POINT}(candles, settings)",
        StrategyInvalidError.MISSING_ENTRY_POINT,
    )


def parse_conversion_response(text: str) -> CleanedSource:
    """Parse translator output; parameters are empty unless it returned JSON."""
    try:
        return clean_strategy_source(text)
    except StrategyInvalidError:
        logger.warning("Conversion response has no entry point; returning it verbatim")
        return CleanedSource(code=text, stage="raw")
