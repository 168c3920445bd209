"""
Strategy translator - converts MetaTrader EA source to a Python strategy
through the Anthropic Messages API.
"""
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import httpx
import yaml
from loguru import logger

from config.settings import TranslatorSettings
from backtester.strategy.source import parse_conversion_response
from backtester.utils.exceptions import ConfigurationError, UpstreamError

PROMPTS_DIR = Path(__file__).resolve().parents[2] / "config" / "prompts"


@dataclass(frozen=True)
class ConversionResult:
    code: str
    parameters: dict[str, Any] = field(default_factory=dict)


def load_prompt(name: str, prompts_dir: Path = PROMPTS_DIR) -> dict[str, str]:
    prompt_file = prompts_dir / f"{name}.yaml"
    if not prompt_file.exists():
        logger.error(f"Prompt file not found: {prompt_file}")
        raise FileNotFoundError(f"Prompt file not found: {prompt_file}")

    with open(prompt_file, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not data.get("user"):
        logger.warning(f"Empty user prompt in {prompt_file}")

    logger.debug(f"Loaded prompt {name}: {len(data.get('user', ''))} chars")
    return {"system": data.get("system", ""), "user": data.get("user", "")}


class StrategyTranslator:
    def __init__(
        self,
        settings: TranslatorSettings,
        client: Optional[httpx.Client] = None,
        prompts_dir: Path = PROMPTS_DIR,
    ) -> None:
        self.settings = settings
        self.prompts_dir = prompts_dir
        self._client = client

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.settings.timeout)
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def build_messages(self, ea_code: str, ea_version: str) -> tuple[str, list[dict[str, str]]]:
        prompt = load_prompt("convert_strategy", self.prompts_dir)
        user = prompt["user"].format(ea_code=ea_code, ea_version=ea_version or "MQL4")
        return prompt["system"], [{"role": "user", "content": user}]

    def convert(self, ea_code: str, ea_version: str = "MQL4") -> ConversionResult:
        if not self.settings.api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY is not set", setting="ANTHROPIC_API_KEY")
        if not ea_code or not ea_code.strip():
            raise ValueError("ea_code is empty")

        system, messages = self.build_messages(ea_code, ea_version)
        payload = {
            "model": self.settings.model,
            "max_tokens": self.settings.max_tokens,
            "system": system,
            "messages": messages,
        }
        headers = {
            "x-api-key": self.settings.api_key,
            "anthropic-version": self.settings.api_version,
            "content-type": "application/json",
        }
        url = f"{self.settings.base_url.rstrip('/')}/v1/messages"

        logger.info(f"Converting {ea_version} EA ({len(ea_code)} chars) with {self.settings.model}")
        start_time = time.time()

        try:
            response = self._get_client().post(url, json=payload, headers=headers)
            data = response.json()
        except httpx.RequestError as e:
            logger.error(f"Translator connection error: {e}")
            raise UpstreamError(f"Failed to reach {self.settings.base_url}", source="translator") from e
        except ValueError as e:
            raise UpstreamError(
                f"Translator returned non-JSON response (HTTP {response.status_code})",
                source="translator",
            ) from e

        error = data.get("error") if isinstance(data, dict) else None
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            logger.error(f"Translator API error: {message}")
            raise UpstreamError(message or "Unknown translator error", source="translator", status_code=400)

        if response.status_code >= 400:
            raise UpstreamError(f"HTTP {response.status_code}", source="translator")

        content = data.get("content") or []
        text = ""
        if content and isinstance(content[0], dict):
            text = content[0].get("text", "") or ""

        cleaned = parse_conversion_response(text)
        elapsed = time.time() - start_time
        logger.info(
            f"Conversion complete in {elapsed:.1f}s: {len(cleaned.code)} chars, "
            f"{len(cleaned.parameters)} parameters (via {cleaned.stage})"
        )
        return ConversionResult(code=cleaned.code, parameters=cleaned.parameters)
