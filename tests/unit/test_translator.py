import json

import httpx
import pytest

from config.settings import TranslatorSettings
from backtester.strategy.translator import PROMPTS_DIR, StrategyTranslator, load_prompt
from backtester.utils.exceptions import ConfigurationError, UpstreamError

BODY = "def runStrategy(candles, settings):\n    return {'trades': []}\n"


def _translator(handler, api_key="sk-test") -> StrategyTranslator:
    settings = TranslatorSettings(ANTHROPIC_API_KEY=api_key, ANTHROPIC_BASE_URL="http://llm.test")
    return StrategyTranslator(settings, client=httpx.Client(transport=httpx.MockTransport(handler)))


def _message(text: str) -> httpx.Response:
    return httpx.Response(200, json={"content": [{"type": "text", "text": text}]})


def test_prompt_file_loads():
    prompt = load_prompt("convert_strategy", PROMPTS_DIR)
    assert "{ea_code}" in prompt["user"]
    assert prompt["system"]


def test_missing_prompt(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_prompt("nope", tmp_path)


def test_build_messages_fills_template():
    system, messages = _translator(lambda r: _message("")).build_messages("int start() {}", "MQL5")
    assert system
    assert messages[0]["role"] == "user"
    assert "int start() {}" in messages[0]["content"]
    assert "MQL5" in messages[0]["content"]


def test_convert_parses_json_response():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["payload"] = json.loads(request.content)
        text = "```json\n" + json.dumps({"code": BODY, "parameters": {"period": {"default": 14}}}) + "\n```"
        return _message(text)

    result = _translator(handler).convert("extern int period = 14;", "MQL4")

    assert result.code == BODY
    assert result.parameters == {"period": {"default": 14}}
    assert seen["url"] == "http://llm.test/v1/messages"
    assert seen["headers"]["x-api-key"] == "sk-test"
    assert seen["headers"]["anthropic-version"] == "2023-06-01"
    assert seen["payload"]["max_tokens"] == 8000


def test_non_json_response_kept_as_code():
    result = _translator(lambda r: _message("Here is the code:\n" + BODY)).convert("x")
    assert result.code == BODY
    assert result.parameters == {}


def test_missing_api_key_is_configuration_error():
    translator = _translator(lambda r: _message(""), api_key=None)
    with pytest.raises(ConfigurationError) as exc_info:
        translator.convert("x")
    assert "sk-" not in exc_info.value.to_payload()["error"]


def test_api_error_body():
    def handler(request):
        return httpx.Response(400, json={"type": "error", "error": {"message": "prompt is too long"}})

    with pytest.raises(UpstreamError) as exc_info:
        _translator(handler).convert("x")
    assert exc_info.value.message == "prompt is too long"
    assert exc_info.value.status_code == 400


def test_http_failure_without_error_body():
    with pytest.raises(UpstreamError) as exc_info:
        _translator(lambda r: httpx.Response(503, json={})).convert("x")
    assert exc_info.value.status_code == 502


def test_empty_code_rejected():
    with pytest.raises(ValueError):
        _translator(lambda r: _message("")).convert("   ")
