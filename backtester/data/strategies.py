import time
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
from loguru import logger

from config.settings import StrategyServiceSettings
from backtester.utils.exceptions import ConfigurationError, NotFoundError, UpstreamError


@dataclass(frozen=True)
class StrategyRecord:
    strategy_id: str
    code: str
    parameters: dict[str, Any] = field(default_factory=dict)


class StrategyRepository:
    """Fetches translated strategy bodies from the strategy service."""

    MAX_ATTEMPTS = 3

    def __init__(
        self,
        settings: StrategyServiceSettings,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.base_url = (settings.base_url or "").rstrip("/")
        self.timeout = settings.timeout
        self._client = client

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout)
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "StrategyRepository":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def fetch(self, strategy_id: str) -> StrategyRecord:
        if not self.base_url:
            raise ConfigurationError("STRATEGY_API_URL is not set", setting="STRATEGY_API_URL")

        url = f"{self.base_url}/api/strategy/{strategy_id}"
        data = self._request_with_retry(url, strategy_id)

        code = data.get("js_code") or data.get("code")
        if not code or not isinstance(code, str):
            raise NotFoundError("Strategy code", strategy_id)

        parameters = data.get("parameters") or {}
        if not isinstance(parameters, dict):
            parameters = {}

        logger.info(f"Strategy {strategy_id} loaded ({len(code)} chars)")
        return StrategyRecord(strategy_id=strategy_id, code=code, parameters=parameters)

    def _request_with_retry(self, url: str, strategy_id: str) -> dict[str, Any]:
        client = self._get_client()

        for attempt in range(self.MAX_ATTEMPTS):
            try:
                logger.debug(f"GET {url} (attempt {attempt + 1})")
                response = client.get(url)

                if response.status_code == 404:
                    raise NotFoundError("Strategy", strategy_id)

                if response.status_code < 500:
                    response.raise_for_status()
                    payload = response.json()
                    if not isinstance(payload, dict):
                        raise UpstreamError("Unexpected strategy payload", source="strategy-service")
                    return payload

                if attempt == self.MAX_ATTEMPTS - 1:
                    raise UpstreamError(
                        f"HTTP {response.status_code}",
                        source="strategy-service",
                    )

            except httpx.HTTPStatusError as e:
                raise UpstreamError(
                    f"HTTP {e.response.status_code}",
                    source="strategy-service",
                ) from e

            except ValueError as e:
                raise UpstreamError(f"Invalid JSON: {e}", source="strategy-service") from e

            except httpx.RequestError as e:
                if attempt == self.MAX_ATTEMPTS - 1:
                    raise UpstreamError(str(e), source="strategy-service") from e
                logger.warning(f"Strategy service request error: {e}")

            sleep_time = 0.5 * 2 ** attempt
            logger.warning(f"Strategy service request failed, retrying in {sleep_time}s")
            time.sleep(sleep_time)

        raise UpstreamError("Max retries exceeded", source="strategy-service")
