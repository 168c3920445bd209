from pathlib import Path
from typing import Literal, Optional
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="")

    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8080, alias="PORT")


class DataSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="")

    data_path: Path = Field(default=Path("/data/candles"), alias="DATA_PATH")


class StrategyServiceSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="STRATEGY_API_")

    base_url: Optional[str] = Field(default=None, alias="STRATEGY_API_URL")
    timeout: float = Field(default=30.0, alias="STRATEGY_API_TIMEOUT")


class TranslatorSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="ANTHROPIC_")

    api_key: Optional[str] = Field(default=None, alias="ANTHROPIC_API_KEY")
    base_url: str = Field(default="https://api.anthropic.com", alias="ANTHROPIC_BASE_URL")
    model: str = Field(default="claude-sonnet-4-5-20250929", alias="ANTHROPIC_MODEL")
    api_version: str = "2023-06-01"
    max_tokens: int = 8000
    timeout: int = 180


class SandboxSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SANDBOX_", populate_by_name=True)

    executor: Literal["subprocess", "inline"] = Field(default="subprocess", alias="SANDBOX_EXECUTOR")
    timeout_seconds: float = Field(default=60.0, alias="SANDBOX_TIMEOUT_SECONDS")
    memory_limit_mb: Optional[int] = Field(default=1024, alias="SANDBOX_MEMORY_LIMIT_MB")
    source_preview_chars: int = Field(default=500, alias="SANDBOX_SOURCE_PREVIEW_CHARS")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_dir: Path = Field(default=Path("logs"), alias="LOG_DIR")

    server: ServerSettings = Field(default_factory=ServerSettings)
    data: DataSettings = Field(default_factory=DataSettings)
    strategy_api: StrategyServiceSettings = Field(default_factory=StrategyServiceSettings)
    translator: TranslatorSettings = Field(default_factory=TranslatorSettings)
    sandbox: SandboxSettings = Field(default_factory=SandboxSettings)


@lru_cache
def get_settings() -> Settings:
    return Settings()
