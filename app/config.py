"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="Addon Proxy", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=7000, alias="PORT")

    config_dir: Path = Field(default=Path("configs"), alias="CONFIG_DIR")

    upstream_timeout_seconds: float = Field(
        default=5.0, alias="UPSTREAM_TIMEOUT", gt=0, le=120
    )
    upstream_connect_timeout_seconds: float = Field(
        default=3.0, alias="UPSTREAM_CONNECT_TIMEOUT", gt=0
    )
    upstream_max_connections: int = Field(
        default=100, alias="UPSTREAM_MAX_CONNECTIONS", ge=1, le=1_000
    )
    protocol_fallback: bool = Field(default=True, alias="PROTOCOL_FALLBACK")

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("app_name", mode="before")
    @classmethod
    def _strip_app_name(cls, value: object) -> object:
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or "Addon Proxy"
        return value

    @model_validator(mode="after")
    def _check_timeouts(self) -> "Settings":
        """Keep the connect phase inside the overall per-call budget."""

        if self.upstream_connect_timeout_seconds > self.upstream_timeout_seconds:
            raise ValueError(
                "UPSTREAM_CONNECT_TIMEOUT must not exceed UPSTREAM_TIMEOUT"
            )
        return self

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
