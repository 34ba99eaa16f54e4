from __future__ import annotations

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from courier.errors import ConfigError
from courier.models import DEFAULT_RETRYABLE_HTTP_CODES, RetryPolicy


class DiscordConfig(BaseModel):
    token: str = ""
    base_url: str = "https://discord.com/api/v10"
    channel_id: str
    error_channel_id: str | None = None
    request_timeout_seconds: int = Field(default=15, ge=1, le=120)

    @field_validator("channel_id", "error_channel_id", mode="before")
    @classmethod
    def coerce_snowflake(cls, value: object) -> object:
        # YAML reads bare snowflakes as ints.
        if isinstance(value, int):
            return str(value)
        return value


class RateLimitConfig(BaseModel):
    global_capacity: int = Field(default=50, ge=1)
    global_refill_rate: float = Field(default=50.0, gt=0)
    channel_capacity: int = Field(default=5, ge=1)
    channel_refill_rate: float = Field(default=5.0, gt=0)


class RetryConfig(BaseModel):
    max_retries: int = Field(default=3, ge=0, le=10)
    base_delay_ms: int = Field(default=1000, ge=0, le=60000)
    retryable_http_codes: list[int] = Field(default_factory=lambda: sorted(DEFAULT_RETRYABLE_HTTP_CODES))

    @field_validator("retryable_http_codes")
    @classmethod
    def validate_codes(cls, value: list[int]) -> list[int]:
        for code in value:
            if not 100 <= code <= 599:
                raise ValueError(f"not an HTTP status code: {code}")
        return sorted(set(value))

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay_ms=self.base_delay_ms,
            retryable_http_codes=frozenset(self.retryable_http_codes),
        )


class InteractionConfig(BaseModel):
    ack_deadline_ms: int = Field(default=3000, ge=1)


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file: str = "courier.log"
    rich: bool = True
    alert_level: Literal["INFO", "WARN", "ERROR", "CRITICAL"] = "INFO"


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    discord: DiscordConfig
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    interaction: InteractionConfig = Field(default_factory=InteractionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def validate_error_channel(self) -> "AppConfig":
        if self.discord.error_channel_id == self.discord.channel_id:
            self.discord.error_channel_id = None
        return self


def load_config(path: str | Path) -> AppConfig:
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    try:
        return AppConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config: {exc}") from exc
