"""Configuration schema using Pydantic."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from wagateway.config.defaults import (
    DEFAULT_AUTH_DIR,
    DEFAULT_BRIDGE_URL,
    DEFAULT_BROWSER,
    DEFAULT_CLEANUP_INTERVAL_MS,
    DEFAULT_COMMAND_TIMEOUT_MS,
    DEFAULT_CONNECT_TIMEOUT_MS,
    DEFAULT_DUPLICATE_WINDOW_MS,
    DEFAULT_HOST,
    DEFAULT_KEEP_ALIVE_INTERVAL_MS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_PORT,
    DEFAULT_RECIPIENT_DOMAIN,
    DEFAULT_RETRY_DELAY_MS,
    DEFAULT_SEND_MAX_ATTEMPTS,
)


class ServerConfig(BaseModel):
    """HTTP facade configuration."""

    model_config = ConfigDict(extra="ignore")

    host: str = DEFAULT_HOST
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535)
    auth_token: str | None = None  # None keeps every route open
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])


class SessionConfig(BaseModel):
    """WhatsApp session and bridge connection configuration."""

    model_config = ConfigDict(extra="ignore")

    bridge_url: str = DEFAULT_BRIDGE_URL
    bridge_token: str = ""
    auth_dir: str = DEFAULT_AUTH_DIR
    retry_delay_ms: int = Field(default=DEFAULT_RETRY_DELAY_MS, ge=0)
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0)
    connect_timeout_ms: int = Field(default=DEFAULT_CONNECT_TIMEOUT_MS, ge=1)
    keep_alive_interval_ms: int = Field(default=DEFAULT_KEEP_ALIVE_INTERVAL_MS, ge=1)
    browser: list[str] = Field(default_factory=lambda: list(DEFAULT_BROWSER))
    mark_online_on_connect: bool = True
    print_qr: bool = True
    max_payload_bytes: int = 262144

    @property
    def auth_path(self) -> Path:
        return Path(self.auth_dir).expanduser()

    @property
    def retry_delay_seconds(self) -> float:
        return self.retry_delay_ms / 1000.0

    @property
    def connect_timeout_seconds(self) -> float:
        return self.connect_timeout_ms / 1000.0


class DedupConfig(BaseModel):
    """Outbound duplicate suppression settings."""

    model_config = ConfigDict(extra="ignore")

    window_ms: int = Field(default=DEFAULT_DUPLICATE_WINDOW_MS, ge=1)
    cleanup_interval_ms: int = Field(default=DEFAULT_CLEANUP_INTERVAL_MS, ge=1)

    @property
    def window_seconds(self) -> float:
        return self.window_ms / 1000.0

    @property
    def cleanup_interval_seconds(self) -> float:
        return self.cleanup_interval_ms / 1000.0


class SendConfig(BaseModel):
    """Send gateway policy settings."""

    model_config = ConfigDict(extra="ignore")

    default_domain: str = DEFAULT_RECIPIENT_DOMAIN
    max_attempts: int = Field(default=DEFAULT_SEND_MAX_ATTEMPTS, ge=0)
    retry_delay_ms: int = Field(default=DEFAULT_RETRY_DELAY_MS, ge=0)
    command_timeout_ms: int = Field(default=DEFAULT_COMMAND_TIMEOUT_MS, ge=1)

    @field_validator("default_domain")
    @classmethod
    def _strip_domain(cls, value: str) -> str:
        domain = value.strip().lstrip("@")
        if not domain:
            raise ValueError("send.defaultDomain must not be empty")
        return domain

    @property
    def retry_delay_seconds(self) -> float:
        return self.retry_delay_ms / 1000.0

    @property
    def command_timeout_seconds(self) -> float:
        return self.command_timeout_ms / 1000.0


class TelemetryConfig(BaseModel):
    """Metrics backend selection."""

    model_config = ConfigDict(extra="ignore")

    backend: Literal["prometheus", "memory"] = "prometheus"


class Config(BaseSettings):
    """Root configuration for wagateway."""

    model_config = SettingsConfigDict(
        extra="ignore",
        populate_by_name=True,
        env_prefix="WAGATEWAY_",
        env_nested_delimiter="__",
    )

    server: ServerConfig = Field(default_factory=ServerConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    dedup: DedupConfig = Field(default_factory=DedupConfig)
    send: SendConfig = Field(default_factory=SendConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment overrides values read from the config file.
        return env_settings, init_settings, dotenv_settings, file_secret_settings
