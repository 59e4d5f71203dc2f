"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    host: str = "0.0.0.0"  # noqa: S104
    port: int = 3000
    store_path: str = "db.json"
    environment: str = _ENVIRONMENT
    log_level: str = "INFO"
    server_name: str = "Todo Server"
    server_version: str = "1.0.0"
    session_idle_timeout_seconds: int = 1800
    session_sweep_interval_seconds: int = 60
    stream_queue_size: int = 100
    stream_keepalive_seconds: int = 15
    cors_allow_origins: str | None = "*"

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def parse_cors_origins(raw: str | None) -> list[str]:
    """Parse allowed CORS origins from env."""
    if raw is None:
        return []
    cleaned = raw.strip()
    if cleaned == "*":
        return ["*"]
    origins: list[str] = []
    for chunk in cleaned.split(","):
        value = chunk.strip().rstrip("/")
        if value and value not in origins:
            origins.append(value)
    return origins
