"""Process settings for Boleto Flow.

Operator-editable configuration (gateway credentials, ERP keys, message
template) lives in the session and is persisted through the storage adapter.
These settings only cover what the process needs at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class FlatSettings(BaseSettings):
    """Flat settings read from environment variables or a local .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # HTTP server
    host: str = Field(default="0.0.0.0", validation_alias="HOST")
    port: int = Field(default=8080, validation_alias="PORT")
    static_dir: Path = Field(default=Path("dist"), validation_alias="STATIC_DIR")

    # Generative AI
    google_api_key: SecretStr | None = Field(
        default=None, validation_alias=AliasChoices("GOOGLE_API_KEY", "API_KEY")
    )
    gemini_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL")

    # Upstream services
    omie_api_url: str = Field(
        default="https://app.omie.com.br/api/v1", validation_alias="OMIE_API_URL"
    )
    http_timeout: float = Field(default=30.0, validation_alias="HTTP_TIMEOUT")

    # Persistence
    data_dir: Path = Field(default=Path(".boleto_flow"), validation_alias="DATA_DIR")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )


@lru_cache
def get_settings() -> FlatSettings:
    """Get cached settings instance."""
    return FlatSettings()
