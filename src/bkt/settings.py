"""Environment-driven settings for the CLI."""

from pathlib import Path

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    config_dir: Path | None = Field(
        default=None,
        description="Directory holding config.yml (defaults to ~/.config/bkt)",
    )
    token: SecretStr | None = Field(
        default=None,
        description="Access token used when --token is not given",
    )
    log_level: str = Field(
        default="WARNING",
        description="Root log level",
    )
    log_json: bool = Field(
        default=False,
        description="Emit logs as JSON lines on stderr",
    )
    http_debug: bool = Field(
        default=False,
        description="Log every HTTP request and response line",
    )

    model_config = SettingsConfigDict(
        env_prefix="BKT_",
        extra="ignore",
    )
