from typing import Literal, Self
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator

DEFAULT_RETRYABLE_STATUS = frozenset({408, 425, 429, 500, 502, 503, 504})


class RetryPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1)
    initial_backoff: float = Field(default=0.25, ge=0)
    max_backoff: float = Field(default=5.0, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1)
    jitter: float = Field(default=0.25, ge=0, le=1)
    retryable_status: frozenset[int] = DEFAULT_RETRYABLE_STATUS

    @model_validator(mode="after")
    def _check_bounds(self) -> Self:
        if self.initial_backoff > self.max_backoff:
            raise ValueError("initial_backoff must not exceed max_backoff")
        return self


class TransportOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    base_url: str
    username: str = ""
    secret: SecretStr = SecretStr("")
    user_agent: str = "bkt-cli"
    timeout: float = Field(default=30.0, gt=0)
    enable_cache: bool = False
    cache_size: int = Field(default=256, ge=1)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    dialect: Literal["dc", "cloud"] | None = None
    debug: bool = False

    @field_validator("base_url")
    @classmethod
    def _normalize_base_url(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("base_url is required")
        parts = urlsplit(value)
        if parts.scheme not in ("http", "https"):
            raise ValueError(f"unsupported scheme {parts.scheme!r} in base_url")
        if not parts.netloc:
            raise ValueError("base_url must include a host")
        if parts.query or parts.fragment:
            raise ValueError("base_url must not carry a query or fragment")
        return value.rstrip("/")

    @property
    def has_credentials(self) -> bool:
        return bool(self.username or self.secret.get_secret_value())
