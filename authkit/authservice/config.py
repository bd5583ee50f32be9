from __future__ import annotations
from typing import Literal

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError


class AuthSettings(BaseSettings):
    secret: str = Field(..., description="HMAC signing secret for bearer tokens")
    token_ttl_seconds: int = Field(default=3600, gt=0)   # 1 hour
    issuer: str = "authkit"
    signing_kid: str = "primary"
    hash_iterations: int = Field(default=260_000, gt=0)
    min_password_length: int = Field(default=1, ge=1)
    store_backend: Literal["memory", "kv"] = "memory"
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="AUTH_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("secret")
    @classmethod
    def secret_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("AUTH_SECRET must not be empty")
        return v


def load_settings(**overrides) -> AuthSettings:
    """Build settings from the environment; explicit overrides win.

    Raises ConfigError when the signing secret is absent or any value is invalid,
    so the process refuses to start instead of failing per request.
    """
    try:
        return AuthSettings(**overrides)
    except ValidationError as ex:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in ex.errors()})
        raise ConfigError(f"Invalid auth configuration: {', '.join(fields)}") from ex
