"""Service configuration.

Settings are read from the environment exactly once, at startup, and the
resulting frozen object is handed to every component that needs it
(``create_app(settings)`` stores it on ``app.state.settings``).
"""

from __future__ import annotations

import logging
from typing import Any, Literal

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from catchall.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_MAX_BODY_BYTES = 10 * 1024 * 1024
DEFAULT_REDACTED_FIELDS = "authorization,cookie,x-api-key"


class Settings(BaseSettings):
    host: str = "0.0.0.0"
    port: int = Field(3000, ge=1, le=65535)
    env: Literal["development", "production", "test"] = "development"
    database_url: str = "sqlite:///./data/db.sqlite"
    admin_token: str = Field(..., min_length=1)
    max_body_bytes: int = Field(DEFAULT_MAX_BODY_BYTES, gt=0)
    upload_dir: str = "/data/uploads"
    redacted_fields: str = DEFAULT_REDACTED_FIELDS
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    @field_validator("admin_token")
    @classmethod
    def _token_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("ADMIN_TOKEN is required")
        return v

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, v: str) -> str:
        return v.strip().upper() or "INFO"

    @property
    def redacted_field_list(self) -> list[str]:
        return [f.strip().lower() for f in self.redacted_fields.split(",") if f.strip()]

    @property
    def is_development(self) -> bool:
        return self.env == "development"

    def public_summary(self) -> dict[str, Any]:
        """Non-secret view of the settings for the startup log line."""
        return {
            "host": self.host,
            "port": self.port,
            "env": self.env,
            "database": self.database_url.split(":", 1)[0],
            "max_body_bytes": self.max_body_bytes,
            "upload_dir": self.upload_dir,
            "redacted_fields": self.redacted_field_list,
        }


def load_settings(**overrides: Any) -> Settings:
    """Build settings from the environment, raising ``ConfigError`` on failure."""
    try:
        return Settings(**overrides)
    except ValidationError as e:
        problems = ", ".join(
            f"{'.'.join(str(p) for p in err['loc']).upper()}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigError(f"Environment validation failed: {problems}") from e


__all__ = ["Settings", "load_settings", "DEFAULT_MAX_BODY_BYTES"]
