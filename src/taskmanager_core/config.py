"""Application settings loaded from environment variables."""
import os
from functools import lru_cache

from pydantic import BaseModel, Field, field_validator

ENV_PREFIX = "TASKMANAGER_"


class Settings(BaseModel):
    """Runtime configuration.

    Every field can be overridden with a TASKMANAGER_<FIELD> environment
    variable, e.g. TASKMANAGER_DATABASE_URL.
    """

    database_url: str = "sqlite:///./taskmanager.db"
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    # Header carrying the authenticated user's id, set by the upstream gateway
    actor_header: str = "X-User-Id"
    auto_create_schema: bool = False

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, value):
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper()

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from TASKMANAGER_* environment variables."""
        overrides = {}
        for name in cls.model_fields:
            value = os.getenv(f"{ENV_PREFIX}{name.upper()}")
            if value is not None:
                overrides[name] = value
        return cls(**overrides)


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings (cached)."""
    return Settings.from_env()
