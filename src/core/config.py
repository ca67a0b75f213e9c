from __future__ import annotations

import enum
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SESSION_SECRET = "replace-with-secure-secret"
_DEVELOPMENT_HOSTS = ("localhost", "127.0.0.1")


class BackendMode(str, enum.Enum):
    """Storage engine selected for the process."""

    LOCAL = "local"
    REMOTE = "remote"


class Settings(BaseSettings):
    """Runtime configuration loaded from environment."""

    app_name: str = Field(default="Assessment Storage", validation_alias="APP_NAME")
    environment: str = Field(default="development", validation_alias="APP_ENV")
    version: str = Field(default="0.1.0")
    hostname: str = Field(default="localhost", validation_alias="APP_HOSTNAME")
    demo_mode: bool = Field(default=False, validation_alias="ENABLE_DEMO_MODE")

    backend_mode: BackendMode = Field(default=BackendMode.LOCAL, validation_alias="BACKEND_MODE")

    # Remote relational store
    remote_url: str = Field(default="", validation_alias="REMOTE_URL")
    remote_key: str = Field(default="", validation_alias="REMOTE_ANON_KEY")
    remote_require_email_confirmation: bool = Field(
        default=False, validation_alias="REMOTE_REQUIRE_EMAIL_CONFIRMATION"
    )

    # Local key/value store
    local_store_path: str = Field(default="", validation_alias="LOCAL_STORE_PATH")
    local_latency_scale: float = Field(default=1.0, ge=0, validation_alias="LOCAL_LATENCY_SCALE")

    session_secret: str = Field(default=DEFAULT_SESSION_SECRET, validation_alias="SESSION_SECRET")
    jwt_algorithm: str = Field(default="HS256")
    access_token_ttl_seconds: int = Field(default=3600)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="allow",
        populate_by_name=True,
    )

    @field_validator("environment", "hostname", mode="before")
    @classmethod
    def _lower(cls, value: str) -> str:
        return (value or "").strip().lower()

    @field_validator("backend_mode", mode="before")
    @classmethod
    def _backend_alias(cls, value: object) -> object:
        # Older deployments still set BACKEND_MODE=supabase
        if isinstance(value, str) and value.strip().lower() == "supabase":
            return BackendMode.REMOTE
        return value

    @property
    def async_remote_url(self) -> str:
        """Convert the remote URL to an async driver URL (postgresql+asyncpg://)."""
        url = self.remote_url
        # Hosted providers hand out postgresql:// but we need postgresql+asyncpg://
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        elif url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql+asyncpg://", 1)
        return url

    @property
    def remote_configured(self) -> bool:
        return bool(self.remote_url and self.remote_key)

    def is_production(self) -> bool:
        return self.environment == "production"

    def is_development(self) -> bool:
        if self.is_production():
            return False
        return self.environment in ("local", "development") or self.hostname in _DEVELOPMENT_HOSTS

    def allows_demo_login(self) -> bool:
        """Password-less demo login: local development or a demo host, never production."""
        if self.is_production():
            return False
        return self.is_development() or "demo" in self.hostname

    def is_demo_environment(self) -> bool:
        """Demo features are never available in production, whatever the host says."""
        if self.is_production():
            return False
        return (
            self.demo_mode
            or self.is_development()
            or "demo" in self.hostname
            or "staging" in self.hostname
        )


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""
    return Settings()
