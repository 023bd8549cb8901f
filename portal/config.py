from __future__ import annotations

import sys
from functools import lru_cache
from typing import List, Literal

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_DEFAULT_SESSION_SECRET = "change-me-in-production-use-long-random-string"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="PORTAL_")

    # Server
    environment: Literal["development", "production", "test"] = "development"
    host: str = "0.0.0.0"
    port: int = Field(default=3000, ge=1, le=65535)
    server_name: str = Field(default="LocalServer", min_length=1)
    https: bool = False
    log_level: str = "info"
    log_format: Literal["json", "plain"] = "json"
    allow_cors_origins: List[str] = Field(default=["http://localhost:3000"], min_length=1)

    # Database
    database_url: str = Field(default="sqlite:///./portal.db", min_length=1)
    log_sql: bool = False

    # Cache / session store (separate databases, the cache one is flushed on shutdown)
    redis_url: str = "redis://localhost:6379/0"
    session_redis_url: str = "redis://localhost:6379/1"
    home_cache_ttl_seconds: int = Field(default=300, ge=1)

    # Sessions
    session_secret: str = Field(default=_DEFAULT_SESSION_SECRET, min_length=16)
    session_cookie_name: str = "portal.sid"
    session_ttl_seconds: int = Field(default=86400, ge=60)

    # Login throttling
    login_max_attempts: int = Field(default=5, ge=1)
    login_block_minutes: int = Field(default=15, ge=1)

    # Rate limiting
    rate_limit_enabled: bool = True
    login_rate_limit: str = "20 per 15 minutes"
    api_rate_limit: str = "100 per 15 minutes"

    @field_validator("session_secret")
    @classmethod
    def validate_session_secret(cls, v: str, info) -> str:
        """Refuse to start outside development with the default session secret."""
        env = info.data.get("environment", "development")
        if env != "development" and v == _DEFAULT_SESSION_SECRET:
            raise ValueError(
                f"Session secret must be changed from default in {env}. "
                "Set PORTAL_SESSION_SECRET env var."
            )
        return v

    @property
    def secure_cookies(self) -> bool:
        return self.environment == "production" and self.https


def load_settings() -> Settings:
    """Build settings from the environment, exiting the process when invalid."""
    try:
        return Settings()
    except ValidationError as exc:
        problems = "\n".join(
            f"   {'.'.join(str(p) for p in err['loc']) or 'settings'}: {err['msg']}"
            for err in exc.errors()
        )
        print(
            "\n🚨 FATAL: invalid portal configuration.\n"
            f"{problems}\n"
            "   Fix the PORTAL_* environment variables and restart.\n",
            file=sys.stderr,
        )
        raise SystemExit(1)


@lru_cache
def get_settings() -> Settings:
    return load_settings()


# Module-level singleton for convenience
settings = get_settings()
