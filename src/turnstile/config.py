from enum import StrEnum
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageBackend(StrEnum):
    REDIS = "redis"
    MEMORY = "memory"


class Settings(BaseSettings):
    app_name: str = "Turnstile"
    rate_limit_ip: int = Field(default=10, gt=0)
    rate_limit_token: int = Field(default=100, gt=0)
    block_duration_seconds: int = Field(default=300, ge=0)
    # JSON object in the environment, e.g. TOKEN_LIMITS='{"abc123": 500}'
    token_limits: dict[str, int] = Field(default_factory=dict)

    storage_backend: StorageBackend = StorageBackend.REDIS
    redis_url: str = "redis://localhost:6379/0"
    redis_connect_timeout: float = Field(default=5.0, gt=0)
    sweep_interval: float = Field(default=1.0, gt=0)

    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
