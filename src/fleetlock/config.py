from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="FLEETLOCK_", env_file=".env", extra="ignore")

    # Redis coordination store
    redis_host: str = Field(default="localhost", validation_alias="REDIS_HOST")
    redis_port: int = Field(default=6379, validation_alias="REDIS_PORT")
    redis_password: str | None = Field(default=None, validation_alias="REDIS_PASSWORD")
    redis_db: int = Field(default=0, validation_alias="REDIS_DB")
    redis_key_prefix: str = Field(default="", validation_alias="REDIS_KEY_PREFIX")

    # Redis timeouts (seconds) and connect retry policy
    redis_connect_timeout: float = Field(default=5.0, validation_alias="REDIS_CONNECT_TIMEOUT")
    redis_socket_timeout: float = Field(default=5.0, validation_alias="REDIS_SOCKET_TIMEOUT")
    redis_connect_retries: int = Field(default=3, validation_alias="REDIS_CONNECT_RETRIES")

    # Observability
    log_level: str = "INFO"
    log_json: bool = True
    enable_metrics: bool = True

    @field_validator("redis_password", mode="before")
    @classmethod
    def _empty_password_is_none(cls, value: str | None) -> str | None:
        # An exported-but-empty REDIS_PASSWORD means no AUTH
        return value or None


settings = Settings()
