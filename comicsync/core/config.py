from functools import lru_cache
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    # DB URL (env: DATABASE_URL)
    database_url: Optional[str] = Field(
        default="sqlite:///./comicsync.db",
        validation_alias="DATABASE_URL",
    )
    environment: str = Field(default="local")
    secret_key: str = Field(default="CHANGE_ME_SECRET")
    access_token_exp_minutes: int = Field(default=1440)  # 24h
    jwt_algorithm: str = Field(default="HS256")

    # CORS
    cors_origins: str = Field(default="*")  # comma separated list for production

    # logging
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=True)

    # optimistic concurrency on progress/library/preference rows
    write_retry_attempts: int = Field(default=3, ge=1)
    write_retry_backoff_seconds: float = Field(default=0.05, ge=0)

    # session history pagination upper bound
    session_history_max_page: int = Field(default=100, ge=1)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
        extra="forbid",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
