import os
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: Optional[str] = Field(None, alias="QUIZ_DATABASE_URL")
    database_pool_size: int = Field(10, alias="QUIZ_DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(10, alias="QUIZ_DATABASE_MAX_OVERFLOW")
    database_echo: bool = Field(False, alias="QUIZ_DATABASE_ECHO")
    counter_backend: Literal["database", "rtdb", "memory"] = Field("database", alias="QUIZ_COUNTER_BACKEND")
    rtdb_base_url: str = Field("https://rythebibleguy-app-default-rtdb.firebaseio.com", alias="QUIZ_RTDB_BASE_URL")
    rtdb_secret: Optional[str] = Field(None, alias="QUIZ_RTDB_SECRET")
    rtdb_timeout_seconds: float = Field(5.0, alias="QUIZ_RTDB_TIMEOUT_SECONDS")
    refresh_secret: Optional[str] = Field(None, alias="QUIZ_REFRESH_SECRET")
    refresh_interval_seconds: int = Field(3600, alias="QUIZ_REFRESH_INTERVAL_SECONDS")
    stats_fallback_timeout_seconds: float = Field(2.0, alias="QUIZ_STATS_FALLBACK_TIMEOUT_SECONDS")
    stats_cache_max_age: int = Field(300, alias="QUIZ_STATS_CACHE_MAX_AGE")
    quiz_timezone: str = Field("America/New_York", alias="QUIZ_TIMEZONE")
    sync_max_attempts: int = Field(3, alias="QUIZ_SYNC_MAX_ATTEMPTS", ge=1)
    sync_base_delay_seconds: float = Field(1.0, alias="QUIZ_SYNC_BASE_DELAY_SECONDS", ge=0)

    class Config:
        env_file = os.getenv("ENV_FILE", ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache
def get_settings() -> Settings:
    try:
        return Settings()  # type: ignore[arg-type]
    except ValidationError as exc:
        raise RuntimeError(f"Invalid backend configuration: {exc}") from exc
