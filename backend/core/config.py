from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./lahja.db"

    # Backend
    BACKEND_HOST: str = "0.0.0.0"
    BACKEND_PORT: int = 8000
    APP_DEBUG: bool = True
    SLOW_REQUEST_MS: float = 1000
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False  # True for production (structured JSON), False for dev (colored)
    LOG_SQL: bool = False   # Enable SQLAlchemy query logging

    # Auth: without an X-User-ID header, fall back to the local single user
    SINGLE_USER_MODE: bool = True

    # Review sessions
    DISTRACTOR_COUNT: int = 3
    SESSION_MAX_ITEMS: int | None = None
    SCHEDULER_CURRICULUM: Literal["interval", "stage"] = "stage"
    SCHEDULER_PERSONAL: Literal["interval", "stage"] = "interval"

    class Config:
        env_file = ".env"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
