"""
Application configuration loaded from environment variables.
"""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Taskmarket server configuration."""

    model_config = SettingsConfigDict(env_prefix="TM_", env_file=".env", extra="ignore")

    # Database
    database_url: str = "sqlite+aiosqlite:///./taskmarket.db"

    # Logging
    log_level: str = "info"
    log_format: Literal["json", "text"] = "json"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    # CORS
    cors_origins: list[str] = ["http://localhost:5173"]

    # Shown in a location_shared message when the task has no address
    location_fallback_address: str = "No address provided"


@lru_cache
def get_settings() -> Settings:
    return Settings()
