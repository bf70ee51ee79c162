"""
Application configuration loaded from environment variables.
"""
from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Optional connection opened at startup
    mongo_uri: Optional[str] = None

    # Pool and timeouts for the single active client
    max_pool_size: int = 10
    min_pool_size: int = 2
    max_idle_time_ms: int = 30000
    connect_timeout_ms: int = 10000
    server_selection_timeout_ms: int = 10000

    # Browsing
    default_page_size: int = 50
    max_page_size: int = 100
    schema_sample_size: int = 100

    # Reference resolution bounds
    reference_max_collections: int = 20
    reference_max_depth: int = 3

    # Server
    host: str = "127.0.0.1"
    port: int = 3000
    log_level: str = "INFO"
    cors_origins: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
