"""
Application Configuration

This module provides type-safe configuration loading using Pydantic settings.
Environment variables are loaded from .env file and validated.

Usage:
    from conceptlab.config import settings

    # Access settings
    db_url = settings.ENGINE_URL
    debug = settings.DEBUG
"""

from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    # DATABASE_URL takes precedence (e.g. sqlite+aiosqlite:///./conceptlab.db),
    # otherwise the PostgreSQL settings below are assembled into an asyncpg URL.
    DATABASE_URL: Optional[str] = None

    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "conceptlab"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = "conceptlab"

    @property
    def POSTGRES_URL(self) -> str:
        """Async PostgreSQL connection URL."""
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    @property
    def ENGINE_URL(self) -> str:
        """Connection URL used by the async engine."""
        return self.DATABASE_URL or self.POSTGRES_URL

    # LLM provider keys (LiteLLM reads these from the environment as well)
    OPENAI_API_KEY: str = ""
    ANTHROPIC_API_KEY: str = ""
    GEMINI_API_KEY: str = ""

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()


@lru_cache()
def load_yaml_config() -> dict[str, Any]:
    """Load application configuration from config/default.yaml."""
    config_path = Path(__file__).parent.parent.parent.parent / "config" / "default.yaml"

    if not config_path.exists():
        return {}

    with open(config_path) as f:
        return yaml.safe_load(f) or {}


yaml_config: dict[str, Any] = load_yaml_config()
