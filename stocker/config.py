"""
Configuration module for the Stocker REST API.
All settings are loaded from environment variables and an optional .env file.
"""
import logging
from pathlib import Path

from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict, SettingsError

logger = logging.getLogger(__name__)

DEFAULT_ENV_FILE = ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Runtime
    app_name: str = "Stocker REST API"
    app_version: str = "v1"
    host: str = "0.0.0.0"
    port: int = 8080

    # Database
    database_url: str = "sqlite:///./stocker.db"
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_timeout_seconds: int = 30
    create_schema: bool = True

    # Logging
    log_level: str = "INFO"

    # Security: comma-separated list, e.g. API_KEYS="key-one,key-two"
    api_keys: str = ""
    api_key_header: str = "X-API-Key"

    # Pagination
    default_page_size: int = 20
    max_page_size: int = 2000

    model_config = SettingsConfigDict(
        env_file=DEFAULT_ENV_FILE,
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def valid_api_keys(self) -> frozenset:
        """Configured API keys with surrounding whitespace and empty entries removed."""
        return frozenset(key.strip() for key in self.api_keys.split(",") if key.strip())


def load_settings(env_file: str = DEFAULT_ENV_FILE) -> Settings:
    """
    Build settings from the environment and the given env file.

    A missing or unreadable env file is not an error: values then come from
    the process environment and the defaults above.
    """
    if not Path(env_file).is_file():
        logger.warning(f"Environment file {env_file} not found, using process environment and defaults")
        return Settings(_env_file=None)

    try:
        return Settings(_env_file=env_file)
    except (UnicodeDecodeError, OSError, SettingsError, ValidationError) as e:
        logger.warning(f"Failed to load environment file {env_file}: {e}. Using process environment and defaults")
        return Settings(_env_file=None)


# Global settings instance
settings = load_settings()
