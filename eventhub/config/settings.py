"""
eventhub/config/settings.py
Application settings

All settings are loaded from environment variables (a local .env file is
honored). Import the module-level ``settings`` instance rather than reading
os.environ directly.
"""
import os
from typing import List

from dotenv import load_dotenv

load_dotenv()


def get_bool_env(key: str, default: bool = False) -> bool:
    """Get a boolean value from environment variable."""
    value = os.getenv(key, str(default)).lower()
    return value in ('true', '1', 'yes', 'on', 'enabled')


def get_int_env(key: str, default: int) -> int:
    """Get an integer value from environment variable."""
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    return int(value)


def get_list_env(key: str) -> List[str]:
    """Get a comma-separated list from environment variable."""
    return [item.strip() for item in os.getenv(key, "").split(",") if item.strip()]


class Settings:
    """
    Runtime settings for the API.

    To add a new setting:
    1. Add it here as a class attribute
    2. Load it from an environment variable
    3. Use it through ``settings``
    """

    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./eventhub.db")
    SQL_ECHO: bool = get_bool_env("SQL_ECHO", False)
    DB_POOL_SIZE: int = get_int_env("DB_POOL_SIZE", 20)
    DB_MAX_OVERFLOW: int = get_int_env("DB_MAX_OVERFLOW", 30)

    # Bearer tokens are issued elsewhere; we only verify them
    JWT_SECRET_KEY: str = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
    JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")

    # Score component bounds
    MIN_COMPONENT_SCORE: int = get_int_env("MIN_COMPONENT_SCORE", 0)
    MAX_COMPONENT_SCORE: int = get_int_env("MAX_COMPONENT_SCORE", 100)

    ALLOWED_ORIGINS: List[str] = get_list_env("ALLOWED_ORIGINS")

    # Per-client request limit (slowapi syntax)
    RATE_LIMIT_ENABLED: bool = get_bool_env("RATE_LIMIT_ENABLED", True)
    RATE_LIMIT_DEFAULT: str = os.getenv("RATE_LIMIT_DEFAULT", "300/minute")

    @classmethod
    def is_development(cls) -> bool:
        return cls.ENVIRONMENT == "development"

    @classmethod
    def as_dict(cls) -> dict:
        """Non-secret settings, for diagnostics."""
        return {
            "environment": cls.ENVIRONMENT,
            "log_level": cls.LOG_LEVEL,
            "database_backend": cls.DATABASE_URL.split(":", 1)[0],
            "jwt_algorithm": cls.JWT_ALGORITHM,
        }


settings = Settings()
