from __future__ import annotations

from pathlib import Path
import os

from dotenv import load_dotenv

load_dotenv()

# Repository root
REPO_ROOT = Path(__file__).resolve().parent.parent
# Default database location
DB_FILE = REPO_ROOT / "cuescore.db"

# Hard ceiling on mutations per write batch
MAX_BATCH_LIMIT = 500


class BaseConfig:
    """Base settings shared across environments."""

    DB_USER = os.getenv("DB_USER", "cuescore")
    DB_PASSWORD = os.getenv("DB_PASSWORD", "")
    DB_HOST = os.getenv("DB_HOST", "localhost")
    USE_POSTGRES = True


class ProductionConfig(BaseConfig):
    DB_NAME = "cuescore_prod"


class TrialConfig(BaseConfig):
    DB_NAME = "cuescore_trial"


class DevelopmentConfig(BaseConfig):
    DB_NAME = "cuescore_dev"
    USE_POSTGRES = False


_CONFIGS = {
    "production": ProductionConfig,
    "trial": TrialConfig,
    "development": DevelopmentConfig,
}

# Current active configuration determined by the ``APP_ENV`` environment
# variable. Defaults to development.
APP_ENV = os.getenv("APP_ENV", "development")
ActiveConfig = _CONFIGS.get(APP_ENV, DevelopmentConfig)


def get_database_url() -> str:
    """Return the configured database connection string.

    ``DATABASE_URL`` wins when set. Otherwise production and trial use
    PostgreSQL and development falls back to the SQLite file ``DB_FILE``.
    """
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    if ActiveConfig.USE_POSTGRES:
        return (
            f"postgresql://{ActiveConfig.DB_USER}:{ActiveConfig.DB_PASSWORD}"
            f"@{ActiveConfig.DB_HOST}/{ActiveConfig.DB_NAME}"
        )
    return "sqlite://"


def get_redis_url() -> str | None:
    """Return the Redis connection string if set."""
    return os.getenv("REDIS_URL")


def get_cache_ttl() -> int:
    """Return the cache TTL in seconds."""
    return int(os.getenv("CACHE_TTL", "300"))


def get_batch_limit() -> int:
    """Return the number of mutations committed per write batch."""
    limit = int(os.getenv("BATCH_LIMIT", "450"))
    return max(1, min(limit, MAX_BATCH_LIMIT))


def get_token_ttl_hours() -> int:
    """Return how long session tokens stay valid."""
    return int(os.getenv("TOKEN_TTL_HOURS", "24"))


def get_default_language() -> str:
    return os.getenv("DEFAULT_LANGUAGE", "en")


def get_log_level() -> str:
    return os.getenv("LOG_LEVEL", "INFO").upper()


__all__ = [
    "DB_FILE",
    "get_database_url",
    "get_redis_url",
    "get_cache_ttl",
    "get_batch_limit",
    "get_token_ttl_hours",
    "get_default_language",
    "get_log_level",
]
