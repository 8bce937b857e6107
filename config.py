from __future__ import annotations
import os
from pathlib import Path

# Absolute project dir
BASE_DIR = Path(__file__).resolve().parent
# Absolute instance dir (defaults to <project>/instance)
INSTANCE_DIR = Path(os.getenv("INSTANCE_DIR", BASE_DIR / "instance")).resolve()

_TRUTHY = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).lower() in _TRUTHY


class BaseConfig:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev")

    # Database (absolute sqlite path; forward slashes are fine on Windows)
    DEFAULT_SQLITE = f"sqlite:///{(INSTANCE_DIR / 'database.db').as_posix()}"
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", DEFAULT_SQLITE)
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    # Cache configuration (defaults to in-process SimpleCache)
    CACHE_DEFAULT_TIMEOUT = int(os.getenv("CACHE_DEFAULT_TIMEOUT", 600))
    CACHE_TYPE = os.getenv("CACHE_TYPE", "SimpleCache")
    CACHE_REDIS_URL = os.getenv("CACHE_REDIS_URL")

    # Bounded query cache used by commander leaderboards
    QUERY_CACHE_TTL = int(os.getenv("QUERY_CACHE_TTL", 60))
    QUERY_CACHE_MAX_SIZE = int(os.getenv("QUERY_CACHE_MAX_SIZE", 100))

    # Archetype pipeline
    ARCHETYPE_BATCH_SIZE = int(os.getenv("ARCHETYPE_BATCH_SIZE", 500))
    ARCHETYPE_WORKERS = int(os.getenv("ARCHETYPE_WORKERS", 4))
    ARCHETYPE_PRESERVE_MANUAL = _env_flag("ARCHETYPE_PRESERVE_MANUAL", "1")


class DevelopmentConfig(BaseConfig):
    DEBUG = True


class TestingConfig(BaseConfig):
    TESTING = True
    ARCHETYPE_WORKERS = 1
    CACHE_TYPE = "NullCache"


class ProductionConfig(BaseConfig):
    DEBUG = False


def _select_config():
    env = os.getenv("FLASK_ENV")
    if env == "development":
        return DevelopmentConfig
    if env == "testing":
        return TestingConfig
    if not os.getenv("DATABASE_URL"):
        raise RuntimeError("DATABASE_URL must be set explicitly in production.")
    return ProductionConfig


# Choose config
Config = _select_config()
