"""Application configuration objects."""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Any, Type

from sqlalchemy.pool import NullPool


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


class BaseConfig:
    """Shared defaults across all environments."""

    APP_NAME = "Edu Platform"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite+pysqlite:///edu_dev.db",
    )
    GENERATION_API_BASE = os.getenv(
        "GENERATION_API_BASE",
        "http://localhost:54321/functions/v1/ai-content-generator",
    )
    GENERATION_API_KEY = os.getenv("GENERATION_API_KEY", "")
    BULK_MAX_ATTEMPTS = int(os.getenv("BULK_MAX_ATTEMPTS", "3"))
    BULK_LESSON_TIMEOUT_SEC = float(os.getenv("BULK_LESSON_TIMEOUT_SEC", "180"))
    BULK_LESSON_RETRY_BACKOFF_SEC = float(os.getenv("BULK_LESSON_RETRY_BACKOFF_SEC", "2"))
    BULK_QUIZ_TIMEOUT_SEC = float(os.getenv("BULK_QUIZ_TIMEOUT_SEC", "90"))
    BULK_QUIZ_RETRY_BACKOFF_SEC = float(os.getenv("BULK_QUIZ_RETRY_BACKOFF_SEC", "5"))
    BULK_QUIZ_PACING_SEC = float(os.getenv("BULK_QUIZ_PACING_SEC", "2.5"))
    BULK_QUIZ_QUESTIONS = int(os.getenv("BULK_QUIZ_QUESTIONS", "10"))
    BULK_QUIZ_SLOTS_PER_TIER = int(os.getenv("BULK_QUIZ_SLOTS_PER_TIER", "5"))
    BULK_STALL_TIMEOUT_SEC = int(os.getenv("BULK_STALL_TIMEOUT_SEC", "180"))
    BULK_STALL_CHECK_INTERVAL_SEC = int(os.getenv("BULK_STALL_CHECK_INTERVAL_SEC", "30"))
    BULK_AUTO_RESTART_IDLE_SEC = int(os.getenv("BULK_AUTO_RESTART_IDLE_SEC", "300"))
    BULK_AUTO_RESTART_INTERVAL_SEC = int(os.getenv("BULK_AUTO_RESTART_INTERVAL_SEC", "120"))
    BULK_SUPERVISORS_ENABLED = _flag("BULK_SUPERVISORS_ENABLED", "true")
    BULK_GENERATION_SYNC = _flag("BULK_GENERATION_SYNC", "false")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    JSON_SORT_KEYS = False
    SQLITE_TIMEOUT_SEC = int(os.getenv("SQLITE_TIMEOUT_SEC", "15"))
    SQLITE_BUSY_TIMEOUT_MS = int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "15000"))
    if SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
        SQLALCHEMY_ENGINE_OPTIONS = {
            "poolclass": NullPool,
            "connect_args": {"timeout": SQLITE_TIMEOUT_SEC, "check_same_thread": False},
        }
    else:
        SQLALCHEMY_ENGINE_OPTIONS = {
            "pool_pre_ping": True,
            "pool_size": int(os.getenv("DB_POOL_SIZE", "5")),
            "max_overflow": int(os.getenv("DB_MAX_OVERFLOW", "10")),
            "pool_timeout": int(os.getenv("DB_POOL_TIMEOUT", "30")),
        }


class DevConfig(BaseConfig):
    DEBUG = True


class ProdConfig(BaseConfig):
    DEBUG = False


class TestConfig(BaseConfig):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite+pysqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"check_same_thread": False}}
    GENERATION_API_BASE = "http://generator.test"
    GENERATION_API_KEY = "test-key"
    BULK_LESSON_RETRY_BACKOFF_SEC = 0.0
    BULK_QUIZ_RETRY_BACKOFF_SEC = 0.0
    BULK_QUIZ_PACING_SEC = 0.0
    BULK_SUPERVISORS_ENABLED = False
    BULK_GENERATION_SYNC = True


CONFIG_ALIASES: dict[str, Type[BaseConfig]] = {
    "dev": DevConfig,
    "development": DevConfig,
    "prod": ProdConfig,
    "production": ProdConfig,
    "test": TestConfig,
    "testing": TestConfig,
}


@lru_cache
def resolve_config(name_or_class: Any) -> Any:
    """Resolve config argument to the object expected by `app.config.from_object`."""

    if name_or_class is None:
        return DevConfig
    if isinstance(name_or_class, str):
        return CONFIG_ALIASES.get(name_or_class, name_or_class)
    return name_or_class
