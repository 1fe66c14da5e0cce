"""Environment-based configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass

from sqlalchemy.engine import URL


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name) or default)
    except ValueError:
        return default


def _postgres_from_pg_env() -> str | None:
    if not all(os.getenv(key) for key in ("PGHOST", "PGUSER", "PGDATABASE")):
        return None

    sslmode = os.getenv("PGSSLMODE")
    return URL.create(
        drivername="postgresql+psycopg2",
        username=os.environ["PGUSER"],
        password=os.getenv("PGPASSWORD"),
        host=os.environ["PGHOST"],
        port=_int_env("PGPORT", 5432),
        database=os.environ["PGDATABASE"],
        query={"sslmode": sslmode} if sslmode else {},
    ).render_as_string(hide_password=False)


def resolve_database_url() -> str:
    """DATABASE_URL wins, then the libpq PG* variables, then a local SQLite file."""

    return os.getenv("DATABASE_URL") or _postgres_from_pg_env() or "sqlite:///./bingo.db"


@dataclass(frozen=True)
class BaseConfig:
    """Base configuration shared by all environments."""

    APP_ENV: str = os.getenv("APP_ENV", "development")
    SECRET_KEY: str = os.getenv("SECRET_KEY", "dev-secret")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    TESTING: bool = False

    DATABASE_URL: str = resolve_database_url()

    # Pub/sub for live displays: "redis" | "memory"
    NOTIFIER_BACKEND: str = (
        os.getenv("NOTIFIER_BACKEND")
        or ("redis" if os.getenv("REDIS_URL") else "memory")
    ).lower().strip()
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    # Scheduler cadences, in seconds
    ROUND_CHECK_INTERVAL: int = _int_env("ROUND_CHECK_INTERVAL", 60)
    DRAW_INTERVAL: int = _int_env("DRAW_INTERVAL", 10)
    SETTLEMENT_INTERVAL: int = _int_env("SETTLEMENT_INTERVAL", 30)
    EXPIRY_INTERVAL: int = _int_env("EXPIRY_INTERVAL", 60)
    CLEANUP_INTERVAL: int = _int_env("CLEANUP_INTERVAL", 3600)

    PAYMENT_EXPIRATION_MINUTES: int = _int_env("PAYMENT_EXPIRATION_MINUTES", 2)
    WHATSAPP_TIMEOUT: int = _int_env("WHATSAPP_TIMEOUT", 10)
    DISPATCH_WORKERS: int = _int_env("DISPATCH_WORKERS", 4)


@dataclass(frozen=True)
class DevelopmentConfig(BaseConfig):
    """Development configuration."""

    DEBUG: bool = True


@dataclass(frozen=True)
class ProductionConfig(BaseConfig):
    """Production configuration."""

    DEBUG: bool = False


@dataclass(frozen=True)
class TestingConfig(BaseConfig):
    """In-memory database and in-process notifier."""

    DEBUG: bool = False
    TESTING: bool = True
    DATABASE_URL: str = "sqlite+pysqlite:///:memory:"
    NOTIFIER_BACKEND: str = "memory"


_BY_ENV: dict[str, type[BaseConfig]] = {
    "production": ProductionConfig,
    "testing": TestingConfig,
}


def get_config() -> type[BaseConfig]:
    """Pick the config class for APP_ENV; anything unknown runs as development."""

    return _BY_ENV.get(os.getenv("APP_ENV", "development").lower().strip(), DevelopmentConfig)
