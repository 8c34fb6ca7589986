"""Configuration module for the portal pipeline service."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from urllib.parse import urlparse

from dotenv import load_dotenv

from app.core.exceptions import ConfigurationError

load_dotenv()


def _as_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Config:
    """Runtime configuration with validation."""

    APP_NAME: str
    APP_VERSION: str
    ENV: str
    DEBUG: bool
    DATABASE_URL: str
    DB_CONNECTIVITY_REQUIRED: bool
    JWT_SECRET: str
    JWT_ACCESS_TTL_MINUTES: int
    JWT_REFRESH_TTL_DAYS: int
    JWT_PERMISSIONS_VERSION: int
    CRON_SECRET: str | None
    WEBHOOK_SECRET: str | None
    SCORE_STALENESS_HOURS: float
    SCORE_BATCH_TIME_BUDGET_SECONDS: float
    SCORE_ERROR_RATE_ALERT: float
    SCORING_CRON_HOUR: int
    CELERY_BROKER_URL: str
    CELERY_RESULT_BACKEND: str
    API_PREFIX: str
    LOG_LEVEL: str
    LOG_FILE: str

    @property
    def is_production(self) -> bool:
        return self.ENV == "production"


def _build_config(env: str | None = None) -> Config:
    resolved_env = (env or os.getenv("ENV", "development")).strip().lower()
    debug = _as_bool(os.getenv("DEBUG"), default=(resolved_env != "production"))
    redis_url = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    config = Config(
        APP_NAME="Portal Pipeline",
        APP_VERSION=os.getenv("APP_VERSION", "1.0.0"),
        ENV=resolved_env,
        DEBUG=debug if resolved_env != "production" else False,
        DATABASE_URL=os.getenv("DATABASE_URL", "sqlite:///./portal_pipeline.db"),
        DB_CONNECTIVITY_REQUIRED=_as_bool(
            os.getenv("DB_CONNECTIVITY_REQUIRED"), default=(resolved_env == "production")
        ),
        JWT_SECRET=os.getenv("JWT_SECRET", "change_me_jwt_secret"),
        JWT_ACCESS_TTL_MINUTES=int(os.getenv("JWT_ACCESS_TTL_MINUTES", "15")),
        JWT_REFRESH_TTL_DAYS=int(os.getenv("JWT_REFRESH_TTL_DAYS", "14")),
        JWT_PERMISSIONS_VERSION=int(os.getenv("JWT_PERMISSIONS_VERSION", "1")),
        CRON_SECRET=os.getenv("CRON_SECRET"),
        WEBHOOK_SECRET=os.getenv("WEBHOOK_SECRET"),
        SCORE_STALENESS_HOURS=float(os.getenv("SCORE_STALENESS_HOURS", "23")),
        SCORE_BATCH_TIME_BUDGET_SECONDS=float(os.getenv("SCORE_BATCH_TIME_BUDGET_SECONDS", "120")),
        SCORE_ERROR_RATE_ALERT=float(os.getenv("SCORE_ERROR_RATE_ALERT", "0.5")),
        SCORING_CRON_HOUR=int(os.getenv("SCORING_CRON_HOUR", "6")),
        CELERY_BROKER_URL=os.getenv("CELERY_BROKER_URL", redis_url),
        CELERY_RESULT_BACKEND=os.getenv("CELERY_RESULT_BACKEND", redis_url),
        API_PREFIX=os.getenv("API_PREFIX", "/api/v1"),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO").upper(),
        LOG_FILE=os.getenv("LOG_FILE", ""),
    )
    _validate_config(config)
    return config


def _validate_database_url(database_url: str) -> None:
    parsed = urlparse(database_url)
    if parsed.scheme not in {"sqlite", "postgresql", "postgresql+psycopg2"}:
        raise ConfigurationError(
            "DATABASE_URL must use sqlite:// or postgresql:// style URL."
        )
    if parsed.scheme.startswith("postgresql") and not parsed.hostname:
        raise ConfigurationError("PostgreSQL DATABASE_URL is missing hostname.")


def _validate_config(config: Config) -> None:
    _validate_database_url(config.DATABASE_URL)

    if config.JWT_ACCESS_TTL_MINUTES < 1:
        raise ConfigurationError("JWT_ACCESS_TTL_MINUTES must be >= 1.")
    if config.JWT_REFRESH_TTL_DAYS < 1:
        raise ConfigurationError("JWT_REFRESH_TTL_DAYS must be >= 1.")
    if config.SCORE_STALENESS_HOURS < 0:
        raise ConfigurationError("SCORE_STALENESS_HOURS must be >= 0.")
    if config.SCORE_BATCH_TIME_BUDGET_SECONDS <= 0:
        raise ConfigurationError("SCORE_BATCH_TIME_BUDGET_SECONDS must be > 0.")
    if not 0 <= config.SCORE_ERROR_RATE_ALERT <= 1:
        raise ConfigurationError("SCORE_ERROR_RATE_ALERT must be between 0 and 1.")
    if not 0 <= config.SCORING_CRON_HOUR <= 23:
        raise ConfigurationError("SCORING_CRON_HOUR must be between 0 and 23.")
    if config.LOG_LEVEL not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        raise ConfigurationError("LOG_LEVEL must be one of DEBUG/INFO/WARNING/ERROR/CRITICAL.")
    if config.is_production and "change_me" in config.JWT_SECRET.lower():
        raise ConfigurationError("Production JWT_SECRET uses placeholder value.")
    if config.is_production and not config.CRON_SECRET:
        raise ConfigurationError("Production requires CRON_SECRET.")


@lru_cache(maxsize=8)
def get_config(env: str | None = None) -> Config:
    """Get validated configuration for the requested environment."""
    return _build_config(env)
