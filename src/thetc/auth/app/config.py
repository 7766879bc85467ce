"""
Configuration Module for the THETC Auth store

This module defines the configuration system for the identity store and its operational
tooling, using Pydantic settings for validation and environment loading.

The configuration follows these principles:
1. Environment-based configuration with sensible defaults
2. Strong validation and typing through Pydantic
3. No process-wide singletons; callers build a Settings instance and pass it down

Key configuration areas include:
- Database and cache connections
- Username rules
- Session lifetime and token cache lifetime
- Reaper scheduling
- Monitoring and error reporting
"""

import logging
from typing import Literal, Optional

from pydantic import AliasChoices, Field, RedisDsn, field_validator
from pydantic_settings import BaseSettings

from thetc.auth.username import UsernameKind


logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Application settings for the identity store.

    Environment variables are automatically mapped to settings fields, with aliases provided for
    compatibility. For example, the database connection string can be set with either
    DATABASE_URL or PG_DSN.
    """

    debug: bool = False
    """
    Enable debug mode for verbose logging and SQL echo.
    Set with DEBUG=true environment variable.
    """

    database_url: str = Field(
        "postgresql+asyncpg://postgres:password@db/thetcauth",
        validation_alias=AliasChoices("database_url", "pg_dsn"),
    )
    """
    SQLAlchemy async connection string. PostgreSQL (asyncpg) in production, SQLite (aiosqlite)
    for development.
    Set with DATABASE_URL or PG_DSN environment variables.
    """

    redis_dsn: Optional[RedisDsn] = Field(
        None,
        validation_alias=AliasChoices("redis_dsn", "redis_url"),
    )
    """
    Redis connection string for the service token cache. The cache is disabled when unset.
    Set with REDIS_DSN or REDIS_URL environment variables.
    """

    username_kind: UsernameKind = UsernameKind.ASCII
    """
    Which username rules apply: "ascii" or "email".
    Set with USERNAME_KIND environment variable.
    """

    session_ttl: int = 86400  # 24 hours
    """
    Lifetime in seconds of sessions created through the session manager.
    Set with SESSION_TTL environment variable.
    """

    session_auto_refresh: bool = False
    """
    Push a session's expiry forward by session_ttl every time it is accessed.
    Set with SESSION_AUTO_REFRESH environment variable.
    """

    token_cache_ttl: int = 300  # 5 minutes
    """
    Upper bound in seconds for how long a resolved service token stays in the Redis cache.
    Set with TOKEN_CACHE_TTL environment variable.
    """

    reaper_interval: int = 60
    """
    Seconds between two passes of the expired session and token reaper.
    Set with REAPER_INTERVAL environment variable.
    """

    sentry_dsn: Optional[str] = None
    """
    Sentry DSN for error reporting. Optional, no error reporting if not set.
    Set with SENTRY_DSN environment variable.
    """

    metrics_backend: Literal["telegraf", "none"] = "none"
    """
    Metrics backend used by the store and the reaper.
    Set with METRICS_BACKEND environment variable.
    """

    statsd_host: str = Field(alias="TELEGRAF_HOST", default="telegraf")
    """
    StatsD/Telegraf host for metrics collection.
    Set with TELEGRAF_HOST environment variable.
    """

    statsd_port: int = Field(alias="TELEGRAF_PORT", default=8125)
    """
    StatsD/Telegraf port for metrics collection.
    Set with TELEGRAF_PORT environment variable.
    """

    statsd_prefix: str = "thetc_auth"
    """
    Prefix for all StatsD metrics from this service.
    Set with STATSD_PREFIX environment variable.
    """

    @field_validator("session_ttl", "token_cache_ttl", "reaper_interval")
    @classmethod
    def positive_seconds(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive number of seconds")
        return v
