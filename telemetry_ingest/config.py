"""
Service configuration loaded from environment variables, plus logging setup.

Uses Pydantic BaseSettings for automatic env var loading and validation.
All values come from environment variables or a ``.env`` file; nothing
environment-specific is hardcoded.

CHANGELOG:
- 2026-10-16: Initial creation

TODO:
- None
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Ingestion API configuration.

    Attributes:
        database_url: SQLAlchemy async URL of the TimescaleDB instance.
        redis_url: Redis URL used for the snapshot cache.
        device_tokens: Raw ``token:device,token:device`` string mapping
            bearer tokens to the device identifier they authenticate.
        max_request_bytes: Upper bound on an ingest request body.
        max_channels_per_payload: Upper bound on ``values`` entries.
        cache_ttl_s: Snapshot cache TTL in seconds.
        query_limit_default: Row limit applied to view queries when the
            caller gives none.
        retention_days: Measurements older than this are purged.
        log_level: Root log level name.
    """

    database_url: str
    redis_url: str
    device_tokens: str
    max_request_bytes: int = 1_048_576
    max_channels_per_payload: int = 1000
    cache_ttl_s: int = 5
    query_limit_default: int = 1000
    retention_days: int = 90
    log_level: str = "INFO"

    @field_validator("max_request_bytes", "max_channels_per_payload", "query_limit_default")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        """Validate size limits are at least 1."""
        if v < 1:
            raise ValueError("limits must be >= 1")
        return v

    @field_validator("cache_ttl_s")
    @classmethod
    def cache_ttl_must_be_non_negative(cls, v: int) -> int:
        """Validate cache TTL is non-negative (0 disables expiry-based reuse)."""
        if v < 0:
            raise ValueError("CACHE_TTL_S must be >= 0")
        return v

    @field_validator("retention_days")
    @classmethod
    def retention_must_cover_a_day(cls, v: int) -> int:
        """Validate the retention window is at least one day."""
        if v < 1:
            raise ValueError("RETENTION_DAYS must be >= 1")
        return v

    @field_validator("log_level")
    @classmethod
    def log_level_must_be_known(cls, v: str) -> str:
        """Validate LOG_LEVEL names a standard logging level."""
        level = v.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown LOG_LEVEL: {v}")
        return level

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


class JsonFormatter(logging.Formatter):
    """Minimal JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def configure_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging on the root logger.

    Replaces any existing root handlers with a single stderr handler.

    Args:
        level: Root log level name.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
