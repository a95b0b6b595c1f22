"""Centralized, typed configuration using pydantic-settings.

Provides a single ``Settings`` class backed by ``.env`` file and environment
variables and a cached ``get_settings()`` accessor.

IMPORTANT: This module has ZERO imports from the ``tradedesk`` package to
prevent circular imports.  Only stdlib, pydantic, pydantic_settings, and
structlog are used.
"""

from __future__ import annotations

import sys
from functools import lru_cache
from pathlib import Path

import structlog
from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger()


class Settings(BaseSettings):
    """Application settings loaded from environment variables and ``.env`` file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- General ---------------------------------------------------------------
    production: bool = False

    # -- Storage ---------------------------------------------------------------
    database_path: Path = Path("data/tradedesk.db")

    # -- Lifecycle -------------------------------------------------------------
    enforce_status_transitions: bool = False
    analytics_window_hours: int = 24
    analytics_trigger_statuses: list[str] = ["firm", "fixed"]

    # -- Saga retries ----------------------------------------------------------
    saga_step_attempts: int = 3
    saga_retry_wait_seconds: float = 0.5

    @field_validator("analytics_window_hours", "saga_step_attempts")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        """Reject zero or negative windows and attempt counts."""
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator("saga_retry_wait_seconds")
    @classmethod
    def wait_must_not_be_negative(cls, v: float) -> float:
        """Reject negative retry waits."""
        if v < 0:
            raise ValueError("must not be negative")
        return v


@lru_cache
def get_settings() -> Settings:
    """Return a cached ``Settings`` instance.

    The ``@lru_cache`` decorator ensures environment variables are parsed
    exactly once.  Call ``get_settings.cache_clear()`` in tests to reset.

    Returns:
        The application ``Settings``.
    """
    try:
        return Settings()
    except ValidationError as exc:
        logger.error("settings_validation_failed", errors=exc.errors())
        sys.exit(1)
