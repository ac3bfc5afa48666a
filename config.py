"""
Configuration settings for the cometode scheduler.

Uses Pydantic Settings for environment variable management with .env file support.
Variables are prefixed with COMETODE_ (e.g. COMETODE_SESSION_CAP=10).
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from cometode import __version__


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="COMETODE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Database
    # ========================================
    database_path: Path = Field(
        default=Path.home() / ".cometode" / "cometode.db",
        description="SQLite database file holding catalog, progress and history",
    )
    catalog_path: Path | None = Field(
        default=None,
        description="Override for the bundled problem catalog JSON (seeded once)",
    )

    # ========================================
    # Scheduling
    # ========================================
    initial_ease_factor: float = Field(
        default=2.5,
        ge=1.3,
        description="Ease factor given to newly started problems",
    )
    session_cap: int = Field(
        default=5,
        ge=1,
        description="Due problems surfaced per session before 'load more' is required",
    )

    # ========================================
    # Sync Behavior
    # ========================================
    sync_file_name: str = Field(
        default="cometode-progress.json",
        description="Snapshot file written inside the sync folder",
    )
    sync_interval_minutes: int = Field(
        default=60,
        ge=0,
        description="Background sync tick interval (0 to disable)",
    )
    due_check_interval_minutes: int = Field(
        default=60,
        ge=0,
        description="Interval of the due-review reminder check (0 to disable)",
    )
    producer_version: str = Field(
        default=__version__,
        description="Version string recorded in exported snapshots",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
