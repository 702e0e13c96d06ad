"""Project configuration and paths.

Loads settings from config/settings.yaml and environment variables.
The resulting Settings value is passed explicitly into the Discogs client,
the price fetch task and the sync orchestrator.
"""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

# === Paths ===
PROJECT_ROOT = Path(__file__).parent.parent.parent
CONFIG_DIR = PROJECT_ROOT / "config"
DATA_DIR = PROJECT_ROOT / "data"
DEFAULT_SETTINGS_PATH = CONFIG_DIR / "settings.yaml"

# Load .env from project root
load_dotenv(PROJECT_ROOT / ".env")


class DiscogsSettings(BaseModel):
    """Settings for the Discogs API client."""
    token: str = ""
    username: str = ""
    base_url: str = "https://api.discogs.com"
    user_agent: str = "DiscogsCollectionTracker/1.0"
    request_timeout: int = 30
    rate_limit_rpm: int = 60
    page_size: int = Field(default=100, ge=1, le=100)
    page_delay_seconds: float = Field(default=1.0, ge=0)


class TrackingSettings(BaseModel):
    """Staleness and analytics thresholds."""
    check_interval_hours: float = Field(default=24.0, ge=0)
    min_price_change_percent: float = 5.0
    min_wants_count: int = Field(default=50, ge=0)
    canonical_folder: str = "All"


class SyncSettings(BaseModel):
    """Worker pool, batching and retry settings."""
    workers: int = Field(default=8, ge=1)
    max_workers: int = Field(default=8, ge=1)
    batch_size: int = Field(default=20, ge=1)
    batch_delay_seconds: float = Field(default=1.0, ge=0)
    max_retries: int = Field(default=3, ge=0)
    backoff_base_seconds: float = Field(default=1.0, ge=0)
    backoff_jitter_seconds: float = Field(default=1.0, ge=0)


class DatabaseSettings(BaseModel):
    """Database connection settings."""
    db_path: str = str(DATA_DIR / "prices.db")


class Settings(BaseModel):
    """Top-level application settings."""
    discogs: DiscogsSettings = Field(default_factory=DiscogsSettings)
    tracking: TrackingSettings = Field(default_factory=TrackingSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)

    @property
    def is_configured(self) -> bool:
        """True when Discogs credentials are present."""
        return bool(self.discogs.token and self.discogs.username)

    @classmethod
    def load(cls, path: str | Path | None = None) -> Settings:
        """Load settings from a YAML file, then apply environment overrides.

        Args:
            path: Settings file. Defaults to config/settings.yaml; a missing
                  file falls back to defaults.

        Returns:
            Settings instance.
        """
        settings_path = Path(path) if path else DEFAULT_SETTINGS_PATH
        data: dict = {}
        if settings_path.exists():
            with open(settings_path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}

        settings = cls(**data)
        settings.apply_env_overrides()
        return settings

    def apply_env_overrides(self) -> None:
        """Override file values with environment variables when set."""
        if token := os.getenv("DISCOGS_TOKEN"):
            self.discogs.token = token
        if username := os.getenv("DISCOGS_USERNAME"):
            self.discogs.username = username
        if db_path := os.getenv("DATABASE_PATH"):
            self.database.db_path = db_path
        if interval := os.getenv("TRACKER_CHECK_INTERVAL_HOURS"):
            self.tracking.check_interval_hours = float(interval)
        if min_change := os.getenv("TRACKER_MIN_PRICE_CHANGE"):
            self.tracking.min_price_change_percent = float(min_change)

    @property
    def database_abs_path(self) -> Path:
        """Resolve database path relative to project root."""
        p = Path(self.database.db_path)
        if p.is_absolute() or self.database.db_path == ":memory:":
            return p
        return PROJECT_ROOT / p
