"""
Rooster — Centralized configuration.

Loads all settings from .env and validates them.
Every module that needs a default (database path, snooze defaults, timezone)
reads it from here.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from pydantic import BaseModel, ValidationError, field_validator

# Load .env from project root (one level up from rooster/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # SQLite
    DATABASE_PATH: str = "data/rooster.db"

    # IANA zone name; alarm wall-clock times and weekdays are read in this zone
    TIMEZONE: str = "UTC"

    # Last known location, handed to the solar event source
    LATITUDE: float = 0.0
    LONGITUDE: float = 0.0

    # Defaults for newly created alarms
    DEFAULT_SNOOZE_DURATION_MINUTES: int = 10
    DEFAULT_SNOOZE_MAX_COUNT: int = 3
    DEFAULT_VOLUME: int = 80

    # Cached solar tables older than this are reported as stale
    ASTRONOMY_DATA_VALIDITY_HOURS: int = 6

    LOG_LEVEL: str = "INFO"

    @field_validator("TIMEZONE")
    @classmethod
    def check_timezone(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("TIMEZONE must be an IANA zone name")
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {v!r}") from exc
        return v

    @field_validator("LATITUDE")
    @classmethod
    def check_latitude(cls, v: float) -> float:
        if not -90 <= v <= 90:
            raise ValueError(f"Latitude out of range: {v}")
        return v

    @field_validator("LONGITUDE")
    @classmethod
    def check_longitude(cls, v: float) -> float:
        if not -180 <= v <= 180:
            raise ValueError(f"Longitude out of range: {v}")
        return v

    @field_validator("DEFAULT_SNOOZE_DURATION_MINUTES")
    @classmethod
    def check_snooze_duration(cls, v: int) -> int:
        if not 5 <= v <= 30:
            raise ValueError("Snooze duration must be between 5 and 30 minutes")
        return v

    @field_validator("DEFAULT_SNOOZE_MAX_COUNT")
    @classmethod
    def check_snooze_count(cls, v: int) -> int:
        if not 1 <= v <= 10:
            raise ValueError("Snooze max count must be between 1 and 10")
        return v

    @field_validator("DEFAULT_VOLUME")
    @classmethod
    def check_volume(cls, v: int) -> int:
        if not 0 <= v <= 100:
            raise ValueError("Volume must be between 0 and 100")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.strip().upper() or "INFO"

    def local_zone(self) -> ZoneInfo:
        return ZoneInfo(self.TIMEZONE)


def _load_settings() -> Settings:
    """Load settings from environment, exiting on invalid values."""
    try:
        return Settings(
            DATABASE_PATH=os.getenv("DATABASE_PATH", "data/rooster.db"),
            TIMEZONE=os.getenv("TIMEZONE", "UTC"),
            LATITUDE=os.getenv("LATITUDE", "0"),
            LONGITUDE=os.getenv("LONGITUDE", "0"),
            DEFAULT_SNOOZE_DURATION_MINUTES=os.getenv("DEFAULT_SNOOZE_DURATION_MINUTES", "10"),
            DEFAULT_SNOOZE_MAX_COUNT=os.getenv("DEFAULT_SNOOZE_MAX_COUNT", "3"),
            DEFAULT_VOLUME=os.getenv("DEFAULT_VOLUME", "80"),
            ASTRONOMY_DATA_VALIDITY_HOURS=os.getenv("ASTRONOMY_DATA_VALIDITY_HOURS", "6"),
            LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
        )
    except ValidationError as exc:
        print(f"ERROR: invalid configuration in .env:\n{exc}", file=sys.stderr)
        sys.exit(1)


# Singleton, imported by other modules as:
#   from rooster.config import settings
settings = _load_settings()
