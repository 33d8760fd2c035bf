"""Notes app configuration loaded from environment variables."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "NOTES_",
    }

    # Storage
    storage_dir: Path = Path.home() / ".notes-app"
    storage_key: str = "notes_app_v1"

    # Logging
    log_level: LogLevel = "INFO"

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value: object) -> object:
        return value.upper() if isinstance(value, str) else value

    @property
    def storage_path(self) -> Path:
        """File backing the configured storage slot."""
        return self.storage_dir / f"{self.storage_key}.json"


def configure_logging(level: str | int | None = None) -> None:
    """Install the root handler used across the app.

    Unknown level names fall back to INFO.
    """
    if level is None:
        level = settings.log_level
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        level = resolved if isinstance(resolved, int) else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)


settings = Settings()
