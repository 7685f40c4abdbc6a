"""Application configuration."""

from __future__ import annotations

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

# Snapshot lives next to the package unless overridden
DEFAULT_SNAPSHOT_PATH = os.path.join(os.path.dirname(__file__), "session.sqlite")


class Settings(BaseSettings):
    """Settings loaded from MELLOPOANG_* environment variables."""

    snapshot_path: str = DEFAULT_SNAPSHOT_PATH
    purge_on_shutdown: bool = False
    session_code_length: int = 8
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="MELLOPOANG_",
        env_file=".env",
        extra="ignore",
    )
