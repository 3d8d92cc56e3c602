"""Centralized runtime settings."""

from __future__ import annotations

from enum import StrEnum
from functools import lru_cache
from pathlib import Path
from typing import Annotated

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LogFormat(StrEnum):
    """Supported logging formats."""

    JSON = "json"
    CONSOLE = "console"


class Settings(BaseSettings):
    """Global configuration loaded from env vars and optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    history_path: Path = Path("./data/secure_score_history.json")
    history_indent: Annotated[int, Field(ge=0, le=8)] = 2
    lock_timeout_seconds: Annotated[float, Field(ge=0.0)] = 10.0

    subscription_id: str = ""
    secure_score_name: str = "ascScore"
    az_path: str = "az"
    arm_endpoint: str = "https://management.azure.com"
    secure_score_api_version: str = "2020-01-01"
    azure_access_token: str = ""
    request_timeout_seconds: Annotated[float, Field(gt=0.0)] = 30.0

    log_level: str = "INFO"
    log_format: LogFormat = LogFormat.JSON

    @property
    def secure_score_url(self) -> str:
        """ARM resource URL of the configured secure score."""
        base = self.arm_endpoint.rstrip("/")
        return (
            f"{base}/subscriptions/{self.subscription_id.strip()}"
            f"/providers/Microsoft.Security/secureScores/{self.secure_score_name}"
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings singleton."""
    return Settings()
