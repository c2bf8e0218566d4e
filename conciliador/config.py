"""
Configuration management using Pydantic Settings.
All parameters are loaded from environment variables with sensible defaults.
"""

import os
from functools import lru_cache
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


APP_BASE_PATH = Path(os.environ.get(
    "CONCILIADOR_BASE_PATH",
    Path.home() / "Documents" / "conciliador",
))
ENV_FILE_PATH = APP_BASE_PATH / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE_PATH),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: str = Field(default="development")
    app_debug: bool = Field(default=False)
    app_log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False)

    # Server
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000)

    # Scoring weights (points out of 100)
    amount_weight: float = Field(default=50.0, ge=0)
    direction_weight: float = Field(default=15.0, ge=0)
    date_weight: float = Field(default=20.0, ge=0)
    description_weight: float = Field(default=15.0, ge=0)

    # Matching windows
    max_relative_amount_tolerance: float = Field(default=0.05, gt=0, le=1)
    date_window_days: int = Field(default=5, ge=0)
    min_substring_length: int = Field(default=3, ge=1)
    partial_description_ceiling: float = Field(default=0.8, ge=0, le=1)
    reason_min_fraction: float = Field(default=0.2, ge=0, le=1)
    exclude_cancelled_lancamentos: bool = Field(default=True)

    # Thresholds
    suggestion_min_score: int = Field(default=30, ge=0, le=100)
    auto_accept_threshold: int = Field(default=70, ge=0, le=100)
    amount_epsilon_cents: int = Field(default=0, ge=0)

    # Storage
    reports_dir: Path = Field(default=APP_BASE_PATH / "reports")
    log_dir: Path = Field(default=APP_BASE_PATH / "logs")

    @model_validator(mode="after")
    def _check_scoring(self) -> "Settings":
        total = (
            self.amount_weight + self.direction_weight
            + self.date_weight + self.description_weight
        )
        if abs(total - 100.0) > 1e-6:
            raise ValueError(f"scoring weights must sum to 100, got {total}")
        if self.auto_accept_threshold < self.suggestion_min_score:
            raise ValueError(
                "auto_accept_threshold must not be below suggestion_min_score"
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
