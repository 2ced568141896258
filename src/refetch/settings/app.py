"""Application settings powered by Pydantic BaseSettings."""

import logging
import sys
from pathlib import Path
from typing import TextIO

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from refetch.fetch.config import FetchConfig
from refetch.observability.logging import configure_logging


class AppSettings(BaseSettings):
    """Environment configuration (``REFETCH_*`` variables or ``.env``)."""

    model_config = SettingsConfigDict(
        env_prefix="REFETCH_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    cache_dir: Path | None = Field(default=None, description="Cache directory")
    max_concurrency: int | None = Field(default=None, ge=1)
    user_agent: str | None = None
    timeout_seconds: float | None = Field(default=None, gt=0)
    max_response_size_bytes: int | None = None
    max_meta_redirects: int | None = Field(default=None, ge=0)
    log_level: str = Field(default="INFO", description="Logging level name")
    log_json: bool = True

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and check the logging level name."""
        level = v.upper()
        if level not in logging.getLevelNamesMapping():
            msg = f"Unknown log level: {v}"
            raise ValueError(msg)
        return level

    def to_fetch_config(self) -> FetchConfig:
        """Build a fetch configuration, keeping defaults for unset values."""
        overrides = self.model_dump(
            include={
                "cache_dir",
                "max_concurrency",
                "user_agent",
                "timeout_seconds",
                "max_response_size_bytes",
                "max_meta_redirects",
            },
            exclude_none=True,
        )
        return FetchConfig(**overrides)

    def configure_logging(self, output: TextIO = sys.stderr) -> None:
        """Configure structured logging from ``log_level`` and ``log_json``."""
        configure_logging(
            level=self.log_level,
            output=output,
            json_format=self.log_json,
        )


def get_settings() -> AppSettings:
    """Get a settings instance."""
    return AppSettings()
