"""
Transformer configuration.

Settings are read from environment variables, optionally loaded from a
`.env` file in the working directory.
"""

from __future__ import annotations

import logging
import os
import tempfile

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

load_dotenv()

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class Settings(BaseModel):
    """Runtime settings for the transformer, the UI and the CLI."""

    log_level: str = Field(
        default_factory=lambda: os.getenv("JPT_LOG_LEVEL", "INFO"),
        description="Root log level for the UI and CLI entry points",
    )

    preview_rows: int = Field(
        default_factory=lambda: int(os.getenv("JPT_PREVIEW_ROWS", "3")),
        description="Number of rows shown in previews and CSV previews",
    )

    discovery_max_depth: int = Field(
        default_factory=lambda: int(os.getenv("JPT_DISCOVERY_MAX_DEPTH", "3")),
        description="How many nested object levels record path discovery walks",
    )

    max_rows: int = Field(
        default_factory=lambda: int(os.getenv("JPT_MAX_ROWS", "0")),
        description="Upper bound on extracted input rows (0 disables the bound)",
    )

    export_dir: str = Field(
        default_factory=lambda: os.getenv("JPT_EXPORT_DIR", tempfile.gettempdir()),
        description="Directory where exported files are written",
    )

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    @field_validator("preview_rows", "discovery_max_depth", "max_rows")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError(f"must be >= 0, got {value}")
        return value


def load_settings() -> Settings:
    return Settings()


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging. Called from entry points only."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
