"""Homeswipe settings loaded from environment variables and ``.env`` files.

Uses :mod:`pydantic_settings` to parse the environment into a validated
settings object.  The field name is the lowercase form of the environment
variable (``FEED_ACCESS_TOKEN`` → ``feed_access_token``).

Typical usage::

    from homeswipe.core.settings import Settings

    settings = Settings()
    if not settings.feed_configured:
        raise ConfigError("FEED_ACCESS_TOKEN is not set")
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal

from pydantic import Field, ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = ["Settings", "DEFAULT_FEED_BASE_URL"]

logger = logging.getLogger(__name__)

#: RESO Web API (OData) endpoint of the listings provider.
DEFAULT_FEED_BASE_URL: str = "https://query.ampre.ca/odata"

_LOG_CHOICES: dict[str, frozenset[str]] = {
    "log_level": frozenset({"DEBUG", "INFO", "WARNING", "ERROR"}),
    "log_format": frozenset({"text", "json"}),
}


class Settings(BaseSettings):
    """Central application configuration.

    Values are loaded in priority order:

    1. Actual environment variables.
    2. ``.env`` file in the working directory.
    3. Field defaults.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Upstream feed
    # ------------------------------------------------------------------
    feed_base_url: str = Field(
        default=DEFAULT_FEED_BASE_URL,
        description="Base URL of the OData listings feed.",
    )
    feed_access_token: str = Field(
        default="",
        description="Bearer token for the listings feed (required).",
    )
    page_size: int = Field(
        default=1000,
        ge=1,
        description="Records requested per replication page ($top).",
    )
    concurrency_limit: int = Field(
        default=20,
        ge=1,
        description="Max in-flight per-record pipelines within one page.",
    )
    media_limit: int = Field(
        default=50,
        ge=1,
        description="Max media items requested per record ($top).",
    )
    media_size_description: str = Field(
        default="Largest",
        description="ImageSizeDescription filter for media; one rendition per photo (empty = any size).",
    )
    sweep_batch_size: int = Field(
        default=1000,
        ge=1,
        description="Records requested per page by the reconciliation scan.",
    )

    # ------------------------------------------------------------------
    # Replication behaviour
    # ------------------------------------------------------------------
    cursor_mode: Literal["derived", "checkpoint"] = Field(
        default="derived",
        description=(
            "'derived': cursor = max (last_timestamp, last_key) of stored rows. "
            "'checkpoint': explicit checkpoint row, held back on write failures."
        ),
    )
    count_required: bool = Field(
        default=True,
        description="Abort the cycle when the pending-count request fails.",
    )

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------
    http_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Total attempts per feed request (1 initial + retries).",
    )
    http_connect_timeout: float = Field(default=10.0, gt=0.0)
    http_read_timeout: float = Field(default=30.0, gt=0.0)

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------
    database_path: str = Field(
        default="data/homeswipe.db",
        description="Path to the SQLite database file.",
    )

    # ------------------------------------------------------------------
    # Scheduling (continuous mode only)
    # ------------------------------------------------------------------
    replication_interval_min: int = Field(default=600, ge=1)
    replication_interval_max: int = Field(default=900, ge=1)
    sweep_interval_min: int = Field(default=3600, ge=1)
    sweep_interval_max: int = Field(default=4200, ge=1)

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = Field(default="INFO", description="Logging level.")
    log_format: str = Field(default="text", description="Log format: 'text' or 'json'.")

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("feed_base_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"feed_base_url must be an http(s) URL, got {v!r}")
        return v.rstrip("/")

    @field_validator("log_level", "log_format")
    @classmethod
    def _normalise_log_option(cls, v: str, info: ValidationInfo) -> str:
        """Case-fold logging options and check them against the known choices."""
        choices = _LOG_CHOICES[info.field_name]
        folded = v.upper() if info.field_name == "log_level" else v.lower()
        if folded not in choices:
            raise ValueError(f"{info.field_name} must be one of {sorted(choices)}, got {v!r}")
        return folded

    @model_validator(mode="after")
    def _validate_intervals(self) -> Settings:
        """Ensure min ≤ max for both job cadences."""
        if self.replication_interval_min > self.replication_interval_max:
            raise ValueError(
                f"replication_interval_min ({self.replication_interval_min}) "
                f"> replication_interval_max ({self.replication_interval_max})"
            )
        if self.sweep_interval_min > self.sweep_interval_max:
            raise ValueError(
                f"sweep_interval_min ({self.sweep_interval_min}) "
                f"> sweep_interval_max ({self.sweep_interval_max})"
            )
        return self

    # ------------------------------------------------------------------
    # Derived helpers
    # ------------------------------------------------------------------

    @property
    def feed_configured(self) -> bool:
        """``True`` if a feed access token is set."""
        return bool(self.feed_access_token.strip())

    @property
    def database_path_resolved(self) -> Path:
        """Return the database path as a resolved :class:`~pathlib.Path`."""
        return Path(self.database_path).resolve()
