"""Core domain models, settings, logging configuration and exceptions."""

from homeswipe.core.exceptions import (
    ConfigError,
    FeedAuthError,
    FeedError,
    FeedFetchError,
    FeedParseError,
    FeedRateLimitError,
    HomeswipeError,
    OrchestratorError,
    ReconciliationError,
    ReplicationError,
    StorageError,
)
from homeswipe.core.logging_config import JsonFormatter, configure_logging
from homeswipe.core.models import (
    EPOCH_CURSOR,
    Cursor,
    LocalMedia,
    LocalRecord,
    MediaItem,
    UpstreamRecord,
)
from homeswipe.core.settings import Settings

__all__ = [
    # Logging
    "configure_logging",
    "JsonFormatter",
    # Domain models
    "EPOCH_CURSOR",
    "Cursor",
    "UpstreamRecord",
    "MediaItem",
    "LocalRecord",
    "LocalMedia",
    # Settings
    "Settings",
    # Exceptions
    "HomeswipeError",
    "ConfigError",
    "StorageError",
    "FeedError",
    "FeedFetchError",
    "FeedParseError",
    "FeedAuthError",
    "FeedRateLimitError",
    "OrchestratorError",
    "ReplicationError",
    "ReconciliationError",
]
