"""Homeswipe exception taxonomy.

Every custom exception inherits from :class:`HomeswipeError`.  Exceptions are
organised by architectural layer so callers can catch at the right granularity:

    Layer hierarchy
    ---------------
    HomeswipeError
    ├── ConfigError
    ├── StorageError
    ├── FeedError
    │   ├── FeedFetchError
    │   │   └── FeedRateLimitError
    │   ├── FeedParseError
    │   └── FeedAuthError
    └── OrchestratorError
        ├── ReplicationError
        └── ReconciliationError

Usage:

    from homeswipe.core.exceptions import FeedFetchError

    raise FeedFetchError("Property", "Connection refused") from exc
"""

from __future__ import annotations

import logging

__all__ = [
    "HomeswipeError",
    # Config
    "ConfigError",
    # Storage
    "StorageError",
    # Feed
    "FeedError",
    "FeedFetchError",
    "FeedParseError",
    "FeedAuthError",
    "FeedRateLimitError",
    # Orchestrator
    "OrchestratorError",
    "ReplicationError",
    "ReconciliationError",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class HomeswipeError(Exception):
    """Root exception for all Homeswipe errors.

    Catch this to handle any application-level error uniformly.  Prefer
    catching layer-specific subclasses wherever possible.
    """


# ---------------------------------------------------------------------------
# Config layer
# ---------------------------------------------------------------------------


class ConfigError(HomeswipeError):
    """Raised when the application configuration is invalid or incomplete.

    Examples:
        - ``FEED_ACCESS_TOKEN`` is missing when a job needs the feed.
        - An interval bound is out of range.
    """


# ---------------------------------------------------------------------------
# Storage layer
# ---------------------------------------------------------------------------


class StorageError(HomeswipeError):
    """Raised when a database read or write fails.

    Args:
        operation: Short name of the failing operation (e.g. ``"upsert_record"``).
        message: Human-readable error description.
    """

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        super().__init__(f"[{operation}] {message}")


# ---------------------------------------------------------------------------
# Feed layer
# ---------------------------------------------------------------------------


class FeedError(HomeswipeError):
    """Base class for all upstream feed errors.

    Args:
        resource: OData resource or URL label (e.g. ``"Property"``).
        message: Human-readable error description.
    """

    def __init__(self, resource: str, message: str) -> None:
        self.resource = resource
        super().__init__(f"[{resource}] {message}")


class FeedFetchError(FeedError):
    """Raised when a feed request fails.

    Covers network errors, timeouts and unexpected HTTP status codes.
    """


class FeedRateLimitError(FeedFetchError):
    """Raised when the feed answers HTTP 429.

    Args:
        resource: OData resource or URL label.
        retry_after: Recommended back-off interval in seconds, if known.
    """

    def __init__(self, resource: str, retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        detail = f"retry after {retry_after}s" if retry_after is not None else "no retry hint"
        super().__init__(resource, f"Rate limited ({detail})")


class FeedParseError(FeedError):
    """Raised when a feed response body does not have the expected shape."""


class FeedAuthError(FeedError):
    """Raised when the feed rejects the bearer token (HTTP 401 / 403)."""


# ---------------------------------------------------------------------------
# Orchestrator layer
# ---------------------------------------------------------------------------


class OrchestratorError(HomeswipeError):
    """Raised for errors originating in the job orchestration layer."""


class ReplicationError(OrchestratorError):
    """Raised when a replication cycle must be aborted.

    Args:
        message: Human-readable error description.
        pages_completed: Pages fully processed before the abort.
    """

    def __init__(self, message: str, pages_completed: int = 0) -> None:
        self.pages_completed = pages_completed
        super().__init__(message)


class ReconciliationError(OrchestratorError):
    """Raised when a reconciliation sweep must be aborted before any update."""
