"""Upstream OData feed: query builders, HTTP transport and typed client."""

from homeswipe.feed.client import FeedClient
from homeswipe.feed.http_client import FeedHttpClient
from homeswipe.feed.query import RESIDENTIAL_FILTER

__all__ = ["FeedClient", "FeedHttpClient", "RESIDENTIAL_FILTER"]
