"""Upstream feed client.

:class:`FeedClient` is the only component that talks to the listings feed.
It exposes the four operations the replication pipeline needs:

* :meth:`FeedClient.count` — pending records after a cursor (progress only).
* :meth:`FeedClient.fetch_page` — one cursor page of changed records.
* :meth:`FeedClient.fetch_media` — media of one listing (best-effort).
* :meth:`FeedClient.fetch_all_active_keys` — every active ``ListingKey``, for
  the reconciliation sweep.

All paging operations stop on the first page that is shorter than the
requested size *or* empty, so a total that is an exact multiple of the page
size costs one extra (empty) request but never loops.

Typical usage::

    async with FeedClient(settings) as feed:
        page = await feed.fetch_page(EPOCH_CURSOR, page_size=1000)
"""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Any

from pydantic import ValidationError

from homeswipe.core.exceptions import FeedError, FeedParseError
from homeswipe.core.models import Cursor, MediaItem, UpstreamRecord
from homeswipe.core.settings import Settings
from homeswipe.feed.http_client import FeedHttpClient
from homeswipe.feed.query import (
    RESIDENTIAL_FILTER,
    active_keys_path,
    media_path,
    property_count_path,
    property_page_path,
)

__all__ = ["FeedClient"]

logger = logging.getLogger(__name__)


def _value_list(body: dict[str, Any], resource: str) -> list[Any]:
    """Return ``body["value"]``; a missing or non-list value is a parse error."""
    value = body.get("value")
    if not isinstance(value, list):
        raise FeedParseError(resource, "Response has no 'value' array")
    return value


class FeedClient:
    """Typed operations over the OData listings feed.

    Args:
        settings: Application settings (base URL, token, sizes, timeouts).
        http_client: Optional pre-built HTTP client (useful for testing).
            When omitted the client is created from *settings* and closed by
            :meth:`close`.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: FeedHttpClient | None = None,
    ) -> None:
        self._settings = settings
        self._http = http_client or FeedHttpClient(
            base_url=settings.feed_base_url,
            token=settings.feed_access_token,
            connect_timeout=settings.http_connect_timeout,
            read_timeout=settings.http_read_timeout,
            max_attempts=settings.http_max_attempts,
        )
        self._owns_http = http_client is None
        self._media_failures = 0

    async def __aenter__(self) -> FeedClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    @property
    def media_failures(self) -> int:
        """Media requests that failed and were replaced by an empty list."""
        return self._media_failures

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_http:
            await self._http.close()

    # ------------------------------------------------------------------
    # Replication reads
    # ------------------------------------------------------------------

    async def count(self, cursor: Cursor, filter_expr: str = RESIDENTIAL_FILTER) -> int:
        """Return the number of records strictly after *cursor*.

        Raises:
            FeedFetchError: On transport failure.
            FeedParseError: If ``@odata.count`` is missing or not an integer.
        """
        body = await self._http.get_json(property_count_path(cursor, filter_expr))
        raw = body.get("@odata.count")
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise FeedParseError("Property", f"Invalid @odata.count {raw!r}")
        return raw

    async def fetch_page(
        self,
        cursor: Cursor,
        page_size: int | None = None,
        filter_expr: str = RESIDENTIAL_FILTER,
    ) -> list[UpstreamRecord]:
        """Return up to *page_size* records after *cursor*, oldest first.

        Records are ordered by ``(ModificationTimestamp, ListingKey)``.  An
        empty list means the feed is exhausted.

        Raises:
            FeedFetchError: On transport failure.
            FeedParseError: If the body or any record in it is malformed.
                A record without ``ListingKey`` or a parseable
                ``ModificationTimestamp`` cannot be placed in the cursor order, so the whole page is
                rejected rather than silently skipping it.
        """
        size = page_size or self._settings.page_size
        body = await self._http.get_json(property_page_path(cursor, size, filter_expr))
        try:
            records = [UpstreamRecord.model_validate(raw) for raw in _value_list(body, "Property")]
        except ValidationError as exc:
            raise FeedParseError("Property", f"Malformed record in page: {exc}") from exc

        logger.debug("Fetched page of %d record(s) after %s", len(records), cursor)
        return records

    async def fetch_media(self, record_id: str) -> list[MediaItem]:
        """Return the media items of one listing, ordered by ``Order``.

        Media is best-effort: any feed error is logged at WARNING level and
        an empty list is returned so the listing itself is still stored.
        Individual malformed items are skipped.
        """
        path = media_path(
            record_id,
            self._settings.media_limit,
            self._settings.media_size_description or None,
        )
        try:
            body = await self._http.get_json(path)
            raw_items = _value_list(body, "Media")
        except FeedError as exc:
            self._media_failures += 1
            logger.warning("Media fetch failed for listing %s: %s", record_id, exc)
            return []

        items: list[MediaItem] = []
        for raw in raw_items:
            try:
                items.append(MediaItem.model_validate(raw))
            except ValidationError:
                logger.debug("Skipping malformed media item for %s: %r", record_id, raw)
        return items

    # ------------------------------------------------------------------
    # Reconciliation reads
    # ------------------------------------------------------------------

    async def fetch_all_active_keys(
        self,
        filter_expr: str = RESIDENTIAL_FILTER,
        batch_size: int | None = None,
    ) -> set[str]:
        """Return the ``ListingKey`` of every active upstream listing.

        Pages with ``$top``/``$skip`` (ignoring any cursor) until a page is
        short or empty.

        Raises:
            FeedFetchError: On transport failure of any page.
            FeedParseError: If a page is malformed.
        """
        size = batch_size or self._settings.sweep_batch_size
        keys: set[str] = set()
        skip = 0
        while True:
            body = await self._http.get_json(active_keys_path(size, skip, filter_expr))
            page = _value_list(body, "Property")
            for raw in page:
                key = raw.get("ListingKey") if isinstance(raw, dict) else None
                if key is None or key == "":
                    raise FeedParseError("Property", f"Record without ListingKey: {raw!r}")
                keys.add(str(key))

            logger.debug("Active-key scan: skip=%d got=%d total=%d", skip, len(page), len(keys))
            if len(page) < size:
                break
            skip += size

        return keys
