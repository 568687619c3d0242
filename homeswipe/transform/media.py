"""Media resolver: collapse a listing's media items into ordered image URLs."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from homeswipe.core.models import MediaItem

__all__ = ["resolve_media"]

logger = logging.getLogger(__name__)


def resolve_media(items: Iterable[MediaItem]) -> list[str]:
    """Return the URLs of *items*, keeping the first item seen for each order.

    The upstream feed returns several renditions of the same photo (one per
    image size) that share an ``Order`` value.  Only the first occurrence of
    each order is kept and the received sequence is preserved; the result is
    *not* re-sorted.  The first item claims its order even when its URL is
    blank, in which case that order contributes nothing.

    Example::

        items = [(3, "a"), (1, ""), (3, "c"), (2, "d"), (1, "e")]
        resolve_media(...)  # → ["a", "d"]
    """
    seen: set[int | None] = set()
    urls: list[str] = []
    for item in items:
        if item.order in seen:
            continue
        seen.add(item.order)
        if item.url.strip():
            urls.append(item.url)
    return urls
