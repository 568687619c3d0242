"""OData query builders for the listings feed.

Every request the replicator sends is built here, so the exact query text
lives in one place.  The feed is picky about the literal form of the
``$filter`` expression; the builders reproduce it character for character:

* residential filter::

      ContractStatus eq 'Available' and ((PropertySubType eq 'Residential'
      or PropertyType eq 'Residential') or ... )

* incremental predicate, appended with ``and``::

      (ModificationTimestamp gt <ts> or (ModificationTimestamp eq <ts>
      and ListingKey gt '<key>'))

* ordering ``$orderby=ModificationTimestamp,ListingKey`` and ``$top=<n>``.

Paths are returned relative to the feed base URL and already percent-encoded
with the same rules as JavaScript's ``encodeURI`` (spaces become ``%20``;
``$``, ``'``, ``,``, ``(`` and ``)`` are left alone).
"""

from __future__ import annotations

import logging
from typing import Final
from urllib.parse import quote

from homeswipe.core.models import Cursor
from homeswipe.transform.property_types import RESIDENTIAL_SUBTYPES

__all__ = [
    "RESIDENTIAL_FILTER",
    "odata_literal",
    "encode_uri",
    "incremental_predicate",
    "property_page_path",
    "property_count_path",
    "active_keys_path",
    "media_path",
]

logger = logging.getLogger(__name__)

#: Characters ``encodeURI`` leaves untouched besides alphanumerics.
_ENCODE_URI_SAFE: Final[str] = ";,/?:@&=+$-_.!~*'()#"

PROPERTY_RESOURCE: Final[str] = "/Property"
MEDIA_RESOURCE: Final[str] = "/Media"

_CURSOR_ORDER: Final[str] = "ModificationTimestamp,ListingKey"


def odata_literal(value: str) -> str:
    """Escape *value* for use inside a single-quoted OData string literal."""
    return value.replace("'", "''")


def encode_uri(raw: str) -> str:
    """Percent-encode *raw* the way JavaScript's ``encodeURI`` does."""
    return quote(raw, safe=_ENCODE_URI_SAFE)


def _residential_filter(subtypes: tuple[str, ...]) -> str:
    clauses = " or ".join(
        f"(PropertySubType eq '{odata_literal(v)}' or PropertyType eq '{odata_literal(v)}')"
        for v in subtypes
    )
    return f"ContractStatus eq 'Available' and ({clauses})"


#: ``$filter`` selecting available listings of a residential category.
RESIDENTIAL_FILTER: Final[str] = _residential_filter(RESIDENTIAL_SUBTYPES)


def incremental_predicate(cursor: Cursor) -> str:
    """Return the "strictly after *cursor*" clause.

    The timestamp is an unquoted ``DateTimeOffset`` literal; the key is a
    quoted string literal.
    """
    ts = cursor.timestamp
    key = odata_literal(cursor.key)
    return (
        f"(ModificationTimestamp gt {ts} "
        f"or (ModificationTimestamp eq {ts} and ListingKey gt '{key}'))"
    )


def _cursor_query(filter_expr: str, cursor: Cursor) -> str:
    return (
        f"{PROPERTY_RESOURCE}?$filter={filter_expr} and {incremental_predicate(cursor)}"
        f"&$orderby={_CURSOR_ORDER}"
    )


def property_page_path(
    cursor: Cursor,
    top: int,
    filter_expr: str = RESIDENTIAL_FILTER,
) -> str:
    """Path for one replication page of at most *top* records after *cursor*."""
    return encode_uri(f"{_cursor_query(filter_expr, cursor)}&$top={top}")


def property_count_path(cursor: Cursor, filter_expr: str = RESIDENTIAL_FILTER) -> str:
    """Path for the count-only variant (``$top=0&$count=true``)."""
    return encode_uri(f"{_cursor_query(filter_expr, cursor)}&$top=0&$count=true")


def active_keys_path(
    top: int,
    skip: int,
    filter_expr: str = RESIDENTIAL_FILTER,
) -> str:
    """Path for one page of the full active-listing scan (no cursor)."""
    return encode_uri(
        f"{PROPERTY_RESOURCE}?$filter={filter_expr}"
        f"&$select=ListingKey&$orderby=ListingKey&$top={top}&$skip={skip}"
    )


def media_path(record_id: str, top: int, size_description: str | None = None) -> str:
    """Path for the media of one listing, ordered by ``Order``.

    Args:
        record_id: ``ListingKey`` of the listing (``ResourceRecordKey``).
        top: Maximum number of media items.
        size_description: Optional ``ImageSizeDescription`` (e.g.
            ``"Largest"``); empty or ``None`` means any size.
    """
    filters = [f"ResourceRecordKey eq '{odata_literal(record_id)}'"]
    if size_description:
        filters.append(f"ImageSizeDescription eq '{odata_literal(size_description)}'")
    return encode_uri(
        f"{MEDIA_RESOURCE}?$filter={' and '.join(filters)}&$orderby=Order&$top={top}"
    )
