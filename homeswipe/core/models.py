"""Homeswipe core domain models.

Two families of models live here:

* **Upstream shapes** — :class:`UpstreamRecord` and :class:`MediaItem` mirror
  the RESO/OData payloads returned by the listings feed.  Field aliases match
  the upstream property names (``ListingKey``, ``MediaURL``, …) so a raw JSON
  object can be validated directly with ``model_validate``.  Unknown upstream
  fields are ignored.
* **Local shapes** — :class:`LocalRecord` and :class:`LocalMedia` are the rows
  written to the local store by the replication pipeline.

:class:`Cursor` marks replication progress.  It is totally ordered by
``(instant, key)`` so the driver and the checkpoint store can compare
positions directly::

    >>> Cursor(timestamp="2025-01-01T00:00:00Z", key="B") > EPOCH_CURSOR
    True

All models are **frozen** so they can be shared between concurrent record
pipelines without accidental mutation.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from functools import total_ordering
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

__all__ = [
    "EPOCH_TIMESTAMP",
    "EPOCH_KEY",
    "EPOCH_CURSOR",
    "Cursor",
    "UpstreamRecord",
    "MediaItem",
    "LocalRecord",
    "LocalMedia",
    "parse_timestamp",
]

logger = logging.getLogger(__name__)

#: Timestamp half of the sentinel cursor used when nothing was replicated yet.
EPOCH_TIMESTAMP: str = "1970-01-01T00:00:00Z"

#: Key half of the sentinel cursor.
EPOCH_KEY: str = "0"


# ---------------------------------------------------------------------------
# Cursor
# ---------------------------------------------------------------------------


@total_ordering
class Cursor(BaseModel):
    """Position of the last replicated record.

    Ordering and equality follow the *instant* the timestamp denotes, not its
    spelling: ``…T00:00:01Z`` < ``…T00:00:01.5Z`` and ``…T00:00:01Z`` ==
    ``…T00:00:01.000Z`` for the same key.  Timestamps without an offset are
    taken as UTC.

    Attributes:
        timestamp: ``ModificationTimestamp`` of the record (ISO-8601 string).
        key: ``ListingKey`` of the record; breaks ties between records that
            share a timestamp.
    """

    model_config = ConfigDict(frozen=True)

    timestamp: str = Field(..., min_length=1)
    key: str = Field(..., min_length=1)

    @field_validator("timestamp")
    @classmethod
    def _must_be_iso8601(cls, v: str) -> str:
        parse_timestamp(v)
        return v

    @property
    def instant(self) -> datetime:
        return parse_timestamp(self.timestamp)

    @property
    def sort_key(self) -> tuple[datetime, str]:
        return (self.instant, self.key)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Cursor):
            return NotImplemented
        return self.sort_key == other.sort_key

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Cursor):
            return NotImplemented
        return self.sort_key < other.sort_key

    def __hash__(self) -> int:
        return hash(self.sort_key)

    def __str__(self) -> str:
        return f"{self.timestamp}/{self.key}"

    @classmethod
    def from_record(cls, record: UpstreamRecord) -> Cursor:
        """Return the cursor that points at *record*."""
        return cls(timestamp=record.modification_timestamp, key=record.listing_key)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 feed timestamp into an aware UTC :class:`datetime`.

    Raises:
        ValueError: If *value* is not ISO-8601.
    """
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


#: Cursor used when no prior position exists (empty store, read failure).
EPOCH_CURSOR: Cursor = Cursor(timestamp=EPOCH_TIMESTAMP, key=EPOCH_KEY)


# ---------------------------------------------------------------------------
# Upstream shapes
# ---------------------------------------------------------------------------


class UpstreamRecord(BaseModel):
    """One ``Property`` entity as returned by the feed.

    Only ``ListingKey`` and ``ModificationTimestamp`` are required: they drive
    the cursor.  Everything else is optional and validated later by the
    record transformer, so a listing with a bad price does not break the page
    it arrived in.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        extra="ignore",
        coerce_numbers_to_str=True,
    )

    listing_key: str = Field(..., alias="ListingKey", min_length=1)
    modification_timestamp: str = Field(..., alias="ModificationTimestamp", min_length=1)
    unparsed_address: str | None = Field(None, alias="UnparsedAddress")
    city: str | None = Field(None, alias="City")
    state_or_province: str | None = Field(None, alias="StateOrProvince")
    postal_code: str | None = Field(None, alias="PostalCode")
    list_price: Any = Field(None, alias="ListPrice")
    bedrooms_total: float | None = Field(None, alias="BedroomsTotal")
    bathrooms_total_integer: float | None = Field(None, alias="BathroomsTotalInteger")
    property_type: str | None = Field(None, alias="PropertyType")
    property_sub_type: str | None = Field(None, alias="PropertySubType")
    contract_status: str | None = Field(None, alias="ContractStatus")
    public_remarks: str | None = Field(None, alias="PublicRemarks")

    @field_validator("modification_timestamp")
    @classmethod
    def _timestamp_is_iso8601(cls, v: str) -> str:
        parse_timestamp(v)
        return v


class MediaItem(BaseModel):
    """One ``Media`` entity attached to a listing.

    ``order`` may be missing upstream; the media resolver treats ``None`` as a
    regular order value.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    order: int | None = Field(None, alias="Order")
    url: str = Field(default="", alias="MediaURL")
    media_key: str | None = Field(None, alias="MediaKey")
    image_size_description: str | None = Field(None, alias="ImageSizeDescription")

    @field_validator("url", mode="before")
    @classmethod
    def _none_url_to_blank(cls, v: object) -> object:
        return "" if v is None else v


# ---------------------------------------------------------------------------
# Local shapes
# ---------------------------------------------------------------------------


class LocalRecord(BaseModel):
    """A listing row as persisted in the ``properties`` table.

    Attributes:
        id: Upstream ``ListingKey``; primary key and upsert conflict target.
        address: Free-form street address (``UnparsedAddress``).
        city: City name.
        state_or_province: Province / state code.
        postal_code: Postal code.
        price: List price; always finite and strictly positive.
        bedrooms: Total bedrooms, ``None`` if unknown.
        bathrooms: Total bathrooms, ``None`` if unknown.
        property_type: Normalised category (see
            :mod:`homeswipe.transform.property_types`).
        last_timestamp: ``ModificationTimestamp`` of the replicated version.
        last_key: ``ListingKey`` of the replicated version.
        is_active: ``False`` once the sweeper saw the listing disappear
            upstream; every replication upsert sets it back to ``True``.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    address: str | None = None
    city: str | None = None
    state_or_province: str | None = None
    postal_code: str | None = None
    price: float = Field(..., gt=0)
    bedrooms: int | None = Field(None, ge=0)
    bathrooms: int | None = Field(None, ge=0)
    property_type: str = "Other"
    last_timestamp: str = Field(..., min_length=1)
    last_key: str = Field(..., min_length=1)
    is_active: bool = True

    @property
    def cursor(self) -> Cursor:
        """The replication position this row represents."""
        return Cursor(timestamp=self.last_timestamp, key=self.last_key)


class LocalMedia(BaseModel):
    """Ordered image URLs of one listing (``media`` table)."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    image_urls: list[str] = Field(default_factory=list)
