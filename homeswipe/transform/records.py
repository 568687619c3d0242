"""Map raw feed records onto the local ``properties`` schema.

:func:`transform_record` is the only entry point the replication driver
uses.  It never raises for bad upstream data: a record that cannot be stored
(currently only an invalid price) is logged and ``None`` is returned so the
caller can skip it without aborting the page.
"""

from __future__ import annotations

import logging
import math
from typing import Any

from homeswipe.core.models import LocalRecord, UpstreamRecord
from homeswipe.transform.property_types import normalise_property_type

__all__ = ["validate_price", "transform_record"]

logger = logging.getLogger(__name__)


def validate_price(value: Any) -> float | None:
    """Return *value* as a float if it is a usable list price, else ``None``.

    A usable price is finite and strictly positive.  Numeric strings are
    accepted; booleans, ``None``, ``NaN`` and infinities are not.

    Examples::

        validate_price(450000)        # → 450000.0
        validate_price("699900.00")   # → 699900.0
        validate_price(0)             # → None
        validate_price(float("nan"))  # → None
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(price) or price <= 0:
        return None
    return price


def _count(value: float | None) -> int | None:
    # Room counts arrive as JSON numbers; drop anything that is not a
    # non-negative whole number rather than rejecting the listing.
    if value is None or not math.isfinite(value) or value < 0:
        return None
    return int(value) if value == int(value) else None


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def transform_record(raw: UpstreamRecord) -> LocalRecord | None:
    """Build the :class:`LocalRecord` for *raw*, or ``None`` to discard it.

    Args:
        raw: Record exactly as received from the feed.

    Returns:
        The row to upsert, always with ``is_active=True``; ``None`` when the
        price is missing, non-numeric, non-finite or not strictly positive.
    """
    price = validate_price(raw.list_price)
    if price is None:
        logger.warning(
            "Discarding listing %s: invalid ListPrice %r",
            raw.listing_key,
            raw.list_price,
        )
        return None

    return LocalRecord(
        id=raw.listing_key,
        address=_clean(raw.unparsed_address),
        city=_clean(raw.city),
        state_or_province=_clean(raw.state_or_province),
        postal_code=_clean(raw.postal_code),
        price=price,
        bedrooms=_count(raw.bedrooms_total),
        bathrooms=_count(raw.bathrooms_total_integer),
        property_type=normalise_property_type(raw.property_sub_type, raw.property_type),
        last_timestamp=raw.modification_timestamp,
        last_key=raw.listing_key,
        is_active=True,
    )
