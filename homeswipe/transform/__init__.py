"""Pure transformations from feed payloads to local rows."""

from homeswipe.transform.media import resolve_media
from homeswipe.transform.property_types import normalise_property_type
from homeswipe.transform.records import transform_record, validate_price

__all__ = [
    "resolve_media",
    "normalise_property_type",
    "transform_record",
    "validate_price",
]
